"""
Target controllers: the channel to a running Newton emulator.

Messages are fire-and-forget. Nothing is read back; whatever the target
prints only shows up in later program output.

SocketTarget writes one JSON object per line:

    {"version": 1, "cmd": "eval", "script": "GetRoot().|Hello:SIG|:Open();"}
    {"version": 1, "cmd": "install", "path": "/home/me/hello.pkg"}
"""

import json
import logging
import socket
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ntkit.config import TargetConfig
from ntkit.console import ConsoleSink

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1


class TargetController(ABC):
    """Abstract target controller."""

    @abstractmethod
    def evaluate(self, script: str) -> None:
        """Run a NewtonScript command on the target."""
        pass

    @abstractmethod
    def install_artifact(self, path: Path) -> None:
        """Install the package file at path on the target."""
        pass


class SocketTarget(TargetController):
    """Sends commands to an emulator listening on a TCP port."""

    def __init__(self, host: str, port: int, timeout: float = 5.0, sink: Optional[ConsoleSink] = None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sink = sink

    def _send(self, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, separators=(",", ":")).encode("utf-8") + b"\n"
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout) as conn:
                conn.sendall(data)
        except OSError as e:
            # delivery is not acknowledged; an unreachable target is only reported
            logger.warning(
                f"Could not reach target {self.host}:{self.port}: {e}",
                extra={"event": "target_unreachable", "metadata": {"cmd": payload.get("cmd")}},
            )
            if self.sink:
                self.sink.error(f"Warning: target {self.host}:{self.port} not reachable ({e})")
            return
        logger.debug(
            f"Sent {payload['cmd']} to {self.host}:{self.port}",
            extra={"event": "target_sent", "metadata": {"bytes": len(data)}},
        )

    def evaluate(self, script: str) -> None:
        self._send({"version": PROTOCOL_VERSION, "cmd": "eval", "script": script})

    def install_artifact(self, path: Path) -> None:
        self._send({"version": PROTOCOL_VERSION, "cmd": "install", "path": str(path)})

    def __repr__(self) -> str:
        return f"SocketTarget({self.host}:{self.port})"


class EchoTarget(TargetController):
    """Records messages instead of sending them; used for dry runs."""

    def __init__(self, sink: Optional[ConsoleSink] = None):
        self.sink = sink
        self.sent: List[Tuple[str, str]] = []

    def evaluate(self, script: str) -> None:
        self.sent.append(("eval", script))
        if self.sink:
            for line in script.rstrip("\n").split("\n"):
                self.sink.write_line(f"[target] {line}")

    def install_artifact(self, path: Path) -> None:
        self.sent.append(("install", str(path)))
        if self.sink:
            self.sink.write_line(f"[target] install {path}")


def make_target(config: TargetConfig, sink: Optional[ConsoleSink] = None) -> TargetController:
    if config.kind == "echo":
        return EchoTarget(sink)
    return SocketTarget(config.host, config.port, config.timeout, sink)
