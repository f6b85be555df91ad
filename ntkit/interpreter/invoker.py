"""
VM invocation for one build attempt.

    with VMInvoker(session, sink) as vm:
        vm.submit(unit, base_dir)     # runs, forwards output
        root = vm.root()
        vm.send("newt", "writePkg")
    # output drained and forwarded again, session shut down once
"""

import logging
from pathlib import Path
from typing import Mapping, Optional, Sequence

from ntkit import __version__
from ntkit.assembler import CompilationUnit
from ntkit.console import STDERR, STDOUT, ConsoleSink
from ntkit.interpreter.base import InterpreterSession, OutputCapture
from ntkit.values import String, Value

logger = logging.getLogger(__name__)

ROOT_GLOBAL = "newt"


def host_extensions(base_dir: Optional[Path] = None) -> dict:
    """Globals the host defines for every program."""
    extensions = {"ntkit:version": String(__version__)}
    if base_dir is not None:
        extensions["ntkit:baseDir"] = String(str(base_dir))
    return extensions


class VMInvoker:
    """
    Owns one interpreter session from initialize to shutdown.

    A failing program is not an error here: its diagnostics arrive on the
    error output, which is forwarded to the console like everything else.
    """

    def __init__(
        self,
        session: InterpreterSession,
        sink: ConsoleSink,
        args: Sequence[str] = (),
        extensions: Optional[Mapping[str, Value]] = None,
    ):
        self.session = session
        self.sink = sink
        self.args = list(args)
        self.extensions = dict(extensions or {})
        self.capture = OutputCapture()
        self._active = False

    def __enter__(self) -> "VMInvoker":
        self._active = True
        try:
            self.session.initialize(self.args)
            for name, value in self.extensions.items():
                self.session.set_global(name, value)
        except BaseException:
            self._teardown()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self.forward_output()
        finally:
            self._teardown()

    def _teardown(self) -> None:
        if not self._active:
            return
        self._active = False
        self.session.shutdown()
        logger.debug("Interpreter session shut down", extra={"event": "session_closed"})

    def submit(self, unit: CompilationUnit, base_dir: Path) -> bool:
        """Execute the unit and forward its output immediately."""
        ok = self.session.execute(unit.text, self.capture, base_dir)
        if not ok:
            logger.info(
                "Program reported an execution error",
                extra={"event": "execution_error"},
            )
        self.forward_output()
        return ok

    def root(self) -> Value:
        return self.session.get_global(ROOT_GLOBAL)

    def send(self, receiver: str, selector: str) -> bool:
        return self.session.send_message(receiver, selector, self.capture)

    def forward_output(self) -> None:
        """Drain the capture into the console sink."""
        out, err = self.capture.drain()
        self.sink.write_text(out, STDOUT)
        self.sink.write_text(err, STDERR)
