"""
Base classes for interpreter sessions.

An InterpreterSession is one initialized interpreter: submit source, read
globals, send messages, shut down. Program output never goes through
interpreter globals; every call that runs code takes an OutputCapture and
appends to it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple

from ntkit.values import Value


@dataclass
class OutputCapture:
    """Standard and error output accumulated by interpreter calls."""

    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)

    def write_stdout(self, text: str) -> None:
        if text:
            self.stdout.append(text)

    def write_stderr(self, text: str) -> None:
        if text:
            self.stderr.append(text)

    def drain(self) -> Tuple[str, str]:
        """Return (stdout, stderr) collected so far and clear both buffers."""
        out, err = "".join(self.stdout), "".join(self.stderr)
        self.stdout.clear()
        self.stderr.clear()
        return out, err


class InterpreterSession(ABC):
    """
    Abstract interpreter session.

    Each backend must implement:
    - initialize(): Start the interpreter
    - execute(): Run a source text
    - get_global() / set_global(): Access the global environment
    - send_message(): Send a message to a global object
    - shutdown(): Release every resource
    """

    @abstractmethod
    def initialize(self, args: Sequence[str]) -> None:
        """
        Start the interpreter.

        Raises:
            InterpreterError: If the interpreter cannot be started
        """
        pass

    @abstractmethod
    def execute(self, source: str, capture: OutputCapture, base_dir: Path) -> bool:
        """
        Run source text with relative paths resolved against base_dir.

        Program errors are written to capture's error output and reported
        by returning False; they are not raised.
        """
        pass

    @abstractmethod
    def get_global(self, name: str) -> Value:
        """Value of a global variable, NIL when unbound."""
        pass

    @abstractmethod
    def set_global(self, name: str, value: Value) -> None:
        """Bind a global variable before the next execute()."""
        pass

    @abstractmethod
    def send_message(self, receiver: str, selector: str, capture: OutputCapture) -> bool:
        """Send selector to the object bound to the global named receiver."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Release the interpreter. Must be safe to call once after any failure."""
        pass
