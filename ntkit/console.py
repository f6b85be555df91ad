"""Console sinks: where build diagnostics and program output are shown."""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from rich.console import Console

from ntkit.utils import console as default_console

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"


class ConsoleSink(ABC):
    """Line-oriented text sink for the toolkit console."""

    @abstractmethod
    def write_line(self, text: str, stream: str = STDOUT) -> None:
        """Write one line of text tagged as standard or error output."""
        pass

    def write_text(self, text: str, stream: str = STDOUT) -> None:
        """Write a chunk of program output, one call per line."""
        if not text:
            return
        for line in text.rstrip("\n").split("\n"):
            self.write_line(line, stream)

    def error(self, text: str) -> None:
        self.write_line(text, STDERR)


class RichConsoleSink(ConsoleSink):
    """Sink printing to a rich Console; error output in red."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or default_console

    def write_line(self, text: str, stream: str = STDOUT) -> None:
        logger.debug(text, extra={"event": "console_line", "metadata": {"stream": stream}})
        style = "red" if stream == STDERR else None
        # program text may contain [brackets]; never treat it as markup
        self.console.print(text, style=style, markup=False, highlight=False)


class BufferSink(ConsoleSink):
    """Sink that keeps every line in memory."""

    def __init__(self):
        self.lines: List[Tuple[str, str]] = []

    def write_line(self, text: str, stream: str = STDOUT) -> None:
        self.lines.append((stream, text))

    @property
    def text(self) -> str:
        return "\n".join(line for _, line in self.lines)

    def stream_lines(self, stream: str) -> List[str]:
        return [line for s, line in self.lines if s == stream]
