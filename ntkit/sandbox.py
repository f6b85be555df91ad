"""Working-directory scoping for a single interpreter run."""

import logging
import os
from pathlib import Path
from typing import Optional

from ntkit.script import Script

logger = logging.getLogger(__name__)


class ExecutionSandbox:
    """
    Run the interpreter as if the current directory were the script's.

    Yields the base directory. With change_directory set, the process
    working directory is switched for the duration of the block and the
    captured directory is restored on every exit path.
    """

    def __init__(self, script: Script, change_directory: bool = True):
        self.script = script
        self.change_directory = change_directory
        self._previous: Optional[str] = None

    @property
    def base_dir(self) -> Path:
        if self.script.has_file():
            return self.script.file_path().resolve().parent
        return Path.cwd()

    def __enter__(self) -> Path:
        base_dir = self.base_dir
        self._previous = os.getcwd()
        if self.change_directory and self.script.has_file():
            os.chdir(base_dir)
            logger.debug(f"Changed directory to {base_dir}", extra={"event": "sandbox_enter"})
        return base_dir

    def __exit__(self, exc_type, exc, tb) -> None:
        previous, self._previous = self._previous, None
        if previous is not None:
            os.chdir(previous)
            logger.debug(f"Restored directory {previous}", extra={"event": "sandbox_exit"})
