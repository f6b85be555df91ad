"""Package output paths and the writePkg trigger."""

import logging
from pathlib import Path

from ntkit.extractor import PackageDescriptor
from ntkit.interpreter.invoker import ROOT_GLOBAL, VMInvoker
from ntkit.script import Script

logger = logging.getLogger(__name__)

TEMP_PACKAGE_NAME = "tmp.pkg"
PACKAGE_SUFFIX = ".pkg"
WRITE_SELECTOR = "writePkg"


def temp_package_path(scratch_dir: Path) -> Path:
    """Package path for unnamed scripts: one fixed file per user."""
    scratch_dir = Path(scratch_dir)
    scratch_dir.mkdir(parents=True, exist_ok=True)
    return scratch_dir / TEMP_PACKAGE_NAME


def resolve_output_path(script: Script, scratch_dir: Path) -> Path:
    """
    Where the package for script goes.

    File-backed scripts build next to the script (`hello.nwt` ->
    `hello.pkg`). Unnamed scripts share the temp path; a stale package
    there is removed so it can never be mistaken for this build's output.
    """
    if script.has_file():
        return script.file_path().with_suffix(PACKAGE_SUFFIX)

    path = temp_package_path(scratch_dir)
    if path.exists():
        path.unlink()
        logger.debug(f"Removed stale package {path}", extra={"event": "stale_package_removed"})
    return path


class PackageEmitter:
    """Asks the interpreter to write the package it has built."""

    def emit(self, vm: VMInvoker, descriptor: PackageDescriptor) -> bool:
        logger.info(
            f"Writing package to {descriptor.output_path}",
            extra={"event": "package_write", "metadata": descriptor.to_dict()},
        )
        return vm.send(ROOT_GLOBAL, WRITE_SELECTOR)
