"""
Package decompilation.

Reads a package with the interpreter's ReadPkg() and prints it back as a
NewtonScript assignment to `newt.app`. Functions come out as bytecode, so
the result usually needs hand editing before it builds again.
"""

import logging
from pathlib import Path
from typing import Optional

from ntkit.assembler import quote_string
from ntkit.config import InterpreterConfig
from ntkit.console import STDERR, ConsoleSink
from ntkit.interpreter import OutputCapture, SessionFactory

logger = logging.getLogger(__name__)


def decompile_script(pkg_path: Path) -> str:
    header = f"//\n// This NewtonScript code was created by decompiling\n// {pkg_path}\n//\n\n"
    return (
        "printDepth := 9999;\n"
        "printLength := 9999;\n"
        "printBinaries := 1;\n"
        "printUnique := 1;\n"
        f"pkg := ReadPkg(LoadBinary({quote_string(str(pkg_path))}));\n"
        f"print({quote_string(header)});\n"
        "print(\"newt.app := \\n\");\n"
        "p(pkg);\n"
        "print(\";\\n\");\n"
    )


def decompile_package(
    pkg_path: Path,
    session_factory: SessionFactory,
    config: InterpreterConfig,
    sink: ConsoleSink,
) -> Optional[str]:
    """
    Decompile a package file.

    Returns:
        NewtonScript source, or None if the interpreter printed nothing
    """
    pkg_path = Path(pkg_path).resolve()
    capture = OutputCapture()
    session = session_factory(config)
    session.initialize(config.args)
    try:
        session.execute(decompile_script(pkg_path), capture, pkg_path.parent)
    finally:
        session.shutdown()

    source, errors = capture.drain()
    sink.write_text(errors, STDERR)
    logger.info(
        f"Decompiled {pkg_path}",
        extra={"event": "package_decompiled", "metadata": {"chars": len(source)}},
    )
    return source or None
