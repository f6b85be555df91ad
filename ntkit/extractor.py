"""
Package metadata extraction.

After a program has run, the package is described by the `newt` global:

    newt.pkgPath                 optional string, overrides the output path
    newt.app                     frame
    newt.app.name                string              -> name
    newt.app.parts               array
    newt.app.parts[0]            frame
    newt.app.parts[0].data       frame
    newt.app.parts[0].data.app   symbol              -> symbol
    newt.app.parts[0].data.text  optional string     -> label

Checks run in that order and stop at the first missing element; nothing
past it is read.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ntkit.console import ConsoleSink
from ntkit.errors import PackageValidationError
from ntkit.values import Value

logger = logging.getLogger(__name__)

LABEL_PLACEHOLDER = "<unknown>"


@dataclass(frozen=True)
class PackageDescriptor:
    """The four facts the pipeline keeps about a built package."""

    output_path: Optional[Path]
    name: str
    symbol: str
    label: str = LABEL_PLACEHOLDER

    def to_dict(self) -> dict:
        return {
            "output_path": str(self.output_path) if self.output_path else None,
            "name": self.name,
            "symbol": self.symbol,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PackageDescriptor":
        path = data.get("output_path")
        return cls(
            output_path=Path(path) if path else None,
            name=data["name"],
            symbol=data["symbol"],
            label=data.get("label") or LABEL_PLACEHOLDER,
        )


def read_descriptor(root: Value, default_output_path: Optional[Path]) -> PackageDescriptor:
    """
    Walk the result graph.

    Raises:
        PackageValidationError: At the first missing or mistyped element
    """
    newt = root.as_frame()
    if newt is None:
        raise PackageValidationError("root not defined.")

    output_path = default_output_path
    pkg_path = newt.get("pkgPath").as_string()
    if pkg_path is not None:
        output_path = Path(pkg_path)

    app = newt.get("app").as_frame()
    if app is None:
        raise PackageValidationError("'app' not defined.")

    name = app.get("name").as_string()
    if name is None:
        raise PackageValidationError("'app.name' not defined.")

    parts = app.get("parts").as_array()
    if parts is None:
        raise PackageValidationError("'app.parts' not defined.")

    part0 = parts.at(0).as_frame()
    if part0 is None:
        raise PackageValidationError("'app.parts[0]' not defined.")

    data = part0.get("data").as_frame()
    if data is None:
        raise PackageValidationError("'app.parts[0].data' not defined.")

    symbol = data.get("app").as_symbol()
    if symbol is None:
        raise PackageValidationError("package symbol not defined.")

    label = data.get("text").as_string()
    if label is None:
        label = LABEL_PLACEHOLDER

    return PackageDescriptor(output_path=output_path, name=name, symbol=symbol, label=label)


def extract_descriptor(
    root: Value,
    default_output_path: Optional[Path],
    sink: ConsoleSink,
) -> Optional[PackageDescriptor]:
    """
    Extract the package descriptor, reporting the outcome on the console.

    Returns:
        The descriptor, or None after writing one error line
    """
    try:
        descriptor = read_descriptor(root, default_output_path)
    except PackageValidationError as e:
        sink.error(f"Error: cannot build package, {e.detail}")
        logger.info(
            f"Package validation failed: {e.detail}",
            extra={"event": "validation_failed", "metadata": {"detail": e.detail}},
        )
        return None

    sink.write_line("Info: package compiled.")
    logger.info(
        f"Package compiled: {descriptor.name}",
        extra={"event": "package_compiled", "metadata": descriptor.to_dict()},
    )
    return descriptor
