"""The script being built: a file on disk or an unnamed in-memory buffer."""

from importlib import resources
from pathlib import Path
from typing import List, Optional

from ntkit.errors import AssemblyError


SAMPLES_PACKAGE = "ntkit.samples"


class Script:
    """
    Current script source.

    A script either has a file (and may be dirty, i.e. the memory buffer
    differs from the file) or is unnamed and lives only in memory.
    """

    def __init__(self, path: Optional[Path] = None, source: str = "", dirty: bool = False):
        self.path = Path(path) if path is not None else None
        self.source = source
        self.dirty = dirty

    @classmethod
    def from_file(cls, path: Path) -> "Script":
        path = Path(path)
        try:
            source = path.read_text(encoding="utf-8")
        except OSError as e:
            raise AssemblyError(f"Cannot read script {path}: {e.strerror or e}")
        return cls(path=path, source=source)

    @classmethod
    def inline(cls, source: str) -> "Script":
        return cls(path=None, source=source)

    def has_file(self) -> bool:
        return self.path is not None

    def file_path(self) -> Optional[Path]:
        return self.path

    def is_dirty(self) -> bool:
        return self.dirty

    def set_source(self, source: str) -> None:
        self.source = source
        self.dirty = True

    def read_memory_buffer(self) -> str:
        # str is immutable; this is already a private copy
        return self.source

    def persist(self) -> None:
        """Write the memory buffer to the script file and clear the dirty flag."""
        if self.path is None:
            raise AssemblyError("Cannot save an unnamed script")
        try:
            self.path.write_text(self.source, encoding="utf-8")
        except OSError as e:
            raise AssemblyError(f"Cannot save script {self.path}: {e.strerror or e}")
        self.dirty = False

    @property
    def display_name(self) -> str:
        return str(self.path) if self.path else "(no file)"

    def __repr__(self) -> str:
        return f"Script(path={self.path}, dirty={self.dirty})"


def available_samples() -> List[str]:
    """Names of the sample scripts shipped with ntkit."""
    return sorted(
        entry.name[: -len(".nwt")]
        for entry in resources.files(SAMPLES_PACKAGE).iterdir()
        if entry.name.endswith(".nwt")
    )


def load_sample(name: str) -> str:
    """Source of a shipped sample script. Raises KeyError for unknown names."""
    if name not in available_samples():
        raise KeyError(name)
    return resources.files(SAMPLES_PACKAGE).joinpath(f"{name}.nwt").read_text(encoding="utf-8")
