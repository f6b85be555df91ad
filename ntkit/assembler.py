"""
Source assembly.

A build compiles exactly one unit, concatenated in a fixed order:

    newton_defs, bytecode_defs, toolkit_defs, default_package,
    path assignment, guard open, launch, user source, done, guard close

Later fragments refer to symbols defined by earlier ones, so the order is
load-bearing. User source is embedded verbatim.

The guard runs launch, user source and done inside one try block. A
runtime exception is stored in |ntkit:failure| instead of ending the
run, so the state built up to that point can still be read back.
"""

import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import List, Optional, Tuple

from ntkit.errors import AssemblyError
from ntkit.script import Script

logger = logging.getLogger(__name__)

PRELUDE_PACKAGE = "ntkit.prelude"

PRELUDE_FRAGMENTS = ("newton_defs", "bytecode_defs", "toolkit_defs", "default_package")
TRAILER_LAUNCH = "launch"
TRAILER_DONE = "done"
PATH_FRAGMENT = "pkg_path"
USER_FRAGMENT = "user"
GUARD_OPEN = "guard_open"
GUARD_CLOSE = "guard_close"

GUARD_OPEN_TEXT = "try\n"
GUARD_CLOSE_TEXT = "nil\nonexception |evt.ex| do\n  |ntkit:failure| := CurrentException();\n"


@dataclass(frozen=True)
class Fragment:
    name: str
    text: str


@dataclass(frozen=True)
class CompilationUnit:
    """Ordered fragments submitted to the interpreter as one source text."""

    fragments: Tuple[Fragment, ...]

    @property
    def text(self) -> str:
        return "".join(f.text for f in self.fragments)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fragments]

    def index_of(self, name: str) -> int:
        return self.names.index(name)

    def offset_of(self, name: str) -> int:
        """Character offset of a fragment within text."""
        offset = 0
        for f in self.fragments:
            if f.name == name:
                return offset
            offset += len(f.text)
        raise ValueError(f"No fragment named {name}")


def quote_string(text: str) -> str:
    """Render text as a NewtonScript string literal."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def symbol_literal(name: str) -> str:
    """Render name as a |quoted| NewtonScript symbol (without the leading quote)."""
    escaped = name.replace("\\", "\\\\").replace("|", "\\|")
    return f"|{escaped}|"


def path_assignment(path: Path) -> str:
    return f"newt.pkgPath := {quote_string(str(path))};\n"


def _ensure_newline(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"


class SourceAssembler:
    """Builds the compilation unit for a script."""

    def __init__(self, prelude_dir: Optional[Path] = None):
        """
        Args:
            prelude_dir: Directory whose <name>.nwt files replace the
                shipped prelude fragments of the same name
        """
        self.prelude_dir = Path(prelude_dir) if prelude_dir else None

    def load_fragment(self, name: str) -> Fragment:
        filename = f"{name}.nwt"
        if self.prelude_dir and (self.prelude_dir / filename).exists():
            text = (self.prelude_dir / filename).read_text(encoding="utf-8")
        else:
            text = resources.files(PRELUDE_PACKAGE).joinpath(filename).read_text(encoding="utf-8")
        return Fragment(name, _ensure_newline(text))

    def read_user_source(self, script: Script) -> str:
        """
        Source text of the script.

        File-backed scripts are saved first when dirty and then read back
        from disk, so the compiled package always matches the saved file.
        """
        if not script.has_file():
            return script.read_memory_buffer()

        if script.is_dirty():
            script.persist()

        path = script.file_path()
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise AssemblyError(f"Cannot read script {path}: {e.strerror or e}")

    def assemble(self, script: Script, output_path: Path) -> CompilationUnit:
        user_source = self.read_user_source(script)

        fragments = [self.load_fragment(name) for name in PRELUDE_FRAGMENTS]
        fragments.append(Fragment(PATH_FRAGMENT, path_assignment(output_path)))
        fragments.append(Fragment(GUARD_OPEN, GUARD_OPEN_TEXT))
        fragments.append(self.load_fragment(TRAILER_LAUNCH))
        fragments.append(Fragment(USER_FRAGMENT, _ensure_newline(user_source)))
        fragments.append(self.load_fragment(TRAILER_DONE))
        fragments.append(Fragment(GUARD_CLOSE, GUARD_CLOSE_TEXT))

        unit = CompilationUnit(tuple(fragments))
        logger.debug(
            f"Assembled {len(unit.fragments)} fragments for {script.display_name}",
            extra={
                "event": "source_assembled",
                "metadata": {"chars": len(unit.text), "output_path": str(output_path)},
            },
        )
        return unit
