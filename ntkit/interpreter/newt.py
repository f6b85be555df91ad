"""
Session backend for the newt/0 command-line NewtonScript interpreter.

newt runs as a child process, so the global environment does not survive
the run. Every execute() therefore appends an epilogue that prints the
exported globals as tagged JSON after a marker line; program output is
everything printed before the marker.

Messages are sent by running the last unit again with the send appended.
Only output printed after the send marker is captured from that run, and
only the part of its stderr that differs from the unit run.

A build unit catches its own runtime exception into |ntkit:failure|; the
epilogue throws it again after the dump, so newt still reports the error
and exits non-zero while the globals the program left are kept.
"""

import json
import logging
import os
import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ntkit.assembler import quote_string, symbol_literal
from ntkit.config import InterpreterConfig
from ntkit.errors import InterpreterError
from ntkit.interpreter.base import InterpreterSession, OutputCapture
from ntkit.values import NIL, Array, Frame, String, Symbol, Value, from_json

logger = logging.getLogger(__name__)

DUMP_MARKER = "--ntkit:dump--"
SEND_MARKER = "--ntkit:send--"
DUMP_DEPTH = 8

_SELECTOR = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Serializes frames, arrays, strings and symbols as tagged JSON.
# _parent and _proto are skipped; depth bounds any remaining cycles.
DUMP_DEFS = r"""
global |ntkit:quote| := func(s)
begin
  local r := "\"";
  for i := 0 to StrLen(s) - 1 do
  begin
    local n := Ord(s[i]);
    if n = 34 then r := r & "\\\""
    else if n = 92 then r := r & "\\\\"
    else if n = 10 or n = 13 then r := r & "\\n"
    else if n = 9 then r := r & "\\t"
    else if n < 32 then r := r & " "
    else r := r & s[i];
  end;
  return r & "\"";
end;

global |ntkit:dump| := func(v, depth)
begin
  if v = nil or depth <= 0 then return "null";
  if IsString(v) then return "{\"string\":" & |ntkit:quote|(v) & "}";
  if IsSymbol(v) then return "{\"symbol\":" & |ntkit:quote|(SPrintObject(v)) & "}";
  if IsArray(v) then
  begin
    local s := "{\"array\":[";
    local sep := "";
    foreach x in v do
    begin
      s := s & sep & |ntkit:dump|(x, depth - 1);
      sep := ",";
    end;
    return s & "]}";
  end;
  if IsFrame(v) then
  begin
    local s := "{\"frame\":{";
    local sep := "";
    foreach k, x in v do
      if k <> '_parent and k <> '_proto then
      begin
        s := s & sep & |ntkit:quote|(SPrintObject(k)) & ":" & |ntkit:dump|(x, depth - 1);
        sep := ",";
      end;
    return s & "}}";
  end;
  return "{\"other\":" & |ntkit:quote|(SPrintObject(ClassOf(v))) & "}";
end;

global |ntkit:dumpGlobal| := func(sym)
begin
  if GlobalVarExists(sym) then return |ntkit:dump|(GetGlobalVar(sym), __DEPTH__);
  return "null";
end;
""".replace("__DEPTH__", str(DUMP_DEPTH))

# Runs after the dump. A failure caught by the unit's guard is raised again.
RETHROW = r"""if GlobalVarExists('|ntkit:failure|) and GetGlobalVar('|ntkit:failure|) then
begin
  local ex := GetGlobalVar('|ntkit:failure|);
  Throw(ex.name, ex.data);
end;
"""


def to_literal(value: Value) -> str:
    """Render a value as NewtonScript source."""
    if isinstance(value, String):
        return quote_string(value.text)
    if isinstance(value, Symbol):
        return "'" + symbol_literal(value.name)
    if isinstance(value, Array):
        return "[" + ", ".join(to_literal(v) for v in value.items) + "]"
    if isinstance(value, Frame):
        slots = ", ".join(
            f"{symbol_literal(k)}: {to_literal(v)}" for k, v in value.slots.items()
        )
        return "{" + slots + "}"
    return "nil"


def dump_epilogue(exports: Sequence[str]) -> str:
    parts = " & \",\" & ".join(
        f"{quote_string(json.dumps(name))} & \":\" & |ntkit:dumpGlobal|('{symbol_literal(name)})"
        for name in exports
    )
    if not parts:
        parts = '""'
    return (
        f"\n{DUMP_DEFS}\n"
        f"print(\"\\n{DUMP_MARKER}\\n\");\n"
        f"print(\"{{\" & {parts} & \"}}\\n\");\n"
        f"{RETHROW}"
    )


def new_output(previous: str, current: str) -> str:
    """Lines of current that follow the lines it shares with previous."""
    shared = os.path.commonprefix([previous, current])
    return current[shared.rfind("\n") + 1:]


class NewtSession(InterpreterSession):
    """Interpreter session backed by the `newt` executable."""

    def __init__(self, config: Optional[InterpreterConfig] = None):
        self.config = config or InterpreterConfig()
        self.exports: List[str] = list(self.config.exports)
        self.args: List[str] = []
        self.workdir: Optional[Path] = None
        self.executable: Optional[str] = None
        self._preamble: Dict[str, Value] = {}
        self._globals: Dict[str, Value] = {}
        self._last_source: Optional[str] = None
        self._base_dir: Optional[Path] = None
        self._unit_stderr = ""

    def initialize(self, args: Sequence[str]) -> None:
        executable = shutil.which(self.config.command)
        if executable is None:
            raise InterpreterError(
                f"NewtonScript interpreter '{self.config.command}' not found on PATH"
            )
        self.executable = executable
        self.args = list(args)
        self.workdir = Path(tempfile.mkdtemp(prefix="ntkit-"))
        logger.debug(
            f"Initialized newt session in {self.workdir}",
            extra={"event": "session_initialized", "metadata": {"executable": executable}},
        )

    def _require_initialized(self) -> None:
        if self.workdir is None:
            raise InterpreterError("Session used before initialize()")

    def set_global(self, name: str, value: Value) -> None:
        self._preamble[name] = value

    def get_global(self, name: str) -> Value:
        return self._globals.get(name, NIL)

    def _render_preamble(self) -> str:
        return "".join(
            f"global {symbol_literal(name)} := {to_literal(value)};\n"
            for name, value in self._preamble.items()
        )

    def _run(self, source: str, base_dir: Path, capture: OutputCapture, name: str) -> Tuple[bool, str, str]:
        """Run source; returns (exited cleanly, stdout, stderr)."""
        script_file = self.workdir / f"{name}.newt"
        script_file.write_text(source, encoding="utf-8")

        command = [self.executable, *self.args, str(script_file)]
        logger.debug(
            f"Running {' '.join(command)}",
            extra={"event": "interpreter_run", "metadata": {"cwd": str(base_dir)}},
        )
        try:
            proc = subprocess.run(
                command,
                cwd=base_dir,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except subprocess.TimeoutExpired:
            capture.write_stderr(
                f"Error: interpreter timed out after {self.config.timeout}s\n"
            )
            return False, "", ""
        except OSError as e:
            raise InterpreterError(f"Cannot run {self.executable}: {e}")

        if proc.returncode != 0:
            logger.info(
                f"Interpreter exited with status {proc.returncode}",
                extra={"event": "interpreter_failed", "metadata": {"returncode": proc.returncode}},
            )
        return proc.returncode == 0, proc.stdout or "", proc.stderr or ""

    def execute(self, source: str, capture: OutputCapture, base_dir: Path) -> bool:
        self._require_initialized()
        self._globals = {}
        self._last_source = self._render_preamble() + source
        self._base_dir = base_dir

        ok, stdout, stderr = self._run(
            self._last_source + dump_epilogue(self.exports), base_dir, capture, "unit"
        )
        self._unit_stderr = stderr
        capture.write_stderr(stderr)

        program_out, marker, dump = stdout.partition(f"\n{DUMP_MARKER}\n")
        capture.write_stdout(program_out)
        if not marker:
            # the unit did not compile
            return False

        try:
            raw = json.loads(dump)
            self._globals = {name: from_json(raw.get(name)) for name in self.exports}
        except ValueError as e:
            capture.write_stderr(f"Error: unreadable interpreter state: {e}\n")
            return False
        return ok

    def send_message(self, receiver: str, selector: str, capture: OutputCapture) -> bool:
        self._require_initialized()
        if self._last_source is None:
            raise InterpreterError("send_message() before execute()")
        if not _SELECTOR.match(selector):
            raise InterpreterError(f"Invalid selector: {selector}")

        source = (
            f"{self._last_source}\n"
            f"print(\"\\n{SEND_MARKER}\\n\");\n"
            f"{symbol_literal(receiver)}:{selector}();\n"
        )
        ok, stdout, stderr = self._run(source, self._base_dir, capture, "send")
        capture.write_stderr(new_output(self._unit_stderr, stderr))
        _, marker, after = stdout.partition(f"\n{SEND_MARKER}\n")
        capture.write_stdout(after)
        return ok and bool(marker)

    def shutdown(self) -> None:
        if self.workdir is not None:
            shutil.rmtree(self.workdir, ignore_errors=True)
            logger.debug(f"Removed session directory {self.workdir}", extra={"event": "session_shutdown"})
        self.workdir = None
        self._globals = {}
        self._last_source = None
        self._unit_stderr = ""
