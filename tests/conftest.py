import os
import re
from pathlib import Path

import pytest

from ntkit.config import TargetConfig, ToolkitConfig
from ntkit.console import BufferSink
from ntkit.interpreter.base import InterpreterSession
from ntkit.target import EchoTarget
from ntkit.values import NIL, Array, Frame, String, Symbol

_PKG_PATH = re.compile(r'newt\.pkgPath := "((?:[^"\\]|\\.)*)";')


def package_root(name="Hello:SIG", symbol="Hello:SIG", label="Hello", pkg_path=None):
    """Result graph of a program that defined a complete package."""
    data = {"app": Symbol(symbol)}
    if label is not None:
        data["text"] = String(label)
    app = Frame({
        "name": String(name),
        "parts": Array((Frame({"data": Frame(data)}),)),
    })
    slots = {"app": app}
    if pkg_path is not None:
        slots["pkgPath"] = String(str(pkg_path))
    return Frame(slots)


class FakeSession(InterpreterSession):
    """
    In-process stand-in for an interpreter session.

    execute() returns the configured outcome and output; writePkg writes a
    small file to the package path found in the submitted source (or the
    root's pkgPath override).
    """

    def __init__(self, root=NIL, stdout="", stderr="", ok=True, write_ok=True, send_output=""):
        self.root = root
        self.stdout = stdout
        self.stderr = stderr
        self.ok = ok
        self.write_ok = write_ok
        self.send_output = send_output
        self.calls = []
        self.globals_set = {}
        self.sources = []
        self.cwd_during_execute = None
        self.base_dir = None
        self.shutdowns = 0
        self.init_args = None

    def initialize(self, args):
        self.calls.append("initialize")
        self.init_args = list(args)

    def execute(self, source, capture, base_dir):
        self.calls.append("execute")
        self.sources.append(source)
        self.base_dir = base_dir
        self.cwd_during_execute = os.getcwd()
        capture.write_stdout(self.stdout)
        capture.write_stderr(self.stderr)
        return self.ok

    def get_global(self, name):
        self.calls.append(f"get_global:{name}")
        if name == "newt":
            return self.root
        return NIL

    def set_global(self, name, value):
        self.calls.append(f"set_global:{name}")
        self.globals_set[name] = value

    def send_message(self, receiver, selector, capture):
        self.calls.append(f"send:{receiver}:{selector}")
        capture.write_stdout(self.send_output)
        if selector == "writePkg" and self.write_ok:
            path = self.package_path()
            if path is not None:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_bytes(b"package")
        return self.write_ok

    def shutdown(self):
        self.calls.append("shutdown")
        self.shutdowns += 1

    def package_path(self):
        override = self.root.as_frame().get("pkgPath").as_string() if self.root.as_frame() else None
        if override:
            return Path(override)
        for source in reversed(self.sources):
            match = _PKG_PATH.search(source)
            if match:
                return Path(match.group(1).replace('\\"', '"').replace("\\\\", "\\"))
        return None


@pytest.fixture
def sink():
    return BufferSink()


@pytest.fixture
def echo_target(sink):
    return EchoTarget(sink)


@pytest.fixture
def toolkit_home(tmp_path, monkeypatch):
    home = tmp_path / "ntkit-home"
    monkeypatch.setenv("NTKIT_HOME", str(home))
    return home


@pytest.fixture
def toolkit_config(toolkit_home):
    return ToolkitConfig(home=toolkit_home, target=TargetConfig(kind="echo"))


@pytest.fixture
def fake_session():
    return FakeSession(root=package_root())


@pytest.fixture
def session_factory(fake_session):
    return lambda config: fake_session


@pytest.fixture
def script_file(tmp_path):
    path = tmp_path / "project" / "hello.nwt"
    path.parent.mkdir()
    path.write_text('|ntkit:log|("hello");\n')
    return path
