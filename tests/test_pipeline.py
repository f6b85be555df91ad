"""Tests for the build-and-deploy pipeline."""

import json
import os

import pytest

from conftest import FakeSession, package_root
from ntkit.console import STDERR, STDOUT
from ntkit.deploy import CommandVerb, DeploymentCommand
from ntkit.errors import InterpreterError
from ntkit.extractor import LABEL_PLACEHOLDER, PackageDescriptor
from ntkit.pipeline import ACTIONS, Toolkit
from ntkit.script import Script
from ntkit.values import NIL, Frame


@pytest.fixture
def make_toolkit(toolkit_config, sink, echo_target):
    def _make(session):
        return Toolkit(
            toolkit_config,
            sink=sink,
            target=echo_target,
            session_factory=lambda config: session,
        )
    return _make


def _uninstall(symbol="Hello:SIG", name="Hello:SIG"):
    return DeploymentCommand(CommandVerb.UNINSTALL, symbol, name).render()


def test_action_stage_sequences():
    assert [s.name for s in ACTIONS["build"]] == ["build"]
    assert [s.name for s in ACTIONS["install"]] == ["build", "install"]
    assert [s.name for s in ACTIONS["run"]] == ["build", "install", "open"]
    assert [s.name for s in ACTIONS["stop"]] == ["close"]


class TestBuild:
    def test_root_not_defined(self, make_toolkit, sink, script_file):
        toolkit = make_toolkit(FakeSession(root=NIL))
        result = toolkit.build(Script.from_file(script_file))

        assert not result.success
        assert result.descriptor is None
        assert sink.stream_lines(STDERR) == ["Error: cannot build package, root not defined."]
        assert not script_file.with_suffix(".pkg").exists()

    def test_app_not_defined(self, make_toolkit, sink, script_file):
        toolkit = make_toolkit(FakeSession(root=Frame({})))
        result = toolkit.build(Script.from_file(script_file))

        assert not result.success
        assert sink.stream_lines(STDERR) == ["Error: cannot build package, 'app' not defined."]
        assert not script_file.with_suffix(".pkg").exists()

    def test_missing_label_still_builds(self, make_toolkit, sink, script_file):
        session = FakeSession(root=package_root(label=None))
        result = make_toolkit(session).build(Script.from_file(script_file))

        assert result.success
        assert result.descriptor.label == LABEL_PLACEHOLDER
        assert result.descriptor.output_path == script_file.with_suffix(".pkg")
        assert script_file.with_suffix(".pkg").read_bytes() == b"package"
        assert sink.stream_lines(STDOUT) == ["Compiling file...", "Info: package compiled."]

    def test_unnamed_script_uses_temp_path(self, make_toolkit, sink, toolkit_config):
        stale = toolkit_config.scratch_dir / "tmp.pkg"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"stale")

        result = make_toolkit(FakeSession(root=package_root())).build(Script.inline("x := 1;"))

        assert result.success
        assert result.descriptor.output_path == stale
        assert stale.read_bytes() == b"package"
        assert sink.stream_lines(STDOUT)[0] == "Compiling inline..."

    def test_stale_temp_package_removed_even_when_validation_fails(self, make_toolkit, toolkit_config):
        stale = toolkit_config.scratch_dir / "tmp.pkg"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"stale")

        result = make_toolkit(FakeSession(root=NIL)).build(Script.inline("x := 1;"))

        assert not result.success
        assert not stale.exists()

    def test_pkg_path_override(self, make_toolkit, script_file, tmp_path):
        override = tmp_path / "elsewhere" / "app.pkg"
        result = make_toolkit(FakeSession(root=package_root(pkg_path=override))).build(
            Script.from_file(script_file)
        )
        assert result.descriptor.output_path == override
        assert override.exists()
        assert not script_file.with_suffix(".pkg").exists()

    def test_program_error_does_not_stop_extraction(self, make_toolkit, sink, script_file):
        session = FakeSession(root=package_root(), ok=False, stderr="Error: oops\n")
        result = make_toolkit(session).build(Script.from_file(script_file))

        assert result.success
        assert result.stages["build"].metadata["executed"] is False
        assert "Error: oops" in sink.stream_lines(STDERR)

    def test_runs_in_script_directory_and_restores_cwd(self, make_toolkit, script_file):
        before = os.getcwd()
        session = FakeSession(root=package_root())
        make_toolkit(session).build(Script.from_file(script_file))

        assert session.cwd_during_execute == str(script_file.parent.resolve())
        assert session.base_dir == script_file.parent.resolve()
        assert os.getcwd() == before

    def test_cwd_restored_when_interpreter_fails(self, make_toolkit, sink, script_file):
        class CrashingSession(FakeSession):
            def execute(self, source, capture, base_dir):
                raise InterpreterError("interpreter crashed")

        before = os.getcwd()
        session = CrashingSession()
        result = make_toolkit(session).build(Script.from_file(script_file))

        assert not result.success
        assert os.getcwd() == before
        assert session.shutdowns == 1
        assert "Error: interpreter crashed" in sink.stream_lines(STDERR)

    def test_missing_script_file(self, make_toolkit, sink, tmp_path):
        session = FakeSession(root=package_root())
        result = make_toolkit(session).build(Script(path=tmp_path / "gone.nwt"))

        assert not result.success
        assert session.calls == []
        assert sink.stream_lines(STDERR)[0].startswith("Error: Script file not found")

    def test_session_shut_down_once(self, make_toolkit, script_file):
        session = FakeSession(root=package_root())
        make_toolkit(session).build(Script.from_file(script_file))
        assert session.shutdowns == 1
        assert session.calls[-1] == "shutdown"

    def test_state_saved_after_build(self, make_toolkit, toolkit_config, script_file):
        toolkit = make_toolkit(FakeSession(root=package_root()))
        toolkit.build(Script.from_file(script_file))

        state = json.loads(toolkit_config.state_file.read_text())
        assert state["action"] == "build"
        assert state["success"] is True
        assert state["descriptor"]["symbol"] == "Hello:SIG"
        assert toolkit.status() == state

    def test_failed_build_keeps_previous_descriptor(self, make_toolkit, script_file):
        toolkit = make_toolkit(FakeSession(root=package_root()))
        first = toolkit.build(Script.from_file(script_file))

        toolkit._session_factory = lambda config: FakeSession(root=NIL)
        toolkit.build(Script.from_file(script_file))

        assert toolkit.descriptor == first.descriptor


class TestDeploy:
    def test_install_sends_uninstall_then_install(self, make_toolkit, echo_target, script_file):
        result = make_toolkit(FakeSession(root=package_root())).install(Script.from_file(script_file))

        assert result.success
        assert echo_target.sent == [
            ("eval", _uninstall()),
            ("install", str(script_file.with_suffix(".pkg"))),
        ]

    def test_run_opens_after_install(self, make_toolkit, echo_target, sink, script_file):
        result = make_toolkit(FakeSession(root=package_root())).run(Script.from_file(script_file))

        assert result.success
        assert [kind for kind, _ in echo_target.sent] == ["eval", "install", "eval"]
        assert echo_target.sent[0][1] == _uninstall()
        assert echo_target.sent[2] == ("eval", "GetRoot().|Hello:SIG|:Open();\n")
        console = sink.stream_lines(STDOUT)
        assert console.index("Installing...") < console.index("Run...")

    def test_failed_build_sends_nothing(self, make_toolkit, echo_target, script_file):
        result = make_toolkit(FakeSession(root=NIL)).run(Script.from_file(script_file))

        assert not result.success
        assert list(result.stages) == ["build"]
        assert echo_target.sent == []

    def test_stop_uses_last_build(self, make_toolkit, echo_target, script_file):
        toolkit = make_toolkit(FakeSession(root=package_root()))
        toolkit.build(Script.from_file(script_file))
        result = toolkit.stop()

        assert result.success
        assert echo_target.sent == [
            ("eval", DeploymentCommand(CommandVerb.CLOSE, "Hello:SIG").render())
        ]

    def test_stop_reads_saved_state(self, make_toolkit, echo_target, script_file):
        make_toolkit(FakeSession(root=package_root())).build(Script.from_file(script_file))

        fresh = make_toolkit(FakeSession())
        assert fresh.descriptor is None
        result = fresh.stop()

        assert result.success
        assert "|Hello:SIG|" in echo_target.sent[-1][1]

    def test_stop_explicit_descriptor(self, make_toolkit, echo_target):
        descriptor = PackageDescriptor(None, "Other:SIG", "Other:SIG")
        assert make_toolkit(FakeSession()).stop(descriptor).success
        assert "|Other:SIG|" in echo_target.sent[0][1]

    def test_stop_without_package(self, make_toolkit, sink, echo_target):
        result = make_toolkit(FakeSession()).stop()

        assert not result.success
        assert echo_target.sent == []
        assert sink.stream_lines(STDERR) == ["Error: No package has been built"]

    def test_install_refuses_long_command(self, make_toolkit, sink, echo_target, script_file):
        symbol = "S" * 120
        session = FakeSession(root=package_root(name=symbol, symbol=symbol))
        result = make_toolkit(session).install(Script.from_file(script_file))

        assert not result.success
        assert echo_target.sent == []
        assert "target accepts at most 256" in sink.stream_lines(STDERR)[-1]


class TestEvaluate:
    def test_sends_command(self, make_toolkit, echo_target):
        assert make_toolkit(FakeSession()).evaluate("Print(1);")
        assert echo_target.sent == [("eval", "Print(1);")]

    def test_refuses_long_command(self, make_toolkit, sink, echo_target):
        assert not make_toolkit(FakeSession()).evaluate("x" * 300)
        assert echo_target.sent == []
        assert sink.stream_lines(STDERR) == [
            "Error: command is 300 characters, target accepts at most 256"
        ]


class TestDecompile:
    def test_returns_interpreter_output(self, make_toolkit, tmp_path):
        pkg = tmp_path / "hello.pkg"
        pkg.write_bytes(b"package")
        session = FakeSession(stdout="newt.app := {};\n")

        source = make_toolkit(session).decompile(pkg)

        assert source == "newt.app := {};\n"
        assert "ReadPkg(LoadBinary(" in session.sources[0]
        assert session.base_dir == tmp_path.resolve()
        assert session.shutdowns == 1

    def test_no_output_is_failure(self, make_toolkit, sink, tmp_path):
        session = FakeSession(stderr="Error: bad package\n")
        assert make_toolkit(session).decompile(tmp_path / "x.pkg") is None
        assert sink.stream_lines(STDERR) == ["Error: bad package"]


def test_status_without_state(make_toolkit):
    toolkit = make_toolkit(FakeSession())
    assert toolkit.status() is None
    assert toolkit.load_state() is None
