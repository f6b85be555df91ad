import json

import pytest
import yaml
from click.testing import CliRunner

from conftest import FakeSession, package_root
from ntkit.cli import main
from ntkit.values import NIL


class Backend:
    """Session factory handing out FakeSessions with the configured result."""

    def __init__(self):
        self.root = package_root()
        self.stdout = ""
        self.sessions = []

    def __call__(self, config):
        session = FakeSession(root=self.root, stdout=self.stdout)
        self.sessions.append(session)
        return session


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def backend(monkeypatch, toolkit_home):
    backend = Backend()
    monkeypatch.setattr("ntkit.pipeline.get_session_factory", lambda name: backend)
    return backend


def test_init_creates_config(runner, toolkit_home):
    result = runner.invoke(main, ["init"])
    assert result.exit_code == 0
    assert "Initialized ntkit config" in result.output

    cfg = yaml.safe_load((toolkit_home / "config.yaml").read_text())
    assert cfg["interpreter"]["backend"] == "newt"
    assert cfg["target"]["command_limit"] == 256


def test_init_does_not_overwrite_without_force(runner, toolkit_home):
    toolkit_home.mkdir(parents=True)
    (toolkit_home / "config.yaml").write_text("existing: true")

    result = runner.invoke(main, ["init"])
    assert result.exit_code == 1
    assert "Config already exists" in result.output
    assert (toolkit_home / "config.yaml").read_text() == "existing: true"


def test_init_force_overwrites(runner, toolkit_home):
    toolkit_home.mkdir(parents=True)
    (toolkit_home / "config.yaml").write_text("existing: true")

    result = runner.invoke(main, ["init", "--force"])
    assert result.exit_code == 0
    assert "target" in yaml.safe_load((toolkit_home / "config.yaml").read_text())


def test_invalid_config_file(runner, toolkit_home, tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text(yaml.safe_dump({"target": {"kind": "serial"}}))
    result = runner.invoke(main, ["--config", str(bad), "status"])
    assert result.exit_code == 1


def test_new_from_sample(runner, toolkit_home, tmp_path):
    path = tmp_path / "hello.nwt"
    result = runner.invoke(main, ["new", str(path)])
    assert result.exit_code == 0
    assert "Hello, World!" in path.read_text()

    again = runner.invoke(main, ["new", str(path)])
    assert again.exit_code == 1


@pytest.mark.parametrize("sample, text", [
    ("native_function", "NativeFunction:TOOLKIT"),
    ("rom_patcher", "ROMPatcher:TOOLKIT"),
])
def test_new_from_named_sample(runner, toolkit_home, tmp_path, sample, text):
    path = tmp_path / f"{sample}.nwt"
    result = runner.invoke(main, ["new", "--sample", sample, str(path)])
    assert result.exit_code == 0, result.output
    assert text in path.read_text()


def test_build_file(runner, backend, script_file, toolkit_home):
    result = runner.invoke(main, ["build", str(script_file)])

    assert result.exit_code == 0, result.output
    assert "Compiling file..." in result.output
    assert script_file.with_suffix(".pkg").exists()
    state = json.loads((toolkit_home / "state.json").read_text())
    assert state["descriptor"]["name"] == "Hello:SIG"


def test_build_from_stdin(runner, backend, toolkit_home):
    result = runner.invoke(main, ["build", "-"], input="x := 1;\n")

    assert result.exit_code == 0, result.output
    assert "Compiling inline..." in result.output
    assert (toolkit_home / "scratch" / "tmp.pkg").exists()
    assert "x := 1;" in backend.sessions[0].sources[0]


def test_build_missing_file(runner, backend, tmp_path):
    result = runner.invoke(main, ["build", str(tmp_path / "missing.nwt")])
    assert result.exit_code == 1
    assert backend.sessions == []


def test_build_validation_failure(runner, backend, script_file):
    backend.root = NIL
    result = runner.invoke(main, ["build", str(script_file)])

    assert result.exit_code == 1
    assert "root not defined." in result.output
    assert not script_file.with_suffix(".pkg").exists()


def test_run_dry_run(runner, backend, script_file):
    result = runner.invoke(main, ["run", "--dry-run", str(script_file)])

    assert result.exit_code == 0, result.output
    assert "[target] GetRoot().|Hello:SIG|:Open();" in result.output
    assert "Installing..." in result.output


def test_stop_after_build(runner, backend, script_file):
    runner.invoke(main, ["build", str(script_file)])
    result = runner.invoke(main, ["stop", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "Stop..." in result.output
    assert "|Hello:SIG|:Close();" in result.output


def test_stop_explicit_symbol(runner, backend):
    result = runner.invoke(main, ["stop", "--dry-run", "--symbol", "Other:SIG"])
    assert result.exit_code == 0, result.output
    assert "|Other:SIG|:Close();" in result.output


def test_stop_without_package(runner, backend):
    result = runner.invoke(main, ["stop", "--dry-run"])
    assert result.exit_code == 1


def test_eval(runner, backend):
    result = runner.invoke(main, ["eval", "--dry-run", "Print(1);"])
    assert result.exit_code == 0, result.output
    assert "[target] Print(1);" in result.output


def test_eval_from_stdin(runner, backend):
    result = runner.invoke(main, ["eval", "--dry-run"], input="Print(2);\n")
    assert result.exit_code == 0, result.output
    assert "[target] Print(2);" in result.output


def test_eval_too_long(runner, backend):
    result = runner.invoke(main, ["eval", "--dry-run", "x" * 300])
    assert result.exit_code == 1
    assert "[target]" not in result.output


def test_decompile(runner, backend, tmp_path):
    pkg = tmp_path / "hello.pkg"
    pkg.write_bytes(b"package")
    backend.stdout = "newt.app := {};\n"

    result = runner.invoke(main, ["decompile", str(pkg)])
    assert result.exit_code == 0, result.output
    assert "newt.app := {};" in result.output

    out = tmp_path / "hello.nwt"
    result = runner.invoke(main, ["decompile", str(pkg), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert out.read_text() == "newt.app := {};\n"


def test_decompile_failure(runner, backend, tmp_path):
    pkg = tmp_path / "hello.pkg"
    pkg.write_bytes(b"package")
    result = runner.invoke(main, ["decompile", str(pkg)])
    assert result.exit_code == 1


def test_status(runner, backend, script_file):
    result = runner.invoke(main, ["status"])
    assert result.exit_code == 0
    assert "No previous builds found" in result.output

    runner.invoke(main, ["build", str(script_file)])
    result = runner.invoke(main, ["status"])
    assert result.exit_code == 0
    assert "Hello:SIG" in result.output
    assert "SUCCESS" in result.output
