"""
CLI interface for the ntkit toolkit.

Provides commands: init, new, build, install, run, stop, eval,
decompile, status.
"""

import sys
from pathlib import Path
from typing import Optional

import click
import yaml

from ntkit import __version__
from ntkit.config import ToolkitConfig, get_toolkit_home, load_config
from ntkit.console import RichConsoleSink
from ntkit.extractor import PackageDescriptor
from ntkit.pipeline import ActionResult, Toolkit
from ntkit.script import Script, available_samples, load_sample
from ntkit.target import EchoTarget
from ntkit.utils import (
    format_duration,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_logging,
)


@click.group()
@click.version_option(version=__version__, prog_name="ntkit")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom configuration file (default: ~/.config/ntkit/config.yaml)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_path, verbose):
    """
    ntkit - NewtonScript toolkit.

    Builds a NewtonScript program into a package and installs, runs or
    stops it on a running Newton emulator.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    try:
        ctx.obj["config"] = load_config(config_path)
    except FileNotFoundError:
        if config_path:
            raise
        # no config yet: defaults until `ntkit init` writes one
        ctx.obj["config"] = ToolkitConfig()
    except Exception as e:
        print_error(f"Configuration invalid: {e}")
        raise SystemExit(1)


def _make_toolkit(ctx, dry_run: bool = False) -> Toolkit:
    config: ToolkitConfig = ctx.obj["config"]
    level = "DEBUG" if ctx.obj.get("verbose") else config.logging.level
    logger = setup_logging(
        config.get_log_file_path(),
        level,
        config.logging.format,
        config.logging.console or ctx.obj.get("verbose", False),
    )
    sink = RichConsoleSink()
    target = EchoTarget(sink) if dry_run else None
    return Toolkit(config, sink=sink, target=target, logger=logger)


def _load_script(source: str) -> Script:
    if source == "-":
        return Script.inline(sys.stdin.read())
    return Script.from_file(Path(source))


def _finish(result: ActionResult) -> None:
    if result.success:
        summary = f"{result.action} finished in {format_duration(result.duration_seconds)}"
        if result.descriptor:
            summary += f" ({result.descriptor.name}, {result.descriptor.output_path})"
        print_success(summary)
        raise SystemExit(0)
    print_error(f"{result.action} failed: {result.error_message}")
    raise SystemExit(1)


def _script_action(ctx, action: str, script_arg: str, dry_run: bool = False) -> None:
    try:
        script = _load_script(script_arg)
    except Exception as e:
        print_error(str(e))
        raise SystemExit(1)
    toolkit = _make_toolkit(ctx, dry_run=dry_run)
    _finish(getattr(toolkit, action)(script))


dry_run_option = click.option(
    "--dry-run",
    is_flag=True,
    help="Print target commands instead of sending them",
)


@main.command()
@click.argument("script")
@click.pass_context
def build(ctx, script):
    """
    Compile SCRIPT into a package.

    SCRIPT is a NewtonScript file, or - to read an unnamed script from
    stdin (the package then goes to the scratch directory).

    Examples:

      ntkit build hello.nwt

      cat hello.nwt | ntkit build -
    """
    _script_action(ctx, "build", script)


@main.command()
@click.argument("script")
@dry_run_option
@click.pass_context
def install(ctx, script, dry_run):
    """Build SCRIPT and install the package on the emulator."""
    _script_action(ctx, "install", script, dry_run)


@main.command()
@click.argument("script")
@dry_run_option
@click.pass_context
def run(ctx, script, dry_run):
    """Build, install and open SCRIPT on the emulator."""
    _script_action(ctx, "run", script, dry_run)


@main.command()
@click.option("--symbol", help="Package symbol (default: last package built)")
@dry_run_option
@click.pass_context
def stop(ctx, symbol, dry_run):
    """
    Close the running app on the emulator.

    Examples:

      ntkit stop

      ntkit stop --symbol 'Hello:TOOLKIT'
    """
    toolkit = _make_toolkit(ctx, dry_run=dry_run)
    descriptor: Optional[PackageDescriptor] = None
    if symbol:
        descriptor = PackageDescriptor(output_path=None, name=symbol, symbol=symbol)
    _finish(toolkit.stop(descriptor))


@main.command("eval")
@click.argument("command", required=False)
@dry_run_option
@click.pass_context
def eval_command(ctx, command, dry_run):
    """
    Send a NewtonScript COMMAND to the emulator.

    The command can also be piped through stdin. Commands longer than the
    target's limit (256 characters by default) are refused.
    """
    if not command:
        if sys.stdin.isatty():
            raise click.UsageError("No command provided")
        command = sys.stdin.read()
    if not command.strip():
        raise click.UsageError("Empty command")

    toolkit = _make_toolkit(ctx, dry_run=dry_run)
    if not toolkit.evaluate(command):
        raise SystemExit(1)
    print_success("command sent")


@main.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the NewtonScript source here instead of stdout",
)
@click.pass_context
def decompile(ctx, package, output):
    """Decompile PACKAGE back into NewtonScript source."""
    toolkit = _make_toolkit(ctx)
    source = toolkit.decompile(package)
    if source is None:
        print_error(f"Could not decompile {package}")
        raise SystemExit(1)
    if output:
        output.write_text(source, encoding="utf-8")
        print_success(f"Wrote {output}")
    else:
        click.echo(source, nl=False)


@main.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option(
    "--sample",
    type=click.Choice(available_samples()),
    default="hello_world",
    show_default=True,
    help="Sample script to start from",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def new(path, sample, force):
    """Create a new script at PATH from a sample."""
    if path.exists() and not force:
        print_error(f"{path} already exists. Use --force to overwrite.")
        raise SystemExit(1)
    path.write_text(load_sample(sample), encoding="utf-8")
    print_success(f"Created {path} from sample '{sample}'")


@main.command()
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force):
    """Initialize ntkit configuration."""
    home = get_toolkit_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.")
        raise SystemExit(1)

    default_cfg = ToolkitConfig(home=home).to_dict()
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))
    click.echo(f"Initialized ntkit config at {cfg_path}")


@main.command()
@click.pass_context
def status(ctx):
    """Show the last package built."""
    toolkit = Toolkit(ctx.obj["config"], target=EchoTarget())
    state = toolkit.status()
    if not state:
        print_info("No previous builds found")
        return

    descriptor = state.get("descriptor") or {}
    ok = state.get("success")
    print_info(f"Last action: {state.get('action')} at {state.get('started_at')}")
    if ok:
        print_success("Status: SUCCESS")
    else:
        print_warning(f"Status: FAILED ({state.get('error_message')})")
    click.echo(f"Name:    {descriptor.get('name')}")
    click.echo(f"Symbol:  {descriptor.get('symbol')}")
    click.echo(f"Label:   {descriptor.get('label')}")
    click.echo(f"Package: {descriptor.get('output_path')}")


if __name__ == "__main__":
    main()
