"""
Configuration management for ntkit.

Loads and validates ~/.config/ntkit/config.yaml (or $NTKIT_HOME/config.yaml).
"""

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from ntkit.errors import ToolkitError


DEFAULT_COMMAND_LIMIT = 256
DEFAULT_TARGET_PORT = 3679
TARGET_KINDS = ("socket", "echo")
LOG_FORMATS = ("structured", "pretty")


class ConfigError(ToolkitError):
    """Configuration validation error."""
    pass


def get_toolkit_home() -> Path:
    """Return the ntkit home directory ($NTKIT_HOME or ~/.config/ntkit)."""
    home = os.environ.get("NTKIT_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/ntkit").expanduser()


@dataclass
class InterpreterConfig:
    """Which interpreter backend compiles scripts, and how to start it."""

    backend: str = "newt"
    command: str = "newt"
    args: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=lambda: ["newt"])
    timeout: Optional[float] = None


@dataclass
class TargetConfig:
    """Where deployment commands are sent."""

    kind: str = "socket"
    host: str = "127.0.0.1"
    port: int = DEFAULT_TARGET_PORT
    timeout: float = 5.0
    command_limit: int = DEFAULT_COMMAND_LIMIT


@dataclass
class BuildConfig:
    """Build behavior."""

    change_directory: bool = True
    prelude_dir: Optional[Path] = None


@dataclass
class LoggingConfig:
    """Log file and console logging."""

    level: str = "INFO"
    output: str = "logs/ntkit-{date}.log"
    format: str = "structured"
    console: bool = False


@dataclass
class ToolkitConfig:
    """Complete ntkit configuration."""

    home: Path = field(default_factory=get_toolkit_home)
    scratch_dir: Optional[Path] = None
    state_file: Optional[Path] = None
    # Loaded into os.environ for the interpreter child process (e.g. NEWTLIB).
    # ntkit itself reads no settings from it; NTKIT_HOME is resolved earlier.
    env_file: Optional[Path] = None
    interpreter: InterpreterConfig = field(default_factory=InterpreterConfig)
    target: TargetConfig = field(default_factory=TargetConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        self.home = Path(self.home).expanduser()
        if self.scratch_dir is None:
            self.scratch_dir = self.home / "scratch"
        else:
            self.scratch_dir = Path(self.scratch_dir).expanduser()
        if self.state_file is None:
            self.state_file = self.home / "state.json"
        else:
            self.state_file = Path(self.state_file).expanduser()

    def get_log_file_path(self) -> Path:
        """Get log file path with date interpolation, relative to home."""
        log_output = self.logging.output.replace(
            "{date}", datetime.now().strftime("%Y-%m-%d")
        )
        path = Path(log_output).expanduser()
        if not path.is_absolute():
            path = self.home / path
        return path

    def validate(self) -> None:
        """Validate configuration values."""
        if self.target.kind not in TARGET_KINDS:
            raise ConfigError(
                f"target.kind must be one of {', '.join(TARGET_KINDS)}, got '{self.target.kind}'"
            )
        if self.target.command_limit <= 0:
            raise ConfigError("target.command_limit must be positive")
        if not 0 < self.target.port < 65536:
            raise ConfigError(f"target.port out of range: {self.target.port}")
        if self.logging.format not in LOG_FORMATS:
            raise ConfigError(
                f"logging.format must be one of {', '.join(LOG_FORMATS)}, got '{self.logging.format}'"
            )
        if self.build.prelude_dir and not self.build.prelude_dir.is_dir():
            raise ConfigError(
                f"build.prelude_dir does not exist: {self.build.prelude_dir}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the YAML layout written by `ntkit init`."""
        return {
            "scratch_dir": str(self.scratch_dir),
            "env_file": str(self.env_file) if self.env_file else None,
            "interpreter": {
                "backend": self.interpreter.backend,
                "command": self.interpreter.command,
                "args": list(self.interpreter.args),
                "exports": list(self.interpreter.exports),
                "timeout": self.interpreter.timeout,
            },
            "target": {
                "kind": self.target.kind,
                "host": self.target.host,
                "port": self.target.port,
                "timeout": self.target.timeout,
                "command_limit": self.target.command_limit,
            },
            "build": {
                "change_directory": self.build.change_directory,
                "prelude_dir": str(self.build.prelude_dir) if self.build.prelude_dir else None,
            },
            "logging": {
                "level": self.logging.level,
                "output": self.logging.output,
                "format": self.logging.format,
                "console": self.logging.console,
            },
        }


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _build(cls, data: Dict[str, Any], name: str):
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section: {e}")


def config_from_dict(raw: Dict[str, Any], home: Optional[Path] = None) -> ToolkitConfig:
    """Build a ToolkitConfig from parsed YAML."""
    build = dict(_section(raw, "build"))
    if build.get("prelude_dir"):
        build["prelude_dir"] = Path(build["prelude_dir"]).expanduser()

    config = ToolkitConfig(
        home=home or get_toolkit_home(),
        scratch_dir=raw.get("scratch_dir"),
        state_file=raw.get("state_file"),
        env_file=Path(raw["env_file"]).expanduser() if raw.get("env_file") else None,
        interpreter=_build(InterpreterConfig, _section(raw, "interpreter"), "interpreter"),
        target=_build(TargetConfig, _section(raw, "target"), "target"),
        build=_build(BuildConfig, build, "build"),
        logging=_build(LoggingConfig, _section(raw, "logging"), "logging"),
    )
    config.validate()
    return config


def load_config(config_path: Optional[Path] = None) -> ToolkitConfig:
    """
    Load ntkit configuration from YAML file.

    When the config names an env_file, its variables are added to
    os.environ without overriding ones already set. The newt interpreter
    inherits them; no ntkit setting is read from the file.

    Args:
        config_path: Path to config file. Defaults to <home>/config.yaml

    Returns:
        ToolkitConfig instance

    Raises:
        FileNotFoundError: If the config file is missing
        ConfigError: If config is invalid
    """
    home = get_toolkit_home()
    if config_path is None:
        config_path = home / "config.yaml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"ntkit config.yaml not found at {config_path}. Run 'ntkit init' to create one."
        )

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must contain a mapping")

    config = config_from_dict(raw, home=home)

    if config.env_file and config.env_file.exists():
        load_dotenv(config.env_file)

    return config
