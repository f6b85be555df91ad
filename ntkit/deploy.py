"""
Deployment commands.

Install, run and stop are NewtonScript commands evaluated on the target,
addressed by the package symbol:

    uninstall  if HasSlot(GetRoot(), '|S|) then begin
                 GetRoot().|S|:Close();
                 SafeRemovePackage(GetPkgRef("N", GetStores()[0]))
               end;
    open       GetRoot().|S|:Open();
    close      if HasSlot(GetRoot(), '|S|) then begin
                 GetRoot().|S|:Close();
               end;

The target accepts at most `limit` characters per command. Longer
commands are refused before anything is sent.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ntkit.assembler import quote_string, symbol_literal
from ntkit.config import DEFAULT_COMMAND_LIMIT
from ntkit.errors import CommandError, CommandTooLongError
from ntkit.extractor import PackageDescriptor
from ntkit.target import TargetController

logger = logging.getLogger(__name__)


class CommandVerb(str, Enum):
    UNINSTALL = "uninstall"
    OPEN = "open"
    CLOSE = "close"
    EVAL = "eval"


@dataclass(frozen=True)
class DeploymentCommand:
    verb: CommandVerb
    symbol: Optional[str] = None
    name: Optional[str] = None
    script: Optional[str] = None

    def render(self) -> str:
        if self.verb == CommandVerb.EVAL:
            if self.script is None:
                raise CommandError("eval command without a script")
            return self.script

        if not self.symbol:
            raise CommandError(f"{self.verb.value} command without a package symbol")
        sym = symbol_literal(self.symbol)

        if self.verb == CommandVerb.OPEN:
            return f"GetRoot().{sym}:Open();\n"

        if self.verb == CommandVerb.CLOSE:
            return (
                f"if HasSlot(GetRoot(), '{sym}) then begin\n"
                f"  GetRoot().{sym}:Close();\n"
                f"end;\n"
            )

        if self.name is None:
            raise CommandError("uninstall command without a package name")
        return (
            f"if HasSlot(GetRoot(), '{sym}) then begin\n"
            f"  GetRoot().{sym}:Close();\n"
            f"  SafeRemovePackage(GetPkgRef({quote_string(self.name)}, GetStores()[0]))\n"
            f"end;\n"
        )


class DeploymentController:
    """Renders deployment commands and sends them to the target."""

    def __init__(self, target: TargetController, limit: int = DEFAULT_COMMAND_LIMIT):
        self.target = target
        self.limit = limit

    def transmit(self, command: DeploymentCommand) -> str:
        """
        Render and send one command.

        Raises:
            CommandTooLongError: If the rendered command exceeds the limit
        """
        text = command.render()
        if len(text) > self.limit:
            raise CommandTooLongError(len(text), self.limit)

        logger.info(
            f"Sending {command.verb.value} command",
            extra={
                "event": "command_sent",
                "metadata": {"verb": command.verb.value, "symbol": command.symbol, "chars": len(text)},
            },
        )
        self.target.evaluate(text)
        return text

    def install(self, descriptor: PackageDescriptor) -> None:
        """Remove any installed copy of the package, then install the new file."""
        self.transmit(DeploymentCommand(CommandVerb.UNINSTALL, descriptor.symbol, descriptor.name))
        logger.info(
            f"Installing {descriptor.output_path}",
            extra={"event": "package_install", "metadata": descriptor.to_dict()},
        )
        self.target.install_artifact(descriptor.output_path)

    def open(self, descriptor: PackageDescriptor) -> None:
        self.transmit(DeploymentCommand(CommandVerb.OPEN, descriptor.symbol))

    def close(self, descriptor: PackageDescriptor) -> None:
        self.transmit(DeploymentCommand(CommandVerb.CLOSE, descriptor.symbol))

    def evaluate(self, script: str) -> None:
        self.transmit(DeploymentCommand(CommandVerb.EVAL, script=script))
