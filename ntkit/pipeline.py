"""
Toolkit orchestrator.

Each user action is a fixed sequence of stages:

    build    build
    install  build -> install
    run      build -> install -> open
    stop     close

A failed stage ends the action. Actions never raise; the outcome is an
ActionResult plus whatever was written to the console.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Type

from ntkit.config import ToolkitConfig
from ntkit.console import ConsoleSink, RichConsoleSink
from ntkit.decompile import decompile_package
from ntkit.deploy import DeploymentController
from ntkit.extractor import PackageDescriptor
from ntkit.interpreter import SessionFactory, get_session_factory
from ntkit.script import Script
from ntkit.stages import (
    BuildStage,
    CloseStage,
    InstallStage,
    OpenStage,
    Stage,
    StageContext,
    StageResult,
)
from ntkit.target import TargetController, make_target

ACTIONS: Dict[str, List[Type[Stage]]] = {
    "build": [BuildStage],
    "install": [BuildStage, InstallStage],
    "run": [BuildStage, InstallStage, OpenStage],
    "stop": [CloseStage],
}


@dataclass
class ActionResult:
    """Result of one toolkit action."""

    action: str
    success: bool
    started_at: datetime
    ended_at: datetime
    duration_seconds: float
    stages: Dict[str, StageResult] = field(default_factory=dict)
    descriptor: Optional[PackageDescriptor] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "action": self.action,
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "stages": {name: result.to_dict() for name, result in self.stages.items()},
            "descriptor": self.descriptor.to_dict() if self.descriptor else None,
            "error_message": self.error_message,
        }


class Toolkit:
    """
    Build-and-deploy pipeline for one script at a time.

    Collaborators default from the configuration; tests and embedding
    applications pass their own sink, target or session factory.
    """

    def __init__(
        self,
        config: Optional[ToolkitConfig] = None,
        sink: Optional[ConsoleSink] = None,
        target: Optional[TargetController] = None,
        session_factory: Optional[SessionFactory] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ToolkitConfig()
        self.sink = sink or RichConsoleSink()
        self.target = target or make_target(self.config.target, self.sink)
        self._session_factory = session_factory
        self.logger = logger or logging.getLogger("ntkit")
        self.deployer = DeploymentController(self.target, self.config.target.command_limit)
        self.descriptor: Optional[PackageDescriptor] = None

    @property
    def session_factory(self) -> SessionFactory:
        if self._session_factory is None:
            self._session_factory = get_session_factory(self.config.interpreter.backend)
        return self._session_factory

    def build(self, script: Script) -> ActionResult:
        return self._perform("build", script=script)

    def install(self, script: Script) -> ActionResult:
        return self._perform("install", script=script)

    def run(self, script: Script) -> ActionResult:
        return self._perform("run", script=script)

    def stop(self, descriptor: Optional[PackageDescriptor] = None) -> ActionResult:
        """Close the app of the given package, or of the last one built."""
        descriptor = descriptor or self.descriptor or self.load_state()
        return self._perform("stop", descriptor=descriptor)

    def evaluate(self, script: str) -> bool:
        """Send a raw NewtonScript command to the target."""
        try:
            self.deployer.evaluate(script)
        except Exception as e:
            self.sink.error(f"Error: {e}")
            self.logger.error(
                f"Command not sent: {e}",
                extra={"event": "command_rejected", "metadata": {"error": str(e)}},
            )
            return False
        return True

    def decompile(self, pkg_path: Path) -> Optional[str]:
        """Decompile a package into NewtonScript source; None on failure."""
        try:
            return decompile_package(
                pkg_path, self.session_factory, self.config.interpreter, self.sink
            )
        except Exception as e:
            self.sink.error(f"Error: {e}")
            self.logger.error(
                f"Decompile failed: {e}",
                extra={"event": "decompile_failed", "metadata": {"path": str(pkg_path)}},
                exc_info=True,
            )
            return None

    def status(self) -> Optional[Dict]:
        """Last saved build, or None."""
        state_file = self.config.state_file
        if not state_file.exists():
            return None
        try:
            with open(state_file, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not load toolkit state: {e}")
            return None

    def load_state(self) -> Optional[PackageDescriptor]:
        state = self.status()
        if not state or not state.get("descriptor"):
            return None
        try:
            return PackageDescriptor.from_dict(state["descriptor"])
        except KeyError as e:
            self.logger.warning(f"Incomplete toolkit state, missing {e}")
            return None

    def _perform(
        self,
        action: str,
        script: Optional[Script] = None,
        descriptor: Optional[PackageDescriptor] = None,
    ) -> ActionResult:
        started_at = datetime.now(timezone.utc)
        start_time = time.time()

        self.logger.info(
            f"Starting action: {action}",
            extra={
                "event": "action_started",
                "metadata": {"action": action, "script": script.display_name if script else None},
            },
        )

        stage_results: Dict[str, StageResult] = {}
        error_message = None

        try:
            context = StageContext(
                config=self.config,
                sink=self.sink,
                deployer=self.deployer,
                session_factory=self.session_factory,
                script=script,
                descriptor=descriptor,
            )

            for stage_cls in ACTIONS[action]:
                stage = stage_cls(context, self.logger)
                result = stage.run()
                stage_results[stage.name] = result
                if not result.success:
                    error_message = f"Stage {stage.name} failed: {result.error_message}"
                    break

            build_result = stage_results.get("build")
            if build_result and build_result.success:
                self.descriptor = context.descriptor
            descriptor = context.descriptor

        except Exception as e:
            self.sink.error(f"Error: {e}")
            self.logger.error(
                f"Action {action} failed with exception: {e}",
                extra={"event": "action_exception", "metadata": {"exception": str(e)}},
                exc_info=True,
            )
            error_message = str(e)

        result = ActionResult(
            action=action,
            success=error_message is None,
            started_at=started_at,
            ended_at=datetime.now(timezone.utc),
            duration_seconds=time.time() - start_time,
            stages=stage_results,
            descriptor=descriptor,
            error_message=error_message,
        )

        if result.success:
            self.logger.info(
                f"Action {action} completed",
                extra={"event": "action_completed", "metadata": {"duration_seconds": result.duration_seconds}},
            )
        else:
            self.logger.warning(
                f"Action {action} failed: {error_message}",
                extra={"event": "action_failed", "metadata": {"error": error_message}},
            )

        if "build" in stage_results and stage_results["build"].success:
            self._save_state(result)

        return result

    def _save_state(self, result: ActionResult) -> None:
        state_file = self.config.state_file
        try:
            state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(state_file, "w") as f:
                json.dump(result.to_dict(), f, indent=2)
            self.logger.debug(
                f"Saved toolkit state to {state_file}",
                extra={"event": "state_saved", "metadata": {"file": str(state_file)}},
            )
        except OSError as e:
            self.logger.warning(
                f"Could not save toolkit state: {e}",
                extra={"event": "state_save_failed", "metadata": {"error": str(e)}},
            )
