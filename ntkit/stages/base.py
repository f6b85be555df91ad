"""
Base classes for toolkit stages.

All stages inherit from Stage and return StageResult. Stages of one
action share a StageContext; the build stage fills in the descriptor that
the deployment stages consume.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ntkit.config import ToolkitConfig
from ntkit.console import ConsoleSink
from ntkit.deploy import DeploymentController
from ntkit.extractor import PackageDescriptor
from ntkit.interpreter import SessionFactory
from ntkit.script import Script


@dataclass
class StageContext:
    """State shared by the stages of one toolkit action."""

    config: ToolkitConfig
    sink: ConsoleSink
    deployer: DeploymentController
    session_factory: SessionFactory
    script: Optional[Script] = None
    descriptor: Optional[PackageDescriptor] = None


@dataclass
class StageResult:
    """Result of stage execution."""

    stage_name: str
    success: bool
    duration_seconds: float = 0.0
    output_files: List[Path] = field(default_factory=list)
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "stage_name": self.stage_name,
            "success": self.success,
            "duration_seconds": self.duration_seconds,
            "output_files": [str(f) for f in self.output_files],
            "error_message": self.error_message,
            "metadata": self.metadata,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class Stage(ABC):
    """
    Abstract base class for toolkit stages.

    Each stage must implement:
    - validate(): Check prerequisites before execution
    - execute(): Run the stage
    - cleanup(): Clean up resources after execution
    """

    name = "stage"

    def __init__(self, context: StageContext, logger: logging.Logger):
        """
        Initialize stage.

        Args:
            context: Shared action state
            logger: Logger instance
        """
        self.context = context
        self.logger = logger

    @property
    def sink(self) -> ConsoleSink:
        return self.context.sink

    @abstractmethod
    def validate(self) -> None:
        """
        Validate stage prerequisites.

        Raises:
            Exception: If validation fails
        """
        pass

    @abstractmethod
    def execute(self) -> StageResult:
        """
        Execute the stage.

        Returns:
            StageResult with execution details

        Raises:
            Exception: If execution fails
        """
        pass

    def cleanup(self) -> None:
        """
        Clean up resources after stage execution.

        Override if stage needs cleanup.
        """
        pass

    def require_descriptor(self) -> PackageDescriptor:
        if self.context.descriptor is None:
            raise ValueError("No package has been built")
        return self.context.descriptor

    def run(self) -> StageResult:
        """
        Run the complete stage lifecycle.

        Exceptions never leave this method; they become a failed result
        and an error line on the console.

        Returns:
            StageResult with execution details
        """
        self.logger.info(
            f"Starting stage: {self.name}",
            extra={"stage": self.name, "event": "stage_started"},
        )

        started_at = datetime.now(timezone.utc)
        start_time = time.time()

        try:
            self.validate()

            result = self.execute()
            result.started_at = started_at
            result.ended_at = datetime.now(timezone.utc)
            result.duration_seconds = time.time() - start_time

            if result.success:
                self.logger.info(
                    f"Stage {self.name} completed successfully",
                    extra={
                        "stage": self.name,
                        "event": "stage_completed",
                        "metadata": {
                            "duration_seconds": result.duration_seconds,
                            "output_files_count": len(result.output_files),
                        },
                    },
                )
            else:
                self.logger.error(
                    f"Stage {self.name} failed: {result.error_message}",
                    extra={
                        "stage": self.name,
                        "event": "stage_failed",
                        "metadata": {"error": result.error_message},
                    },
                )

            return result

        except Exception as e:
            duration = time.time() - start_time

            self.logger.error(
                f"Stage {self.name} failed with exception: {e}",
                extra={
                    "stage": self.name,
                    "event": "stage_exception",
                    "metadata": {"exception": str(e)},
                },
                exc_info=True,
            )
            self.sink.error(f"Error: {e}")

            return StageResult(
                stage_name=self.name,
                success=False,
                duration_seconds=duration,
                error_message=str(e),
                started_at=started_at,
                ended_at=datetime.now(timezone.utc),
            )

        finally:
            try:
                self.cleanup()
            except Exception as e:
                self.logger.warning(
                    f"Stage {self.name} cleanup failed: {e}",
                    extra={"stage": self.name, "event": "cleanup_failed"},
                )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
