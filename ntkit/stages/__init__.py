"""Toolkit stages."""

from ntkit.stages.base import Stage, StageContext, StageResult
from ntkit.stages.build import BuildStage
from ntkit.stages.deploy import CloseStage, InstallStage, OpenStage

__all__ = [
    "Stage",
    "StageContext",
    "StageResult",
    "BuildStage",
    "InstallStage",
    "OpenStage",
    "CloseStage",
]
