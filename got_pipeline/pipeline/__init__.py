"""Stage pipeline: engine, scheduler and per-stage runtime."""

from .engine import StageEngine, create_engine
from .runtime import PassthroughReportExporter, ReportExporter, StageOutcome, StageRuntime
from .scheduler import ModelTask, TaskScheduler, validate_capabilities

__all__ = [
    "StageEngine",
    "create_engine",
    "PassthroughReportExporter",
    "ReportExporter",
    "StageOutcome",
    "StageRuntime",
    "ModelTask",
    "TaskScheduler",
    "validate_capabilities",
]
