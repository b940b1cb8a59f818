"""
Domain models — pydantic types for the pipeline engine.

All models are re-exported here for convenient access:

    from brewpipe.core.models import OutputLine, PipelineState, Settings
"""

from brewpipe.core.models.inventory import BrewService, OutdatedPackage
from brewpipe.core.models.output import OutputLine, PipelineState
from brewpipe.core.models.result import (
    DiagnosticResult,
    ExecutionResult,
    StepRecord,
    generate_run_id,
)
from brewpipe.core.models.settings import DEFAULT_SEARCH_PATH, Settings

__all__ = [
    "DEFAULT_SEARCH_PATH",
    "BrewService",
    "DiagnosticResult",
    "ExecutionResult",
    "OutdatedPackage",
    "OutputLine",
    "PipelineState",
    "Settings",
    "StepRecord",
    "generate_run_id",
]
