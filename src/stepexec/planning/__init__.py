"""
Plan documents, step actions, scoring, and the step execution engine.
"""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ExecutionAborted": "stepexec.planning.executor",
    "ExecutionSummary": "stepexec.planning.executor",
    "ExitCode": "stepexec.planning.executor",
    "StepExecutor": "stepexec.planning.executor",
    "Plan": "stepexec.planning.schema",
    "Step": "stepexec.planning.schema",
    "StepStatus": "stepexec.planning.schema",
    "PlanStore": "stepexec.planning.store",
    "ScoringEngine": "stepexec.planning.scoring",
    "SchemaPlanValidator": "stepexec.planning.validation",
    "ValidationResult": "stepexec.planning.validation",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import planning helpers so submodules load only when used."""
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
