"""Pre-run plan validation.

The engine treats validation as a black box: any object with a
``validate(plan_path) -> ValidationResult`` method works.  The bundled
:class:`SchemaPlanValidator` checks the document against the plan schema and
the step action variants.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .actions import StepActionError, parse_action
from .schema import Layer, Step, Target
from .store import PlanLoadError, PlanStore, detect_layer_from_filename, layer_from_metadata

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    detected_target: Optional[Target] = None
    detected_layer: Optional[Layer] = None


class PlanValidator:
    """Interface for plan validators."""

    def validate(self, plan_path: Path | str) -> ValidationResult:  # pragma: no cover - interface
        raise NotImplementedError


class SchemaPlanValidator(PlanValidator):
    """Validate the plan document structure and every step's action."""

    def validate(self, plan_path: Path | str) -> ValidationResult:
        store = PlanStore(plan_path)
        try:
            plan = store.load()
        except PlanLoadError as error:
            details = error.details.get("errors") or []
            messages = [f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in details]
            return ValidationResult(valid=False, errors=[str(error), *messages])

        errors: List[str] = []
        warnings: List[str] = []

        layer_info = detect_layer_from_filename(plan_path) or layer_from_metadata(plan.metadata)
        steps: List[Step] = store.select_steps(layer_info)
        if not steps:
            errors.append("Plan contains no steps")

        for index, step in enumerate(steps):
            label = step.label(index)
            if not step.id:
                warnings.append(f"{label} has no id")
            try:
                parse_action(step)
            except StepActionError as error:
                errors.append(f"{label}: {error}")

        duplicates = sorted(
            step_id for step_id, count in Counter(step.id for step in steps if step.id).items() if count > 1
        )
        for step_id in duplicates:
            warnings.append(f"Duplicate step id: {step_id}")

        if plan.metadata is None:
            warnings.append("Plan has no metadata block")

        return ValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            detected_target=layer_info.target if layer_info else None,
            detected_layer=layer_info.layer if layer_info else None,
        )


__all__ = ["PlanValidator", "SchemaPlanValidator", "ValidationResult"]
