"""Load, select, and persist plan documents."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import ValidationError

from .schema import Layer, LayerInfo, Plan, PlanMetadata, Step, Target

LOGGER = logging.getLogger(__name__)

_TEMPLATE_NAME = re.compile(
    r"^(backend|frontend|fullstack)-(domain|data|infra|presentation|main)-template$"
)


class PlanLoadError(RuntimeError):
    """Raised when a plan document cannot be read or parsed."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = dict(details or {})


def detect_layer_from_filename(path: Path | str) -> Optional[LayerInfo]:
    """Parse ``<target>-<layer>-template.<ext>`` file names."""

    match = _TEMPLATE_NAME.match(Path(path).stem)
    if not match:
        return None
    return LayerInfo(target=Target(match.group(1)), layer=Layer(match.group(2)))


def layer_from_metadata(metadata: PlanMetadata | None) -> Optional[LayerInfo]:
    if metadata is None or not metadata.layer:
        return None
    try:
        layer = Layer(metadata.layer.strip().lower())
    except ValueError:
        LOGGER.warning("Ignoring unknown metadata layer: %s", metadata.layer)
        return None
    try:
        target = Target((metadata.project_type or Target.BACKEND.value).strip().lower())
    except ValueError:
        target = Target.BACKEND
    return LayerInfo(target=target, layer=layer)


class PlanStore:
    """Owns the plan document for one run and rewrites it after every step."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.plan: Plan | None = None

    def load(self) -> Plan:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except FileNotFoundError as error:
            raise PlanLoadError(f"Plan file not found: {self.path}") from error
        except (OSError, yaml.YAMLError) as error:
            raise PlanLoadError(f"Could not read plan {self.path}: {error}") from error

        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise PlanLoadError(f"Expected mapping at top level of {self.path}")

        try:
            self.plan = Plan.model_validate(dict(data))
        except ValidationError as error:
            raise PlanLoadError(
                f"Plan {self.path} does not match the plan schema",
                details={"errors": error.errors(include_url=False)},
            ) from error
        return self.plan

    def require_plan(self) -> Plan:
        if self.plan is None:
            raise PlanLoadError("Plan has not been loaded")
        return self.plan

    def save(self) -> None:
        """Rewrite the whole document; a reader never sees a partial file."""

        document = self.require_plan().to_document()
        handle, raw_path = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                yaml.safe_dump(document, stream, sort_keys=False, allow_unicode=True)
            os.replace(raw_path, self.path)
        except BaseException:
            Path(raw_path).unlink(missing_ok=True)
            raise

    def select_steps(self, layer_info: LayerInfo | None) -> List[Step]:
        """Return ``<layer>_steps`` when present for ``layer_info``, else ``steps``."""

        plan = self.require_plan()
        if layer_info is not None:
            layered = plan.layer_steps(layer_info.layer)
            if layered:
                return layered
        return plan.steps if plan.steps is not None else []


__all__ = [
    "PlanLoadError",
    "PlanStore",
    "detect_layer_from_filename",
    "layer_from_metadata",
]
