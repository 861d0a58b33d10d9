"""Architectural layer rules applied to generated file content.

The module exposes a small rule registry in the same shape as the other
policy helpers:

``LAYER_RULES``
    Registry listing each rule, the layer it applies to, and whether a
    violation is fatal.  Only ``domain`` and ``presentation`` rules are
    fatal; the others surface as warnings.

``enforce_layer_rules``
    Evaluates the rules of one layer against a ``create_file`` step, raising
    :class:`LayerViolationError` for the first fatal violation and returning
    the advisory ones.

Rules only look at the step body; nothing is read from disk, so the check can
run before any mutation happens.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..planning.schema import Layer, LayerInfo, Step, StepType
from ..planning.actions import has_refactor_markers

LOGGER = logging.getLogger(__name__)

_EXTERNAL_IMPORT = re.compile(r"import\s+(?:axios|fetch|prisma|redis|mongodb)")
_BUSINESS_LOGIC = re.compile(r"business\s+logic|domain\s+rules|calculations", re.IGNORECASE)
_FACTORY = re.compile(r"factory|Factory|make[A-Z]")


@dataclass(slots=True)
class PolicyViolation:
    """Structured representation of a layer rule violation."""

    rule: str
    message: str
    layer: Layer
    step_id: str = ""
    fatal: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "rule": self.rule,
            "message": self.message,
            "layer": self.layer.value,
            "step_id": self.step_id,
            "fatal": self.fatal,
        }


@dataclass(slots=True)
class RuleDefinition:
    """Metadata describing a layer rule."""

    code: str
    layer: Layer
    title: str
    detail: str
    fatal: bool = False


class LayerViolationError(RuntimeError):
    """Raised when generated content breaks a fatal layer rule."""

    def __init__(self, violation: PolicyViolation) -> None:
        super().__init__(violation.message)
        self.violation = violation
        self.layer = violation.layer
        self.rule = violation.rule


def _check_dom001(step: Step) -> Iterable[str]:
    if _EXTERNAL_IMPORT.search(step.content or ""):
        yield f"Domain layer violation: External dependencies not allowed in step '{step.id}'"


def _check_dat001(step: Step) -> Iterable[str]:
    content = step.content or ""
    if "implements" not in content and "extends" not in content:
        yield f"Data layer warning: Step '{step.id}' should implement domain interfaces"


def _check_inf001(step: Step) -> Iterable[str]:
    content = step.content or ""
    if "try" not in content or "catch" not in content:
        yield f"Infrastructure warning: Step '{step.id}' should include error handling"


def _check_pre001(step: Step) -> Iterable[str]:
    if _BUSINESS_LOGIC.search(step.content or ""):
        yield f"Presentation layer violation: Business logic not allowed in step '{step.id}'"


def _check_man001(step: Step) -> Iterable[str]:
    if not _FACTORY.search(step.content or ""):
        yield f"Main layer warning: Step '{step.id}' should use factory pattern"


LAYER_RULES: Dict[str, RuleDefinition] = {
    "DOM001": RuleDefinition(
        code="DOM001",
        layer=Layer.DOMAIN,
        title="No external dependencies",
        detail="Domain files may not import HTTP clients, ORMs, or caches.",
        fatal=True,
    ),
    "DAT001": RuleDefinition(
        code="DAT001",
        layer=Layer.DATA,
        title="Implements domain contracts",
        detail="Data files should implement or extend a domain interface.",
    ),
    "INF001": RuleDefinition(
        code="INF001",
        layer=Layer.INFRA,
        title="Error handling",
        detail="Infrastructure adapters should handle errors with try/catch.",
    ),
    "PRE001": RuleDefinition(
        code="PRE001",
        layer=Layer.PRESENTATION,
        title="No business logic",
        detail="Presentation files may not embed business logic, domain rules, or calculations.",
        fatal=True,
    ),
    "MAN001": RuleDefinition(
        code="MAN001",
        layer=Layer.MAIN,
        title="Factory composition",
        detail="Composition root files should build dependencies through factories.",
    ),
}

RuleHandler = Callable[[Step], Iterable[str]]

RULE_DISPATCH: Dict[str, RuleHandler] = {
    "DOM001": _check_dom001,
    "DAT001": _check_dat001,
    "INF001": _check_inf001,
    "PRE001": _check_pre001,
    "MAN001": _check_man001,
}


def evaluate_layer_rules(layer: Layer, step: Step) -> List[PolicyViolation]:
    """Return every violation of ``layer``'s rules for ``step``."""

    if step.type != StepType.CREATE_FILE:
        return []

    violations: List[PolicyViolation] = []
    for code, definition in LAYER_RULES.items():
        if definition.layer != layer:
            continue
        for message in RULE_DISPATCH[code](step):
            violations.append(
                PolicyViolation(
                    rule=code,
                    message=message,
                    layer=layer,
                    step_id=step.id,
                    fatal=definition.fatal,
                )
            )
    return violations


def enforce_layer_rules(layer_info: Optional[LayerInfo], step: Step) -> List[PolicyViolation]:
    """Raise on fatal violations and return (and log) the advisory ones."""

    if layer_info is None:
        return []

    warnings: List[PolicyViolation] = []
    for violation in evaluate_layer_rules(layer_info.layer, step):
        if violation.fatal:
            raise LayerViolationError(violation)
        LOGGER.warning(violation.message)
        warnings.append(violation)
    return warnings


LAYER_GUIDANCE: Dict[Layer, tuple[str, ...]] = {
    Layer.DOMAIN: (
        "Domain layer must have no external dependencies",
        "Use only the language's standard constructs",
        "Define interfaces and types only",
        "No implementation details",
    ),
    Layer.DATA: (
        "Implement domain interfaces",
        "Transform external data to domain models",
        "Use repository protocols",
        "No direct database access",
    ),
    Layer.INFRA: (
        "Implement data layer protocols",
        "Handle external services (DB, APIs, Cache)",
        "Include proper error handling",
        "Use adapter pattern",
    ),
    Layer.PRESENTATION: (
        "Keep controllers/components thin",
        "Delegate to use cases",
        "Handle only UI concerns",
        "No business logic",
    ),
    Layer.MAIN: (
        "Use factory pattern",
        "Wire up dependencies",
        "Configure application",
        "No business logic",
    ),
}


def layer_guidance(layer: Layer) -> tuple[str, ...]:
    return LAYER_GUIDANCE.get(layer, ())


def _layer_context(layer: Layer, message: str) -> str:
    lowered = message.lower()
    if layer is Layer.DOMAIN and ("import" in lowered or "external dependencies" in lowered):
        return (
            "DOMAIN LAYER VIOLATION: External dependencies are not allowed in the domain layer.\n"
            "The domain layer must be pure business logic with no external dependencies.\n"
        )
    if layer is Layer.DATA and "implements" in lowered:
        return (
            "DATA LAYER ISSUE: Data layer should implement domain interfaces.\n"
            "Ensure your use case implementations follow the domain contracts.\n"
        )
    if layer is Layer.INFRA and "try" not in lowered and "catch" not in lowered:
        return (
            "INFRASTRUCTURE ISSUE: Missing error handling.\n"
            "Infrastructure adapters must handle errors gracefully.\n"
        )
    if layer is Layer.PRESENTATION and ("business" in lowered or "logic" in lowered):
        return (
            "PRESENTATION VIOLATION: Business logic detected in presentation layer.\n"
            "Move business logic to domain use cases.\n"
        )
    if layer is Layer.MAIN and "factory" not in lowered:
        return (
            "MAIN LAYER ISSUE: Missing factory pattern.\n"
            "Use factories for dependency injection in the composition root.\n"
        )
    return ""


def enrich_error_message(message: str, step: Step, layer_info: Optional[LayerInfo] = None) -> str:
    """Prefix ``message`` with layer context and remediation hints."""

    if layer_info is None:
        if step.type == StepType.REFACTOR_FILE and step.content and not has_refactor_markers(step.content):
            return (
                "TEMPLATE FORMAT ERROR: Missing <<<REPLACE>>> or <<<WITH>>> blocks in refactor template."
                f"\n\nOriginal error: {message}"
            )
        if step.type == StepType.CREATE_FILE and "import" in message.lower():
            return f"POTENTIAL ARCHITECTURE VIOLATION: Import statement issue.\n\nOriginal error: {message}"
        return message

    context = f"\nLayer Context: {layer_info.describe()}\n"
    context += _layer_context(layer_info.layer, message)
    return f"{context}\nOriginal error: {message}"


__all__ = [
    "LAYER_GUIDANCE",
    "LAYER_RULES",
    "LayerViolationError",
    "PolicyViolation",
    "RULE_DISPATCH",
    "RuleDefinition",
    "enforce_layer_rules",
    "enrich_error_message",
    "evaluate_layer_rules",
    "layer_guidance",
]
