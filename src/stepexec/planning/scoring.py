"""Bounded, layer-aware quality scores for executed steps.

Scores live in ``{-2, -1, 0, 1, 2}``:

* ``-2``: catastrophic failure (format or architecture violation)
* ``-1``: recognised runtime/tooling failure
* ``0``: failure with an unrecognised signature; never guessed
* ``1``: success without recognised best-practice markers
* ``2``: success with several recognised markers

Failure classification is a pluggable strategy (:class:`FailureClassifier`)
so the regex table can be swapped or tested on its own.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from enum import Enum
from typing import Dict, Iterable, Optional, Pattern, Sequence

from .actions import has_refactor_markers
from .schema import SCORE_MAX, SCORE_MIN, Layer, LayerInfo, Step, StepType

LOGGER = logging.getLogger(__name__)

RUNTIME_ERROR_SCORE = -1
MIN_EXEMPLARY_MARKERS = 2
STRICT_LAYERS = frozenset({Layer.DOMAIN, Layer.MAIN})


class FailureCategory(str, Enum):
    CATASTROPHIC = "catastrophic"
    RUNTIME = "runtime"
    UNKNOWN = "unknown"

    @property
    def score(self) -> int:
        return _CATEGORY_SCORES[self]


_CATEGORY_SCORES: Dict[FailureCategory, int] = {
    FailureCategory.CATASTROPHIC: -2,
    FailureCategory.RUNTIME: RUNTIME_ERROR_SCORE,
    FailureCategory.UNKNOWN: 0,
}


def _compile(patterns: Iterable[str]) -> tuple[Pattern[str], ...]:
    return tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns)


DEFAULT_CATASTROPHIC_PATTERNS: tuple[str, ...] = (
    r"replace.*with.*format",
    r"<<<replace>>>.*<<",
    r"architecture.*violation",
    r"layer.*violation",
    r"invalid.*template.*format",
    r"template format error",
    r"invalid refactor template",
)

DEFAULT_RUNTIME_PATTERNS: tuple[str, ...] = (
    r"lint.*failed",
    r"test.*failed",
    r"quality check",
    r"typescript.*error",
    r"type ?error",
    r"compilation.*error",
    r"syntax ?error",
    r"permission denied",
    r"eacces",
    r"cannot find module",
    r"module not found",
    r"no module named",
    r"dependenc(y|ies)",
    r"git .*failed",
    r"not a git repository",
    r"timed out",
)

DEFAULT_SUCCESS_MARKERS: tuple[str, ...] = (
    r"ubiquitous.*language",
    r"domain.*driven.*design",
    r"clean.*architecture",
    r"aggregate.*root",
    r"value.*object",
    r"repository.*pattern",
    r"\binterface\s+\w+",
    r"\bimplements\s+\w+",
    r"\bprotocol\b",
)


class FailureClassifier:
    """Strategy that maps failure output to a :class:`FailureCategory`."""

    def classify(self, output: str) -> FailureCategory:  # pragma: no cover - interface
        raise NotImplementedError


class RegexFailureClassifier(FailureClassifier):
    """Classify failures with ordered regex tables; catastrophic wins."""

    def __init__(
        self,
        catastrophic: Sequence[str] = DEFAULT_CATASTROPHIC_PATTERNS,
        runtime: Sequence[str] = DEFAULT_RUNTIME_PATTERNS,
    ) -> None:
        self._catastrophic = _compile(catastrophic)
        self._runtime = _compile(runtime)

    def classify(self, output: str) -> FailureCategory:
        if any(pattern.search(output) for pattern in self._catastrophic):
            return FailureCategory.CATASTROPHIC
        if any(pattern.search(output) for pattern in self._runtime):
            return FailureCategory.RUNTIME
        return FailureCategory.UNKNOWN


def clamp_score(value: int) -> int:
    return max(SCORE_MIN, min(SCORE_MAX, value))


class ScoringEngine:
    """Score steps and keep the running totals for one run."""

    def __init__(
        self,
        layer_info: Optional[LayerInfo] = None,
        *,
        classifier: FailureClassifier | None = None,
        success_markers: Sequence[str] = DEFAULT_SUCCESS_MARKERS,
    ) -> None:
        self.layer_info = layer_info
        self.classifier = classifier or RegexFailureClassifier()
        self._markers = _compile(success_markers)
        self.histogram: Counter[int] = Counter()
        self.total = 0

    # ------------------------------------------------------------------ scores
    def count_markers(self, content: str | None) -> int:
        if not content:
            return 0
        return sum(1 for pattern in self._markers if pattern.search(content))

    def score_success(self, step: Step) -> int:
        """Score a completed step from the markers in its content."""

        markers = self.count_markers(step.content)
        score = 2 if markers >= MIN_EXEMPLARY_MARKERS else 1
        # Layer penalties lower a success to +1 at most; negative scores are for failures.
        score = max(1, self.apply_layer_impacts(score, step))
        LOGGER.debug("Success score for %s: %d (%d markers)", step.id, score, markers)
        return score

    def score_failure(self, step: Step, error_output: str) -> int:
        """Score a failed step; unrecognised failures score ``0``."""

        if step.type == StepType.REFACTOR_FILE and step.content and not has_refactor_markers(step.content):
            return FailureCategory.CATASTROPHIC.score
        category = self.classifier.classify(error_output)
        if category is FailureCategory.UNKNOWN:
            LOGGER.info("Unrecognised failure for %s; scoring as low confidence", step.id)
        return category.score

    def apply_layer_impacts(self, score: int, step: Step) -> int:
        if self.layer_info is None or not step.content:
            return score
        content = step.content.lower()
        layer = self.layer_info.layer

        if layer is Layer.DOMAIN:
            if re.search(r"import\s+(?:axios|fetch|prisma|redis|mysql|postgres|mongodb)", content):
                return min(score, -2)
            if "value object" in content or "aggregate root" in content:
                return min(score + 1, SCORE_MAX)
        elif layer is Layer.DATA:
            if "implements" not in content:
                return max(score - 1, SCORE_MIN)
            if "select * from" in content and "repository" not in content:
                return min(score, -2)
        elif layer is Layer.INFRA:
            if "try" not in content or "catch" not in content:
                return max(score - 1, SCORE_MIN)
        elif layer is Layer.PRESENTATION:
            if re.search(r"calculate|compute|business|domain logic", content):
                return min(score, -2)
        elif layer is Layer.MAIN:
            if "factory" in content:
                return min(score + 1, SCORE_MAX)
        return score

    # ------------------------------------------------------------------ totals
    def record(self, score: int) -> int:
        score = clamp_score(score)
        self.histogram[score] += 1
        self.total += score
        return score

    def final_score(self, steps: Iterable[Step]) -> float:
        """Mean step score, raised by 0.5 (strict layers) or 1, clamped to ``[0, 2]``."""

        scores = [step.score for step in steps if step.score is not None]
        if not scores:
            return 1.0
        average = sum(scores) / len(scores)
        bonus = 0.5 if self.layer_info is not None and self.layer_info.layer in STRICT_LAYERS else 1.0
        return max(0.0, min(float(SCORE_MAX), average + bonus))

    def breakdown(self) -> Dict[int, int]:
        return {score: self.histogram.get(score, 0) for score in range(SCORE_MAX, SCORE_MIN - 1, -1)}


__all__ = [
    "FailureCategory",
    "FailureClassifier",
    "RUNTIME_ERROR_SCORE",
    "RegexFailureClassifier",
    "ScoringEngine",
    "clamp_score",
]
