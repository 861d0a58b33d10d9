"""Infer a conventional-commit scope from a file path's layer folder."""

from __future__ import annotations

import re
from typing import Pattern

DEFAULT_SCOPE = "core"
VALID_SCOPES = frozenset({"domain", "data", "infra", "presentation", "main", DEFAULT_SCOPE})

_LAYER_SEGMENT: Pattern[str] = re.compile(
    r"/(domain|data|infra|infrastructure|presentation|main)/", re.IGNORECASE
)

# Ordered: the first folder family present in the path wins.
_STRUCTURAL_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("/models/", "/entities/", "/value-objects/"), "domain"),
    (("/usecases/", "/use-cases/"), "data"),
    (("/repositories/", "/adapters/"), "infra"),
    (("/controllers/", "/components/"), "presentation"),
    (("/factories/", "/composition/"), "main"),
)


def extract_scope(file_path: str | None) -> str:
    """Return the architectural scope for ``file_path``.

    The first recognised layer folder wins (``infrastructure`` is reported as
    ``infra``).  Without one, well-known structural folder names are mapped to
    their usual layer, and anything else falls back to ``core``.
    """

    if not file_path:
        return DEFAULT_SCOPE

    normalised = "/" + file_path.replace("\\", "/").lstrip("/")

    layer_match = _LAYER_SEGMENT.search(normalised)
    if layer_match:
        layer = layer_match.group(1).lower()
        return "infra" if layer == "infrastructure" else layer

    for markers, scope in _STRUCTURAL_HINTS:
        if any(marker in normalised for marker in markers):
            return scope

    return DEFAULT_SCOPE


def is_valid_scope(scope: str) -> bool:
    return scope in VALID_SCOPES


__all__ = ["DEFAULT_SCOPE", "VALID_SCOPES", "extract_scope", "is_valid_scope"]
