"""Conventional commit messages for executed plan steps."""

from __future__ import annotations

import re
from typing import Optional

from ..config import CommitConfig
from ..utils.scope import DEFAULT_SCOPE, extract_scope

MAX_SUBJECT_LENGTH = 72
_ELLIPSIS = "..."

_SOURCE_SUFFIX = re.compile(r"\.(py|pyi|ts|js|tsx|jsx)$")

# Checked in order; the first folder marker present names the file kind.
_FILE_KINDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("/models/", "/entities/"), "entity"),
    (("/value-objects/",), "value object"),
    (("/usecases/", "/use-cases/"), "use case"),
    (("/repositories/",), "repository"),
    (("/controllers/",), "controller"),
    (("/components/",), "component"),
    (("/factories/",), "factory"),
    (("/adapters/",), "adapter"),
    (("/protocols/", "/interfaces/"), "protocol"),
)


class CommitMessageError(RuntimeError):
    """Raised when a well-formed commit message cannot be produced."""


def commit_type_for(step_type: str, config: CommitConfig) -> Optional[str]:
    return config.conventional_commits.type_mapping.get(step_type)


def should_commit_step(step_type: str, config: CommitConfig) -> bool:
    """Return ``True`` when ``step_type`` maps to a commit under ``config``."""

    if not config.enabled or not config.conventional_commits.enabled:
        return False
    return commit_type_for(step_type, config) is not None


def extract_entity_name(file_path: str | None) -> Optional[str]:
    """Title-case the file stem (``user-profile.ts`` -> ``User Profile``)."""

    if not file_path:
        return None
    normalised = re.sub(r"/+", "/", file_path.replace("\\", "/"))
    if ".." in normalised or normalised.startswith("/"):
        return None

    file_name = normalised.rsplit("/", 1)[-1]
    stem = _SOURCE_SUFFIX.sub("", file_name)
    words = [word for word in re.split(r"[-_]", stem) if word]
    if not words:
        return None
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def _file_kind(file_path: str) -> str:
    normalised = "/" + file_path.replace("\\", "/").lstrip("/")
    for markers, kind in _FILE_KINDS:
        if any(marker in normalised for marker in markers):
            return kind
    return ""


def enhance_description(description: str, file_path: str | None) -> str:
    """Append the entity name and/or file kind when the description lacks them."""

    if not file_path:
        return description
    entity = extract_entity_name(file_path)
    if not entity:
        return description
    kind = _file_kind(file_path)
    if not kind:
        return description

    lowered = description.lower()
    has_entity = entity.lower() in lowered
    has_kind = kind in lowered
    if not has_entity and not has_kind:
        return f"{description} - {entity} {kind}"
    if not has_entity:
        return f"{description} for {entity}"
    if not has_kind:
        return f"{description} ({kind})"
    return description


def _subject_line(prefix: str, description: str) -> str:
    subject = f"{prefix}{description}"
    if len(subject) <= MAX_SUBJECT_LENGTH:
        return subject

    available = MAX_SUBJECT_LENGTH - len(prefix) - len(_ELLIPSIS)
    if available <= 0:
        raise CommitMessageError(
            f"Commit subject line too long ({len(subject)} > {MAX_SUBJECT_LENGTH} chars); "
            f'prefix "{prefix}" leaves no room for a description.'
        )
    return f"{prefix}{description[:available]}{_ELLIPSIS}"


def generate_commit_message(
    step_type: str,
    description: str,
    file_path: str | None = None,
    config: CommitConfig | None = None,
) -> Optional[str]:
    """Build ``type(scope): description`` plus trailer for a step.

    Returns ``None`` when commits are disabled or the step type maps to no
    commit type.  Subjects longer than :data:`MAX_SUBJECT_LENGTH` are
    truncated with an ellipsis while keeping the ``type(scope):`` prefix.
    """

    if not step_type or not step_type.strip():
        raise CommitMessageError("Invalid step type: must be a non-empty string")
    if not description or not description.strip():
        raise CommitMessageError("Invalid description: must be a non-empty string")

    config = config or CommitConfig()
    if not should_commit_step(step_type, config):
        return None

    commit_type = commit_type_for(step_type, config)
    scope = extract_scope(file_path) if file_path else DEFAULT_SCOPE
    enhanced = enhance_description(description.strip(), file_path)
    normalised = enhanced[:1].lower() + enhanced[1:]

    subject = _subject_line(f"{commit_type}({scope}): ", normalised)

    sections = [subject]
    if config.trailer.enabled:
        sections.append(config.trailer.marker)
    if config.co_author:
        sections.append(f"Co-Authored-By: {config.co_author}")
    return "\n\n".join(sections)


__all__ = [
    "CommitMessageError",
    "MAX_SUBJECT_LENGTH",
    "commit_type_for",
    "enhance_description",
    "extract_entity_name",
    "generate_commit_message",
    "should_commit_step",
]
