"""Typed step actions and the handlers that apply them to a working tree.

``parse_action`` turns a loosely typed :class:`~stepexec.planning.schema.Step`
into one of the action models below, discriminated on ``type``.
``apply_action`` then dispatches over the closed set of variants; an unknown
variant is an error rather than a silent no-op.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .schema import Step, StepType

LOGGER = logging.getLogger(__name__)

REPLACE_OPEN = "<<<REPLACE>>>"
REPLACE_CLOSE = "<<</REPLACE>>>"
WITH_OPEN = "<<<WITH>>>"
WITH_CLOSE = "<<</WITH>>>"

_REPLACE_BLOCK = re.compile(re.escape(REPLACE_OPEN) + r"(.*?)" + re.escape(REPLACE_CLOSE), re.DOTALL)
_WITH_BLOCK = re.compile(re.escape(WITH_OPEN) + r"(.*?)" + re.escape(WITH_CLOSE), re.DOTALL)


class StepActionError(RuntimeError):
    """Raised when a step action is malformed or cannot be applied."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = dict(details or {})


def has_refactor_markers(content: str | None) -> bool:
    """Return ``True`` when ``content`` carries both refactor delimiters."""

    if not content:
        return False
    return REPLACE_OPEN in content and WITH_OPEN in content


def split_refactor_markers(content: str, step_id: str = "") -> tuple[str, str]:
    """Return the ``(old, new)`` code blocks of a refactor body."""

    replace_match = _REPLACE_BLOCK.search(content)
    with_match = _WITH_BLOCK.search(content)
    if not replace_match or not with_match:
        raise StepActionError(
            f"Invalid refactor template for step {step_id}. "
            f"Missing {REPLACE_OPEN} or {WITH_OPEN} blocks."
        )
    return replace_match.group(1).strip(), with_match.group(1).strip()


class _ActionModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    step_id: str = ""


class CreateFileAction(_ActionModel):
    type: Literal["create_file"] = "create_file"
    path: str = Field(min_length=1)
    content: str = ""


class RefactorFileAction(_ActionModel):
    type: Literal["refactor_file"] = "refactor_file"
    path: str = Field(min_length=1)
    content: str = ""


class DeleteFileAction(_ActionModel):
    type: Literal["delete_file"] = "delete_file"
    path: str = Field(min_length=1)


class FolderAction(_ActionModel):
    type: Literal["folder"] = "folder"
    base_path: str = Field(min_length=1)
    folders: List[str] = Field(default_factory=list)


class BranchAction(_ActionModel):
    type: Literal["branch"] = "branch"
    branch_name: str = Field(min_length=1)


class PullRequestAction(_ActionModel):
    type: Literal["pull_request"] = "pull_request"
    target_branch: str = Field(min_length=1)
    source_branch: str = Field(min_length=1)
    title: Optional[str] = None


StepAction = Annotated[
    Union[
        CreateFileAction,
        RefactorFileAction,
        DeleteFileAction,
        FolderAction,
        BranchAction,
        PullRequestAction,
    ],
    Field(discriminator="type"),
]

_STEP_ACTION_ADAPTER: TypeAdapter[StepAction] = TypeAdapter(StepAction)

_FIELD_SOURCES: Dict[str, str] = {
    "path": "path",
    "base_path": "action.create_folders.basePath",
    "branch_name": "action.branch_name",
    "target_branch": "action.target_branch",
    "source_branch": "action.source_branch",
}

_KNOWN_TYPES = frozenset(member.value for member in StepType)


def _payload(step: Step) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": step.type, "step_id": step.id}
    if step.path is not None:
        payload["path"] = step.path
    if step.content is not None:
        payload["content"] = step.content

    action = step.action
    if action is not None:
        if action.create_folders is not None:
            payload["base_path"] = action.create_folders.base_path
            payload["folders"] = list(action.create_folders.folders)
        for name in ("branch_name", "target_branch", "source_branch", "title"):
            value = getattr(action, name)
            if value is not None:
                payload[name] = value
    return payload


def parse_action(step: Step) -> StepAction:
    """Convert ``step`` into its typed action, rejecting unknown types."""

    if step.type not in _KNOWN_TYPES:
        raise StepActionError(f"Unknown step type: '{step.type}'", details={"step_id": step.id})
    try:
        return _STEP_ACTION_ADAPTER.validate_python(_payload(step))
    except ValidationError as error:
        fields = [str(item["loc"][-1]) for item in error.errors() if item.get("loc")]
        missing = ", ".join(f"'{_FIELD_SOURCES.get(name, name)}'" for name in fields) or "required fields"
        label = step.type.replace("_", " ").capitalize()
        raise StepActionError(
            f"{label} step is missing {missing}.",
            details={"step_id": step.id, "errors": error.errors()},
        ) from error


@dataclass(slots=True)
class ActionOutcome:
    """Summary of what a handler changed."""

    message: str
    touched: List[str] = field(default_factory=list)


def _resolve_inside(root: Path, relative: str) -> Path:
    base = root.resolve()
    target = (base / relative).resolve()
    try:
        target.relative_to(base)
    except ValueError:
        raise StepActionError(f"Path escapes the working tree: {relative}") from None
    return target


def _create_file(action: CreateFileAction, root: Path) -> ActionOutcome:
    target = _resolve_inside(root, action.path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(action.content, encoding="utf-8")
    return ActionOutcome(message=f"Created file: {action.path}", touched=[action.path])


def _refactor_file(action: RefactorFileAction, root: Path) -> ActionOutcome:
    old_code, new_code = split_refactor_markers(action.content, action.step_id)
    target = _resolve_inside(root, action.path)
    if not target.is_file():
        raise StepActionError(f"File to refactor does not exist at path: {action.path}")

    original = target.read_text(encoding="utf-8")
    if not old_code or old_code not in original:
        raise StepActionError(
            f"Could not find the OLD code block in {action.path}. Refactoring failed."
        )
    target.write_text(original.replace(old_code, new_code, 1), encoding="utf-8")
    return ActionOutcome(message=f"Applied refactoring to {action.path}", touched=[action.path])


def _delete_file(action: DeleteFileAction, root: Path) -> ActionOutcome:
    target = _resolve_inside(root, action.path)
    if not target.exists():
        LOGGER.warning("File to delete at %s does not exist. Skipping.", action.path)
        return ActionOutcome(message=f"Already absent: {action.path}")
    if target.is_dir():
        shutil.rmtree(target)
    else:
        target.unlink()
    return ActionOutcome(message=f"Deleted file: {action.path}", touched=[action.path])


def _create_folders(action: FolderAction, root: Path) -> ActionOutcome:
    created: List[str] = []
    for folder in action.folders:
        relative = f"{action.base_path.rstrip('/')}/{folder}"
        _resolve_inside(root, relative).mkdir(parents=True, exist_ok=True)
        created.append(relative)
    return ActionOutcome(message=f"Created {len(created)} director{'y' if len(created) == 1 else 'ies'}")


def apply_action(action: StepAction, root: Path | str) -> ActionOutcome:
    """Apply ``action`` under ``root``; branch and PR steps only record intent."""

    root = Path(root)
    if isinstance(action, CreateFileAction):
        return _create_file(action, root)
    if isinstance(action, RefactorFileAction):
        return _refactor_file(action, root)
    if isinstance(action, DeleteFileAction):
        return _delete_file(action, root)
    if isinstance(action, FolderAction):
        return _create_folders(action, root)
    if isinstance(action, BranchAction):
        return ActionOutcome(
            message=f"Branch '{action.branch_name}' validated; the validation script creates it."
        )
    if isinstance(action, PullRequestAction):
        title = f" ({action.title})" if action.title else ""
        return ActionOutcome(
            message=(
                f"Pull request {action.source_branch} -> {action.target_branch}{title} validated; "
                "the validation script opens it."
            )
        )
    raise StepActionError(f"Unhandled step action: {type(action).__name__}")


__all__ = [
    "ActionOutcome",
    "BranchAction",
    "CreateFileAction",
    "DeleteFileAction",
    "FolderAction",
    "PullRequestAction",
    "RefactorFileAction",
    "StepAction",
    "StepActionError",
    "apply_action",
    "has_refactor_markers",
    "parse_action",
    "split_refactor_markers",
]
