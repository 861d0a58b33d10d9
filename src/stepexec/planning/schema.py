"""Typed records describing an execution plan and its steps."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RecordModel(BaseModel):
    """Base Pydantic model shared by plan records."""

    model_config = ConfigDict(
        extra="forbid", frozen=False, populate_by_name=True, validate_assignment=True
    )


class StepType(str, Enum):
    """Operations a plan step can perform."""

    CREATE_FILE = "create_file"
    REFACTOR_FILE = "refactor_file"
    DELETE_FILE = "delete_file"
    FOLDER = "folder"
    BRANCH = "branch"
    PULL_REQUEST = "pull_request"


class StepStatus(str, Enum):
    """Lifecycle states for a step."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def completed(self) -> bool:
        return self in (StepStatus.SUCCESS, StepStatus.SKIPPED)


class Layer(str, Enum):
    """Architectural partitions recognised by the rule enforcer and scorer."""

    DOMAIN = "domain"
    DATA = "data"
    INFRA = "infra"
    PRESENTATION = "presentation"
    MAIN = "main"


class Target(str, Enum):
    """Kind of project a plan is generated for."""

    BACKEND = "backend"
    FRONTEND = "frontend"
    FULLSTACK = "fullstack"


SCORE_MIN = -2
SCORE_MAX = 2


class LayerInfo(BaseModel):
    """Target/layer pair resolved once per run."""

    model_config = ConfigDict(frozen=True)

    target: Target
    layer: Layer

    def describe(self) -> str:
        return f"{self.target.value} / {self.layer.value}"


class FolderSpec(RecordModel):
    base_path: str = Field(alias="basePath")
    folders: List[str] = Field(default_factory=list)


class StepActionSpec(RecordModel):
    """Type-specific payload carried under ``action`` in the plan document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    create_folders: Optional[FolderSpec] = None
    branch_name: Optional[str] = None
    target_branch: Optional[str] = None
    source_branch: Optional[str] = None
    title: Optional[str] = None


class Step(RecordModel):
    """Single atomic operation within a plan."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, validate_assignment=True)

    id: str = ""
    type: str
    status: StepStatus = StepStatus.PENDING
    score: Optional[int] = Field(default=None, ge=SCORE_MIN, le=SCORE_MAX)
    execution_log: str = ""
    path: Optional[str] = None
    content: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("content", "template")
    )
    action: Optional[StepActionSpec] = None
    validation_script: Optional[str] = None
    commit_id: Optional[str] = None

    def label(self, index: int) -> str:
        return self.id or f"Unnamed Step {index + 1}"


class PlanMetadata(RecordModel):
    model_config = ConfigDict(extra="allow")

    layer: Optional[str] = None
    project_type: Optional[str] = None
    architecture_style: Optional[str] = None


class PlanEvaluation(RecordModel):
    model_config = ConfigDict(extra="allow")

    final_score: Optional[float] = None
    final_status: Optional[str] = None
    commit_ids: List[str] = Field(default_factory=list)


LAYER_STEP_KEYS: Dict[Layer, str] = {layer: f"{layer.value}_steps" for layer in Layer}


class Plan(RecordModel):
    """Ordered document of steps, optionally partitioned by layer."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    metadata: Optional[PlanMetadata] = None
    steps: Optional[List[Step]] = None
    domain_steps: Optional[List[Step]] = None
    data_steps: Optional[List[Step]] = None
    infra_steps: Optional[List[Step]] = None
    presentation_steps: Optional[List[Step]] = None
    main_steps: Optional[List[Step]] = None
    evaluation: Optional[PlanEvaluation] = None

    def layer_steps(self, layer: Layer) -> Optional[List[Step]]:
        return getattr(self, LAYER_STEP_KEYS[layer])

    def to_document(self) -> Dict[str, Any]:
        """Return the plan as a plain mapping, preserving the document's keys."""

        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)
