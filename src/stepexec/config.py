"""Commit configuration and execution options for a plan run."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".stepexec") / "config" / "execute.yml"

CommitType = Literal["feat", "fix", "chore", "refactor", "test", "docs"]

DEFAULT_TYPE_MAPPING: Dict[str, Optional[CommitType]] = {
    "create_file": "feat",
    "refactor_file": "refactor",
    "delete_file": "chore",
    "folder": "chore",
    "branch": None,
    "pull_request": None,
    "validation": None,
}


class _ConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class QualityChecksConfig(_ConfigModel):
    lint: bool = True
    lint_command: str = "lint"
    test: bool = True
    test_command: str = "test --run"


class ConventionalCommitsConfig(_ConfigModel):
    enabled: bool = True
    type_mapping: Dict[str, Optional[CommitType]] = Field(
        default_factory=lambda: dict(DEFAULT_TYPE_MAPPING)
    )

    @field_validator("type_mapping", mode="before")
    @classmethod
    def _merge_defaults(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            merged: Dict[str, Any] = dict(DEFAULT_TYPE_MAPPING)
            merged.update(value)
            return merged
        return value


class TrailerConfig(_ConfigModel):
    enabled: bool = True
    marker: str = "Generated with step-executor"


class CommitConfig(_ConfigModel):
    """Settings controlling quality gates and commit generation.

    Loaded once at startup and never mutated during a run.
    """

    enabled: bool = True
    quality_checks: QualityChecksConfig = Field(default_factory=QualityChecksConfig)
    conventional_commits: ConventionalCommitsConfig = Field(
        default_factory=ConventionalCommitsConfig
    )
    co_author: str = "Step Executor <noreply@stepexec.dev>"
    trailer: TrailerConfig = Field(default_factory=TrailerConfig)
    interactive_safety: bool = True


def load_commit_config(path: Path | str | None = None, *, root: Path | None = None) -> CommitConfig:
    """Load the ``commit`` section of the execute configuration.

    Any problem (missing file, unreadable YAML, missing ``commit`` key, schema
    violation) is logged and the defaults are returned instead.
    """

    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if root is not None and not config_path.is_absolute():
        config_path = root / config_path

    if not config_path.exists():
        LOGGER.info("No execute config found at %s, using defaults", config_path)
        return CommitConfig()

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as error:
        LOGGER.warning("Failed to load config %s: %s; using defaults", config_path, error)
        return CommitConfig()

    if not isinstance(data, Mapping) or not isinstance(data.get("commit"), Mapping):
        LOGGER.warning("Invalid config format in %s (missing 'commit'); using defaults", config_path)
        return CommitConfig()

    try:
        config = CommitConfig.model_validate(data["commit"])
    except ValidationError as error:
        LOGGER.warning("Configuration validation errors in %s; using defaults", config_path)
        for issue in error.errors():
            location = ".".join(str(part) for part in issue.get("loc", ()))
            LOGGER.warning("  - commit.%s: %s", location, issue.get("msg"))
        return CommitConfig()

    LOGGER.info("Loaded commit configuration from %s", config_path)
    return config


_TRUTHY = {"1", "true"}


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, "").strip().lower() in _TRUTHY


class ExecutionOptions(BaseModel):
    """Run-mode switches resolved from CLI flags and the environment."""

    model_config = ConfigDict(frozen=True)

    non_interactive: bool = False
    auto_confirm: bool = False
    strict: bool = False
    audit: bool = False

    @classmethod
    def resolve(
        cls,
        *,
        non_interactive: Optional[bool] = None,
        auto_confirm: Optional[bool] = None,
        strict: Optional[bool] = None,
        audit: Optional[bool] = None,
        environ: Mapping[str, str] | None = None,
    ) -> "ExecutionOptions":
        """Combine CLI values (``None`` when not given) with environment fallbacks."""

        env = os.environ if environ is None else environ

        if non_interactive is None:
            non_interactive = _env_flag(env, "STEPEXEC_NON_INTERACTIVE") or (
                env.get("CI", "").strip().lower() == "true"
            )
        if auto_confirm is None:
            auto_confirm = _env_flag(env, "STEPEXEC_AUTO_CONFIRM")
        if strict is None:
            strict = _env_flag(env, "STEPEXEC_STRICT")
        if audit is None:
            audit = _env_flag(env, "STEPEXEC_AUDIT_LOG")

        if strict and auto_confirm:
            LOGGER.warning("--strict overrides --yes; prompts will not be auto-approved")
            auto_confirm = False

        return cls(
            non_interactive=non_interactive,
            auto_confirm=auto_confirm,
            strict=strict,
            audit=audit,
        )


__all__ = [
    "CommitConfig",
    "CommitType",
    "ConventionalCommitsConfig",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_TYPE_MAPPING",
    "ExecutionOptions",
    "QualityChecksConfig",
    "TrailerConfig",
    "load_commit_config",
]
