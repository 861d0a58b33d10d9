from __future__ import annotations

from pathlib import Path

import yaml

from stepexec.config import DEFAULT_CONFIG_PATH, CommitConfig, ExecutionOptions, load_commit_config


def _write(path: Path, payload: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle)
    return path


def test_missing_config_falls_back_to_defaults(tmp_path: Path) -> None:
    assert load_commit_config(root=tmp_path) == CommitConfig()


def test_config_loads_from_default_location(tmp_path: Path) -> None:
    _write(
        tmp_path / DEFAULT_CONFIG_PATH,
        {
            "commit": {
                "quality_checks": {"lint": False, "test_command": "test:unit"},
                "conventional_commits": {"type_mapping": {"folder": None, "create_file": "feat"}},
                "interactive_safety": False,
            }
        },
    )

    config = load_commit_config(root=tmp_path)

    assert config.quality_checks.lint is False
    assert config.quality_checks.lint_command == "lint"
    assert config.quality_checks.test_command == "test:unit"
    assert config.conventional_commits.type_mapping["folder"] is None
    assert config.conventional_commits.type_mapping["refactor_file"] == "refactor"
    assert config.interactive_safety is False


def test_invalid_config_values_use_defaults(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "execute.yml",
        {"commit": {"conventional_commits": {"type_mapping": {"create_file": "feature"}}}},
    )

    assert load_commit_config(path) == CommitConfig()


def test_config_without_commit_key_uses_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path / "execute.yml", {"other": {}})

    assert load_commit_config(path) == CommitConfig()


def test_unreadable_yaml_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "execute.yml"
    path.write_text("commit: [unclosed\n", encoding="utf-8")

    assert load_commit_config(path) == CommitConfig()


def test_execution_options_read_environment() -> None:
    options = ExecutionOptions.resolve(
        environ={"CI": "true", "STEPEXEC_AUTO_CONFIRM": "1", "STEPEXEC_AUDIT_LOG": "true"}
    )

    assert options.non_interactive
    assert options.auto_confirm
    assert options.audit
    assert not options.strict


def test_cli_values_win_over_environment() -> None:
    options = ExecutionOptions.resolve(
        non_interactive=False,
        environ={"STEPEXEC_NON_INTERACTIVE": "true"},
    )

    assert not options.non_interactive


def test_strict_disables_auto_confirm() -> None:
    options = ExecutionOptions.resolve(auto_confirm=True, environ={"STEPEXEC_STRICT": "TRUE"})

    assert options.strict
    assert not options.auto_confirm
