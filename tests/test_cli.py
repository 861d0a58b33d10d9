from __future__ import annotations

import textwrap
from pathlib import Path

from typer.testing import CliRunner

from conftest import GitRepo, read_plan, write_plan
from stepexec.cli import app

runner = CliRunner()


def _gateless_config(path: Path) -> Path:
    path.write_text(
        textwrap.dedent(
            """
            commit:
              quality_checks:
                lint: false
                test: false
            """
        ).strip()
        + "\n",
        encoding="utf-8",
    )
    return path


def test_run_executes_plan_and_commits(tmp_path: Path, git_repo: GitRepo) -> None:
    plan = write_plan(
        tmp_path / "plans" / "backend-data-template.yaml",
        {
            "metadata": {"layer": "data"},
            "data_steps": [
                {
                    "id": "create-db-add-account",
                    "type": "create_file",
                    "path": "src/data/usecases/db-add-account.ts",
                    "content": "export class DbAddAccount implements AddAccount {}\n",
                }
            ],
        },
    )
    config = _gateless_config(tmp_path / "execute.yml")

    result = runner.invoke(
        app,
        ["run", str(plan), "--root", str(git_repo.root), "--config", str(config), "--non-interactive"],
    )

    assert result.exit_code == 0, result.output
    assert git_repo.commit_count() == 2
    assert git_repo.head_subject().startswith("feat(data): ")
    document = read_plan(plan)
    assert document["data_steps"][0]["status"] == "SUCCESS"
    assert document["evaluation"]["final_status"] == "SUCCESS"


def test_run_reports_missing_plan(tmp_path: Path, git_repo: GitRepo) -> None:
    result = runner.invoke(
        app,
        ["run", str(tmp_path / "absent.yaml"), "--root", str(git_repo.root), "--non-interactive", "--no-validate"],
    )

    assert result.exit_code == 1


def test_status_lists_steps_and_evaluation(tmp_path: Path) -> None:
    plan = write_plan(
        tmp_path / "backend-domain-template.yaml",
        {
            "domain_steps": [
                {"id": "a", "type": "folder", "status": "SUCCESS", "score": 2},
                {"id": "b", "type": "create_file", "path": "x.ts", "status": "FAILED", "score": -1},
                {"type": "delete_file", "path": "y.ts"},
            ],
            "evaluation": {"final_status": "SUCCESS", "final_score": 1.5, "commit_ids": ["abc123"]},
        },
    )

    result = runner.invoke(app, ["status", str(plan)])

    assert result.exit_code == 0, result.output
    assert "Layer: backend / domain" in result.output
    assert "- [SUCCESS] a (folder) score +2" in result.output
    assert "- [FAILED] b (create_file) score -1" in result.output
    assert "- [PENDING] Unnamed Step 3 (delete_file) score -" in result.output
    assert "Evaluation: SUCCESS score 1.5" in result.output
    assert "Commits: abc123" in result.output


def test_status_rejects_unreadable_plan(tmp_path: Path) -> None:
    plan = tmp_path / "plan.yaml"
    plan.write_text("- not\n- a mapping\n", encoding="utf-8")

    result = runner.invoke(app, ["status", str(plan)])

    assert result.exit_code == 1
    assert "Failed to load plan" in result.output


def test_batch_requires_a_selection(tmp_path: Path) -> None:
    result = runner.invoke(app, ["batch", "--templates", str(tmp_path)])

    assert result.exit_code == 1
    assert "Choose one of --all, --layer or --target" in result.output


def test_batch_without_matching_templates(tmp_path: Path) -> None:
    (tmp_path / "frontend-presentation-template.yaml").write_text("steps: []\n", encoding="utf-8")
    (tmp_path / "notes.yaml").write_text("steps: []\n", encoding="utf-8")

    result = runner.invoke(app, ["batch", "--layer", "domain", "--templates", str(tmp_path)])

    assert result.exit_code == 1
    assert "No templates found matching the selection." in result.output
