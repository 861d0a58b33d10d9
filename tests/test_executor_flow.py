from __future__ import annotations

import asyncio
import signal
from pathlib import Path

import pytest

from conftest import FakeQualityGate, GitRepo, RecordingConfirm, RecordingSleep, read_plan, write_plan
from stepexec.config import CommitConfig, ExecutionOptions
from stepexec.planning.executor import (
    SAFETY_GRACE_SECONDS,
    ExecutionAborted,
    ExitCode,
    RollbackError,
    StepExecutor,
)
from stepexec.planning.validation import ValidationResult
from stepexec.planning.schema import Layer, Step, Target

DOMAIN_FILE = "src/domain/models/user.ts"

WELL_FORMED_DOMAIN = (
    "// Value object and aggregate root for the user model\n"
    "export interface User {\n"
    "  id: string\n"
    "  email: string\n"
    "}\n"
)


def _domain_plan(tmp_path: Path, *steps: dict) -> Path:
    return write_plan(
        tmp_path / "plans" / "backend-domain-template.yaml",
        {
            "metadata": {"layer": "domain", "project_type": "backend"},
            "domain_steps": list(steps),
        },
    )


def _create_step(step_id: str = "create-user-model", content: str = WELL_FORMED_DOMAIN) -> dict:
    return {
        "id": step_id,
        "type": "create_file",
        "status": "PENDING",
        "path": DOMAIN_FILE,
        "template": content,
    }


def test_success_path_commits_scores_and_evaluates(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    plan_path = _domain_plan(tmp_path, _create_step())
    executor = make_executor(plan_path)

    summary = asyncio.run(executor.execute())

    assert (git_repo.root / DOMAIN_FILE).read_text(encoding="utf-8") == WELL_FORMED_DOMAIN
    assert git_repo.commit_count() == 2
    assert git_repo.head_subject().startswith("feat(domain): ")
    assert git_repo.status() == ""

    document = read_plan(plan_path)
    step = document["domain_steps"][0]
    assert step["status"] == "SUCCESS"
    assert step["score"] >= 1
    assert "content" in step and "template" not in step
    assert "No validation script provided" in step["execution_log"]
    assert document["evaluation"]["final_status"] == "SUCCESS"
    assert document["evaluation"]["commit_ids"] == summary.commit_ids
    assert len(summary.commit_ids) == 1
    assert summary.layer_info is not None and summary.layer_info.layer is Layer.DOMAIN
    assert summary.total_score == step["score"]


def test_domain_violation_aborts_before_writing(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    content = "import axios from 'axios'\nexport const client = axios.create()\n"
    plan_path = _domain_plan(tmp_path, _create_step("leaky-model", content))
    executor = make_executor(plan_path)

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.VALIDATION_FAILED
    assert not (git_repo.root / DOMAIN_FILE).exists()
    assert git_repo.commit_count() == 1

    document = read_plan(plan_path)
    assert "evaluation" not in document
    step = document["domain_steps"][0]
    assert step["status"] == "FAILED"
    assert "DOMAIN LAYER VIOLATION" in step["execution_log"]


def test_quality_gate_failure_rolls_back_new_file(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    plan_path = _domain_plan(tmp_path, _create_step())
    gate = FakeQualityGate(passed=False)
    executor = make_executor(plan_path, gate=gate)

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.QUALITY_GATE_FAILED
    assert gate.calls == 1
    assert not (git_repo.root / DOMAIN_FILE).exists()
    assert git_repo.commit_count() == 1
    assert git_repo.status() == ""

    step = read_plan(plan_path)["domain_steps"][0]
    assert step["status"] == "FAILED"
    assert step["score"] == -1
    assert "--- QUALITY CHECKS FAILED ---" in step["execution_log"]
    assert "rollback_success" in executor.audit.events()


def test_quality_gate_failure_restores_pre_existing_file(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    existing = git_repo.root / "src" / "domain" / "models" / "account.ts"
    original = existing.read_text(encoding="utf-8")
    plan_path = _domain_plan(
        tmp_path,
        {
            "id": "rename-balance",
            "type": "refactor_file",
            "path": "src/domain/models/account.ts",
            "content": "<<<REPLACE>>>balance: number<<</REPLACE>>>\n<<<WITH>>>amount: number<<</WITH>>>",
        },
    )
    executor = make_executor(plan_path, gate=FakeQualityGate(passed=False))

    with pytest.raises(ExecutionAborted):
        asyncio.run(executor.execute())

    assert existing.read_text(encoding="utf-8") == original
    assert git_repo.status() == ""


def test_rollback_keeps_changes_staged_before_the_run(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    (git_repo.root / "notes.txt").write_text("draft\n", encoding="utf-8")
    (git_repo.root / "README.md").write_text("# edited by hand\n", encoding="utf-8")
    git_repo.git("add", "notes.txt", "README.md")
    plan_path = _domain_plan(tmp_path, _create_step())
    executor = make_executor(plan_path, gate=FakeQualityGate(passed=False))

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.QUALITY_GATE_FAILED
    assert not (git_repo.root / DOMAIN_FILE).exists()
    assert (git_repo.root / "notes.txt").read_text(encoding="utf-8") == "draft\n"
    assert (git_repo.root / "README.md").read_text(encoding="utf-8") == "# edited by hand\n"
    assert set(git_repo.git("diff", "--cached", "--name-only").splitlines()) == {"README.md", "notes.txt"}


def test_rollback_refuses_when_head_moved_during_step(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    plan_path = _domain_plan(tmp_path, _create_step())
    gate = FakeQualityGate(passed=False)
    gate.on_run = lambda: git_repo.git("commit", "--allow-empty", "-q", "-m", "Concurrent commit")
    executor = make_executor(plan_path, gate=gate)

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.QUALITY_GATE_FAILED
    assert isinstance(excinfo.value.__cause__, RollbackError)
    assert "Git state has changed unexpectedly" in str(excinfo.value.__cause__)
    assert (git_repo.root / DOMAIN_FILE).exists()
    assert executor.audit.events()[-2:] == ["rollback_started", "rollback_failed"]

    step = read_plan(plan_path)["domain_steps"][0]
    assert step["status"] == "FAILED"
    assert step["score"] == -1
    assert "--- ROLLBACK FAILED ---" in step["execution_log"]


def test_rollback_without_recorded_revision_is_refused(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    executor = make_executor(_domain_plan(tmp_path, _create_step()))
    step = Step(id="orphan", type="create_file", path=DOMAIN_FILE, content=WELL_FORMED_DOMAIN)

    try:
        with pytest.raises(RollbackError, match="No revision was recorded"):
            asyncio.run(executor.rollback(step))
    finally:
        executor.close()

    assert executor.audit.events() == ["rollback_started", "rollback_failed"]


def test_plan_committed_inside_the_repository_counts_as_clean(git_repo: GitRepo, make_executor) -> None:
    plan_path = write_plan(
        git_repo.root / "backend-domain-template.yaml",
        {"metadata": {"layer": "domain"}, "domain_steps": [_create_step()]},
    )
    git_repo.git("add", plan_path.name)
    git_repo.git("commit", "-q", "-m", "Add plan")
    sleep = RecordingSleep()
    confirm = RecordingConfirm()

    summary = asyncio.run(
        make_executor(plan_path, options=ExecutionOptions(strict=True), sleep=sleep, confirm=confirm).execute()
    )

    assert sleep.delays == []
    assert confirm.prompts == []
    assert len(summary.commit_ids) == 1
    assert git_repo.commit_count() == 3


def test_rerun_skips_completed_steps(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    plan_path = _domain_plan(tmp_path, _create_step())
    asyncio.run(make_executor(plan_path).execute())
    first = read_plan(plan_path)

    gate = FakeQualityGate()
    summary = asyncio.run(make_executor(plan_path, gate=gate).execute())

    assert gate.calls == 0
    assert git_repo.commit_count() == 2
    assert summary.steps[0].skipped
    assert summary.commit_ids == []
    second = read_plan(plan_path)
    assert second["domain_steps"][0] == first["domain_steps"][0]
    assert second["evaluation"]["final_status"] == "SUCCESS"
    assert second["evaluation"]["commit_ids"] == first["evaluation"]["commit_ids"]


def test_resume_keeps_commits_from_the_interrupted_run(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    order_step = _create_step("create-order-model", WELL_FORMED_DOMAIN.replace("User", "Order"))
    order_step["path"] = "src/domain/models/order.ts"
    plan_path = _domain_plan(tmp_path, _create_step(), order_step)
    gate = FakeQualityGate()

    def _fail_second_step() -> None:
        gate.passed = gate.calls < 2

    gate.on_run = _fail_second_step
    with pytest.raises(ExecutionAborted):
        asyncio.run(make_executor(plan_path, gate=gate).execute())
    first_commit = read_plan(plan_path)["domain_steps"][0]["commit_id"]

    summary = asyncio.run(make_executor(plan_path).execute())

    document = read_plan(plan_path)
    assert len(summary.commit_ids) == 1
    assert document["evaluation"]["commit_ids"] == [first_commit, summary.commit_ids[0]]
    assert document["domain_steps"][1]["commit_id"] == summary.commit_ids[0]
    assert git_repo.commit_count() == 3


def test_multiple_steps_commit_individually(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    plan_path = _domain_plan(
        tmp_path,
        _create_step(),
        {"id": "remove-account", "type": "delete_file", "path": "src/domain/models/account.ts"},
        {
            "id": "scaffold",
            "type": "folder",
            "action": {"create_folders": {"basePath": "src/domain", "folders": ["usecases", "errors"]}},
        },
    )

    summary = asyncio.run(make_executor(plan_path).execute())

    # Folder creation leaves nothing tracked to commit.
    assert len(summary.commit_ids) == 2
    assert git_repo.commit_count() == 3
    assert git_repo.head_subject().startswith("chore(domain): ")
    assert not (git_repo.root / "src" / "domain" / "models" / "account.ts").exists()
    assert (git_repo.root / "src" / "domain" / "usecases").is_dir()
    statuses = [step["status"] for step in read_plan(plan_path)["domain_steps"]]
    assert statuses == ["SUCCESS", "SUCCESS", "SUCCESS"]


def test_validation_script_output_is_recorded(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    step = _create_step()
    step["validation_script"] = "echo checked-user-model\n"
    plan_path = _domain_plan(tmp_path, step)
    executor = make_executor(plan_path)

    asyncio.run(executor.execute())

    recorded = read_plan(plan_path)["domain_steps"][0]["execution_log"]
    assert "--- SCRIPT OUTPUT ---" in recorded
    assert "checked-user-model" in recorded
    assert "checked-user-model" in executor.run_log.path.read_text(encoding="utf-8")


def test_failing_validation_script_marks_step_failed(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    step = _create_step()
    step["validation_script"] = "echo broken >&2\nexit 4\n"
    plan_path = _domain_plan(tmp_path, step)

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(make_executor(plan_path).execute())

    assert excinfo.value.exit_code is ExitCode.ERROR
    recorded = read_plan(plan_path)["domain_steps"][0]
    assert recorded["status"] == "FAILED"
    assert "--- ERROR LOG ---" in recorded["execution_log"]
    assert "exit code 4" in recorded["execution_log"]
    assert git_repo.commit_count() == 1


def test_dirty_tree_in_strict_mode_refuses_to_run(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    (git_repo.root / "scratch.txt").write_text("work in progress\n", encoding="utf-8")
    plan_path = _domain_plan(tmp_path, _create_step())
    executor = make_executor(plan_path, options=ExecutionOptions(strict=True))

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.ERROR
    assert not (git_repo.root / DOMAIN_FILE).exists()


def test_dirty_tree_non_interactive_waits_grace_period(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    (git_repo.root / "scratch.txt").write_text("work in progress\n", encoding="utf-8")
    plan_path = _domain_plan(tmp_path, _create_step())
    sleep = RecordingSleep()

    asyncio.run(make_executor(plan_path, sleep=sleep).execute())

    assert sleep.delays == [SAFETY_GRACE_SECONDS]
    assert "scratch.txt" in git_repo.status()
    assert git_repo.commit_count() == 2


def test_dirty_tree_prompt_declined_aborts(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    (git_repo.root / "scratch.txt").write_text("work in progress\n", encoding="utf-8")
    plan_path = _domain_plan(tmp_path, _create_step())
    confirm = RecordingConfirm(answer=False)
    executor = make_executor(plan_path, options=ExecutionOptions(), confirm=confirm)

    with pytest.raises(ExecutionAborted):
        asyncio.run(executor.execute())

    assert len(confirm.prompts) == 1


def test_outside_git_repository_fails_safety_check(tmp_path: Path) -> None:
    workdir = tmp_path / "not-a-repo"
    workdir.mkdir()
    plan_path = _domain_plan(tmp_path, _create_step())
    executor = StepExecutor(
        plan_path,
        root=workdir,
        config=CommitConfig(),
        options=ExecutionOptions(non_interactive=True),
        quality_gate=FakeQualityGate(),
    )

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.ERROR


class _StubValidator:
    def __init__(self, result: ValidationResult) -> None:
        self.result = result
        self.calls = 0

    def validate(self, plan_path):
        self.calls += 1
        return self.result


def test_invalid_plan_aborts_in_strict_mode(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    plan_path = _domain_plan(tmp_path, _create_step())
    validator = _StubValidator(ValidationResult(valid=False, errors=["steps[0]: bad"]))
    executor = make_executor(plan_path, validator=validator, options=ExecutionOptions(strict=True))

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.VALIDATION_FAILED
    assert validator.calls == 1
    assert not (git_repo.root / DOMAIN_FILE).exists()


def test_validator_detection_overrides_layer(tmp_path: Path, git_repo: GitRepo, make_executor) -> None:
    plan_path = write_plan(
        tmp_path / "plans" / "plan.yaml",
        {"steps": [_create_step()], "presentation_steps": []},
    )
    validator = _StubValidator(
        ValidationResult(valid=True, detected_target=Target.FRONTEND, detected_layer=Layer.PRESENTATION)
    )

    summary = asyncio.run(make_executor(plan_path, validator=validator).execute())

    assert summary.layer_info is not None
    assert summary.layer_info.describe() == "frontend / presentation"
    assert read_plan(plan_path)["steps"][0]["status"] == "SUCCESS"


def test_signal_cleanup_unstages_and_reports_exit_code(
    tmp_path: Path, git_repo: GitRepo, make_executor
) -> None:
    plan_path = _domain_plan(tmp_path, _create_step())
    gate = FakeQualityGate()
    executor = make_executor(plan_path, gate=gate)

    async def _interrupt() -> None:
        git_repo.git("add", DOMAIN_FILE)
        executor._on_signal(signal.SIGTERM)
        await asyncio.sleep(10)

    gate.on_run = _interrupt

    with pytest.raises(ExecutionAborted) as excinfo:
        asyncio.run(executor.execute())

    assert excinfo.value.exit_code is ExitCode.SIGTERM
    assert git_repo.git("diff", "--cached", "--name-only") == ""
    assert executor.run_log.closed
    assert git_repo.commit_count() == 1
