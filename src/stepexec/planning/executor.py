"""Step execution engine: runs a plan one step at a time with commit-or-rollback.

Per step the engine records the current revision, skips completed steps,
enforces layer rules, applies the step action, runs the optional validation
script, scores and persists the step, runs the quality gate, and then either
commits or rolls back.  Any failure is persisted on the step and aborts the
run with an :class:`ExecutionAborted` carrying the exit code.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import typer

from ..config import CommitConfig, ExecutionOptions, load_commit_config
from ..policy.layer_rules import (
    LayerViolationError,
    enforce_layer_rules,
    enrich_error_message,
    layer_guidance,
)
from ..tools.audit import AuditTrail
from ..tools.commands import CommandResolver
from ..tools.commit_message import generate_commit_message, should_commit_step
from ..tools.gates import CheckOutcome, QualityCheckResult, QualityGate, QualityGateError
from ..tools.run_log import RunLog, resolve_log_directory
from ..tools.scripts import run_validation_script
from ..tools.vcs import GitError, GitRepository
from .actions import apply_action, parse_action
from .schema import LayerInfo, Plan, PlanEvaluation, Step, StepStatus
from .scoring import RUNTIME_ERROR_SCORE, FailureClassifier, ScoringEngine
from .store import PlanLoadError, PlanStore, detect_layer_from_filename, layer_from_metadata
from .validation import PlanValidator, ValidationResult

LOGGER = logging.getLogger(__name__)

SAFETY_GRACE_SECONDS = 5.0

ConfirmationProvider = Callable[[str, bool], bool]
Sleeper = Callable[[float], Awaitable[None]]


class ExitCode(IntEnum):
    SUCCESS = 0
    ERROR = 1
    VALIDATION_FAILED = 2
    QUALITY_GATE_FAILED = 3
    SIGINT = 130
    SIGTERM = 143


_SIGNAL_EXIT_CODES: Dict[int, ExitCode] = {
    signal.SIGINT: ExitCode.SIGINT,
    signal.SIGTERM: ExitCode.SIGTERM,
}


class ExecutionAborted(RuntimeError):
    """Raised when the run stops before every step succeeded."""

    def __init__(self, message: str, exit_code: ExitCode = ExitCode.ERROR) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class RollbackError(RuntimeError):
    """Raised when a step's changes could not be reverted automatically."""


def _score_colour(score: int) -> tuple[str, bool]:
    if score >= 2:
        return typer.colors.GREEN, True
    if score >= 1:
        return typer.colors.GREEN, False
    if score >= 0:
        return typer.colors.YELLOW, False
    if score >= -1:
        return typer.colors.RED, False
    return typer.colors.RED, True


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class StepReport:
    """Outcome of one step in a run."""

    step_id: str
    status: StepStatus
    score: Optional[int] = None
    commit_id: Optional[str] = None
    skipped: bool = False


@dataclass(slots=True)
class ExecutionSummary:
    """Aggregated result of a successful run."""

    plan_path: Path
    layer_info: Optional[LayerInfo]
    steps: List[StepReport] = field(default_factory=list)
    commit_ids: List[str] = field(default_factory=list)
    final_score: Optional[float] = None
    score_breakdown: Dict[int, int] = field(default_factory=dict)
    total_score: int = 0


@dataclass(slots=True)
class SignalRegistration:
    """Handle returned by :meth:`StepExecutor.start`; ``close`` removes the handlers."""

    loop: asyncio.AbstractEventLoop
    signals: tuple[int, ...] = ()

    def close(self) -> None:
        for signum in self.signals:
            self.loop.remove_signal_handler(signum)
        self.signals = ()

    def __enter__(self) -> "SignalRegistration":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


def _prompt_confirmation(message: str, default: bool) -> bool:
    return typer.confirm(message, default=default)


class StepExecutor:
    """Execute the steps of one plan document against one working tree."""

    def __init__(
        self,
        plan_path: Path | str,
        *,
        root: Path | str | None = None,
        config: CommitConfig | None = None,
        options: ExecutionOptions | None = None,
        validator: PlanValidator | None = None,
        confirm: ConfirmationProvider | None = None,
        repository: GitRepository | None = None,
        resolver: CommandResolver | None = None,
        quality_gate: QualityGate | None = None,
        classifier: FailureClassifier | None = None,
        run_log: RunLog | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.plan_path = Path(plan_path).resolve()
        self.root = Path(root).resolve() if root is not None else Path.cwd().resolve()
        self.config = config if config is not None else load_commit_config(root=self.root)
        self.options = options or ExecutionOptions.resolve()
        self.validator = validator
        self._confirm = confirm or _prompt_confirmation
        self._sleep = sleep

        self.audit = AuditTrail(verbose=self.options.audit)
        self.repository = repository or GitRepository(self.root)
        checks = self.config.quality_checks
        self.resolver = resolver or CommandResolver(
            self.root,
            allowed_scripts=(checks.lint_command, checks.test_command),
            audit=self.audit,
        )
        self.quality_gate = quality_gate or QualityGate(checks, self.resolver, self.root)
        self._classifier = classifier
        self.run_log = run_log or RunLog(resolve_log_directory(self.plan_path))

        self.store = PlanStore(self.plan_path)
        self.layer_info: Optional[LayerInfo] = detect_layer_from_filename(self.plan_path)
        self.scoring = ScoringEngine(self.layer_info, classifier=classifier)
        self.commit_ids: List[str] = []
        self._step_revision: Optional[str] = None
        self._staged_at_start: Optional[frozenset[str]] = None
        self._received_signal: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._signals: Optional[SignalRegistration] = None

    # ------------------------------------------------------------------ output
    def _say(self, message: str, *, fg: str | None = None, bold: bool = False, err: bool = False) -> None:
        typer.secho(message, fg=fg, bold=bold, err=err)
        if err:
            self.run_log.error(message)
        else:
            self.run_log.log(message)

    # --------------------------------------------------------------- lifecycle
    def start(self) -> SignalRegistration:
        """Install SIGINT/SIGTERM handlers on the running loop."""

        loop = asyncio.get_running_loop()
        installed: List[int] = []
        for signum in _SIGNAL_EXIT_CODES:
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError, ValueError):
                LOGGER.debug("Signal handler for %s unavailable on this platform", signum)
                continue
            installed.append(signum)
        self._signals = SignalRegistration(loop=loop, signals=tuple(installed))
        return self._signals

    def stop(self) -> None:
        if self._signals is not None:
            self._signals.close()
            self._signals = None

    def close(self) -> None:
        """Release the log sink and every cached value held by the engine."""

        self.stop()
        self.run_log.close()
        self.resolver.reset()
        self._step_revision = None
        self._staged_at_start = None

    def _on_signal(self, signum: int) -> None:
        self._received_signal = signum
        LOGGER.warning("Received signal %s, cancelling the run", signum)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def execute(self) -> ExecutionSummary:
        """Run the plan with signal handling and resource cleanup."""

        self.start()
        try:
            self._task = asyncio.ensure_future(self.run())
            try:
                return await self._task
            except asyncio.CancelledError:
                if self._received_signal is None:
                    raise
                exit_code = _SIGNAL_EXIT_CODES[self._received_signal]
                await self._cleanup_after_signal()
                raise ExecutionAborted("Execution interrupted", exit_code) from None
        finally:
            self._task = None
            self.close()

    async def _cleanup_after_signal(self) -> None:
        self._say("Execution interrupted. Cleaning up...", fg=typer.colors.YELLOW, err=True)
        try:
            await self.repository.unstage_all()
        except GitError as error:
            LOGGER.error("Could not reset staged changes during cleanup: %s", error)
            self._say(f"Could not reset staged changes: {error}", fg=typer.colors.RED, err=True)
        else:
            self._say("Staged changes reset", fg=typer.colors.GREEN)

    # --------------------------------------------------------------------- run
    async def run(self) -> ExecutionSummary:
        """Execute every pending step; raise :class:`ExecutionAborted` on failure."""

        plan = self._load_plan()
        await self._check_git_safety()
        await self._pre_validate()
        self.scoring = ScoringEngine(self.layer_info, classifier=self._classifier)

        summary = ExecutionSummary(plan_path=self.plan_path, layer_info=self.layer_info)
        steps = self.store.select_steps(self.layer_info)
        if not steps:
            self._say("Warning: No steps found. Nothing to execute.", fg=typer.colors.YELLOW)
            return summary

        if self.layer_info is not None:
            self._say(f"Executing {self.layer_info.describe()} layer", fg=typer.colors.CYAN, bold=True)
        self._say(f"Total steps: {len(steps)}", fg=typer.colors.CYAN)

        for index, step in enumerate(steps):
            summary.steps.append(await self._run_step(index, step, len(steps)))

        return self._finish(plan, steps, summary)

    def _load_plan(self) -> Plan:
        self._say(f"Loading plan: {self.plan_path}", fg=typer.colors.MAGENTA, bold=True)
        try:
            plan = self.store.load()
        except PlanLoadError as error:
            self._say(f"Error: Could not read or parse the plan file.\n   Reason: {error}", fg=typer.colors.RED, err=True)
            raise ExecutionAborted(str(error), ExitCode.ERROR) from error
        if self.layer_info is None:
            self.layer_info = layer_from_metadata(plan.metadata)
        return plan

    def _is_run_artifact(self, relative: str) -> bool:
        path = (self.root / relative).resolve()
        if path == self.plan_path:
            return True
        log_dir = self.run_log.directory.resolve()
        return path == log_dir or log_dir in path.parents

    async def _check_git_safety(self) -> None:
        if not await self.repository.is_repository():
            self._say("Not in a git repository or git is not available", fg=typer.colors.RED, err=True)
            raise ExecutionAborted("Git safety check failed", ExitCode.ERROR)

        entries = [
            entry
            for entry in await self.repository.status_entries()
            if not self._is_run_artifact(entry.path)
        ]
        if not entries:
            return

        self._say(
            "Warning: You have uncommitted changes in your working directory.\n"
            "   The run will create commits. Please commit or stash your changes first.",
            fg=typer.colors.YELLOW,
        )
        if self.options.strict:
            raise ExecutionAborted("Strict mode refuses to run on a dirty working tree", ExitCode.ERROR)

        if self.config.interactive_safety and not self.options.non_interactive:
            if self.options.auto_confirm:
                self._say("Auto-confirm enabled; continuing.", fg=typer.colors.YELLOW)
                return
            if not self._confirm("Do you want to continue anyway? This may result in mixed commits.", False):
                self._say("Execution aborted by user. Please commit or stash your changes first.", fg=typer.colors.YELLOW)
                raise ExecutionAborted("Git safety check failed", ExitCode.ERROR)
            return

        self._say(
            f"Continuing in {SAFETY_GRACE_SECONDS:.0f} seconds... (Press Ctrl+C to abort)",
            fg=typer.colors.YELLOW,
        )
        await self._sleep(SAFETY_GRACE_SECONDS)

    async def _pre_validate(self) -> None:
        if self.validator is None:
            return
        self._say("Pre-validating plan...", fg=typer.colors.BLUE, bold=True)
        try:
            result: ValidationResult = self.validator.validate(self.plan_path)
        except (OSError, RuntimeError, ValueError) as error:
            self._say(f"Validation error: {error}", fg=typer.colors.RED, err=True)
            if self.options.strict:
                raise ExecutionAborted(f"Validation error: {error}", ExitCode.VALIDATION_FAILED) from error
            return

        for warning in result.warnings:
            self._say(f"   - warning: {warning}", fg=typer.colors.YELLOW)

        if not result.valid:
            self._say("Plan validation failed:", fg=typer.colors.RED, bold=True, err=True)
            for error in result.errors:
                self._say(f"   - {error}", fg=typer.colors.RED, err=True)
            if self.options.strict:
                raise ExecutionAborted("Plan validation failed (strict mode)", ExitCode.VALIDATION_FAILED)
            self._say("Continuing despite validation issues...", fg=typer.colors.YELLOW)
            return

        self._say("Plan validation passed", fg=typer.colors.GREEN)
        if result.detected_target is not None and result.detected_layer is not None:
            self.layer_info = LayerInfo(target=result.detected_target, layer=result.detected_layer)
            self._say(f"Detected: {self.layer_info.describe()} layer", fg=typer.colors.CYAN)

    # -------------------------------------------------------------------- step
    async def _run_step(self, index: int, step: Step, total: int) -> StepReport:
        label = step.label(index)
        self._say(f"\nProcessing Step {index + 1}/{total}: {label}", fg=typer.colors.BLUE, bold=True)

        try:
            self._step_revision = await self.repository.current_revision()
        except GitError as error:
            LOGGER.warning("Could not read current revision; rollback disabled for %s: %s", label, error)
            self._step_revision = None

        try:
            self._staged_at_start = frozenset(await self.repository.staged_files())
        except GitError as error:
            LOGGER.warning("Could not read the index for %s; rollback limited to the step path: %s", label, error)
            self._staged_at_start = None

        if step.status.completed:
            self._say(f"   Skipping step with status '{step.status.value}'.", fg=typer.colors.BRIGHT_BLACK)
            return StepReport(step_id=label, status=step.status, score=step.score, skipped=True)

        started = time.monotonic()
        try:
            enforce_layer_rules(self.layer_info, step)
            outcome = apply_action(parse_action(step), self.root)
            self._say(f"   {outcome.message}", fg=typer.colors.CYAN)

            score = self.scoring.score_success(step)
            if step.validation_script:
                output = await run_validation_script(
                    step.validation_script, label, cwd=self.root, run_log=self.run_log
                )
                execution_log = (
                    f"Completed successfully at {_utc_timestamp()} ({self._elapsed_ms(started)}ms).\n"
                    f"Score: {score}\n\n--- SCRIPT OUTPUT ---\n{output}"
                )
            else:
                execution_log = (
                    f"Action completed successfully at {_utc_timestamp()} ({self._elapsed_ms(started)}ms). "
                    f"Score: {score}. No validation script provided."
                )
            step.score = score
            step.status = StepStatus.SUCCESS
            step.execution_log = execution_log
            self.store.save()

            gate_result = await self._run_quality_gate()
            if not gate_result.overall_passed:
                await self._fail_quality_gate(step, gate_result)

            commit_id = await self._commit_step(step, label)
        except ExecutionAborted:
            raise
        except Exception as error:  # noqa: BLE001
            self._fail_step(step, label, error, started)

        self.scoring.record(step.score if step.score is not None else 0)
        colour, bold = _score_colour(step.score or 0)
        self._say(f"Step '{label}' completed successfully. Score: {step.score}", fg=colour, bold=bold)
        return StepReport(step_id=label, status=step.status, score=step.score, commit_id=commit_id)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    async def _run_quality_gate(self) -> QualityCheckResult:
        if not self.config.enabled:
            self._say("   Quality checks skipped (commits disabled)", fg=typer.colors.BRIGHT_BLACK)
            return await self._passing_gate()
        self._say("   Running quality checks...", fg=typer.colors.BLUE)
        result = await self.quality_gate.run()
        self._say(f"   {result.format_summary()}", fg=typer.colors.GREEN if result.overall_passed else typer.colors.RED)
        return result

    @staticmethod
    async def _passing_gate() -> QualityCheckResult:
        return QualityCheckResult(
            lint=CheckOutcome(passed=True, output="disabled", skipped=True),
            test=CheckOutcome(passed=True, output="disabled", skipped=True),
        )

    async def _fail_quality_gate(self, step: Step, result: QualityCheckResult) -> None:
        gate_error = QualityGateError(result)
        rollback_error: Optional[RollbackError] = None
        try:
            await self.rollback(step)
        except RollbackError as error:
            rollback_error = error

        step.status = StepStatus.FAILED
        step.score = RUNTIME_ERROR_SCORE
        step.execution_log += f"\n\n--- QUALITY CHECKS FAILED ---\n{result.format_summary()}"
        if rollback_error is not None:
            step.execution_log += f"\n\n--- ROLLBACK FAILED ---\n{rollback_error}"
        self.store.save()
        self.scoring.record(RUNTIME_ERROR_SCORE)

        self._say(f"\nERROR: {gate_error}", fg=typer.colors.RED, err=True)
        if rollback_error is not None:
            self._say(f"Rollback failed: {rollback_error}", fg=typer.colors.RED, bold=True, err=True)
        else:
            self._say("Changes have been rolled back.", fg=typer.colors.YELLOW, err=True)
        self._print_guidance()
        self._say(
            "Aborting execution. The plan file has been updated with the failure details.",
            fg=typer.colors.RED,
            bold=True,
            err=True,
        )
        cause: Exception = rollback_error if rollback_error is not None else gate_error
        raise ExecutionAborted(str(gate_error), ExitCode.QUALITY_GATE_FAILED) from cause

    def _fail_step(self, step: Step, label: str, error: Exception, started: float) -> None:
        message = enrich_error_message(str(error), step, self.layer_info)
        score = self.scoring.score_failure(step, str(error))

        step.status = StepStatus.FAILED
        step.score = score
        step.execution_log = (
            f"Failed at {_utc_timestamp()} ({self._elapsed_ms(started)}ms).\n"
            f"Score: {score}\n\n--- ERROR LOG ---\n{message}"
        )
        self.store.save()
        self.scoring.record(score)

        colour, bold = _score_colour(score)
        self._say(f"\nERROR: Step '{label}' failed. Score: {score}", fg=colour, bold=bold, err=True)
        self._say(message, fg=typer.colors.RED, err=True)
        self._print_guidance()
        self._say(
            "Aborting execution. The plan file has been updated with the failure details.",
            fg=typer.colors.RED,
            bold=True,
            err=True,
        )
        exit_code = ExitCode.VALIDATION_FAILED if isinstance(error, LayerViolationError) else ExitCode.ERROR
        raise ExecutionAborted(message, exit_code) from error

    def _print_guidance(self) -> None:
        if self.layer_info is None:
            return
        self._say(f"\n{self.layer_info.layer.value.upper()} Layer Guidance:", fg=typer.colors.YELLOW, bold=True, err=True)
        for line in layer_guidance(self.layer_info.layer):
            self._say(f"  - {line}", fg=typer.colors.YELLOW, err=True)

    # ------------------------------------------------------------------ commit
    async def _commit_step(self, step: Step, label: str) -> Optional[str]:
        if not should_commit_step(step.type, self.config):
            self._say(f"   Step type '{step.type}' does not require commit", fg=typer.colors.BRIGHT_BLACK)
            return None

        message = generate_commit_message(step.type, step.id or label, step.path, self.config)
        if message is None:
            self._say("   No commit message generated for step", fg=typer.colors.BRIGHT_BLACK)
            return None

        already_staged = await self.repository.staged_files()
        if already_staged:
            self._say(
                "   Warning: Git index has staged changes from previous operations\n"
                f"   Staged files: {', '.join(already_staged)}",
                fg=typer.colors.YELLOW,
            )

        self._say("   Staging changes...", fg=typer.colors.BLUE)
        await self.repository.stage(await self._paths_to_stage(step))

        self._say("   Creating commit...", fg=typer.colors.BLUE)
        commit_id = await self.repository.commit(message)
        if commit_id is None:
            self._say("   No changes to commit", fg=typer.colors.YELLOW)
            return None

        self.commit_ids.append(commit_id)
        step.commit_id = commit_id
        self.store.save()
        self._say(f"   Committed: {commit_id}", fg=typer.colors.GREEN)
        self._say(f"   {message.splitlines()[0]}", fg=typer.colors.BRIGHT_BLACK)
        return commit_id

    async def _paths_to_stage(self, step: Step) -> List[str]:
        if step.path:
            if (self.root / step.path).exists() or await self.repository.exists_in_revision(step.path):
                return [step.path]
        entries = await self.repository.status_entries()
        return [
            entry.path
            for entry in entries
            if not entry.untracked and not self._is_run_artifact(entry.path)
        ]

    # ---------------------------------------------------------------- rollback
    async def rollback(self, step: Step) -> None:
        """Revert the working tree changes of ``step``.

        Refuses to touch anything when ``HEAD`` moved since the step started.
        Paths present in ``HEAD`` are restored; new paths are deleted.
        """

        self._say("   Rolling back changes...", fg=typer.colors.YELLOW)
        self.audit.record(
            "rollback_started",
            {"step_id": step.id, "step_type": step.type, "step_path": step.path},
        )
        try:
            await self._rollback(step)
        except (RollbackError, GitError, OSError) as error:
            self.audit.record(
                "rollback_failed",
                {"step_id": step.id, "step_type": step.type, "error": str(error)},
            )
            LOGGER.error("Rollback failed for %s: %s", step.id, error)
            self._say("   Manual cleanup may be required", fg=typer.colors.YELLOW, err=True)
            if isinstance(error, RollbackError):
                raise
            raise RollbackError(f"Rollback failed: {error}. Manual cleanup may be required.") from error

        self.audit.record("rollback_success", {"step_id": step.id, "step_type": step.type})
        self._say("   Rollback complete", fg=typer.colors.GREEN)

    async def _rollback(self, step: Step) -> None:
        expected = self._step_revision
        if expected is None:
            raise RollbackError("No revision was recorded at step start; rollback is disabled for this step.")

        current = await self.repository.current_revision()
        if current != expected:
            found = current[:7] if current else "none"
            raise RollbackError(
                f"Git state has changed unexpectedly (expected {expected[:7]}, found {found}). "
                "Cannot safely rollback. Please manually review and revert changes."
            )

        staged = await self.repository.staged_files()
        baseline = self._staged_at_start
        if baseline is None:
            staged_by_step: List[str] = []
        else:
            staged_by_step = [path for path in staged if path not in baseline and path != step.path]

        owned = [*([step.path] if step.path else []), *staged_by_step]
        await self.repository.unstage([path for path in owned if path in staged])

        if step.path:
            await self._restore_or_remove([step.path])
        await self._restore_or_remove(staged_by_step)

    async def _restore_or_remove(self, paths: Sequence[str]) -> None:
        to_restore: List[str] = []
        to_remove: List[str] = []
        for path in paths:
            if await self.repository.exists_in_revision(path):
                to_restore.append(path)
            else:
                to_remove.append(path)

        if to_restore:
            await self.repository.checkout(to_restore)
            self._say(f"   Restored {', '.join(to_restore)} from last commit", fg=typer.colors.YELLOW)

        removed = 0
        for path in to_remove:
            target = self.root / path
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
            else:
                continue
            removed += 1
        if removed:
            self._say(f"   Removed {removed} newly created path(s)", fg=typer.colors.YELLOW)

    # ------------------------------------------------------------------ finish
    def _finish(self, plan: Plan, steps: Sequence[Step], summary: ExecutionSummary) -> ExecutionSummary:
        final_score = round(self.scoring.final_score(steps), 2)
        if plan.evaluation is None:
            plan.evaluation = PlanEvaluation()
        plan.evaluation.final_score = final_score
        plan.evaluation.final_status = StepStatus.SUCCESS.value
        # Commits from earlier, interrupted runs stay on record ahead of this run's.
        recorded = [
            *plan.evaluation.commit_ids,
            *(step.commit_id for step in steps if step.commit_id),
            *self.commit_ids,
        ]
        plan.evaluation.commit_ids = list(dict.fromkeys(recorded))
        self.store.save()

        summary.commit_ids = list(self.commit_ids)
        summary.final_score = final_score
        summary.score_breakdown = self.scoring.breakdown()
        summary.total_score = self.scoring.total

        self._say("\nAll steps completed successfully!", fg=typer.colors.GREEN, bold=True)
        if self.commit_ids:
            self._say(f"\nCommits created: {len(self.commit_ids)}", fg=typer.colors.CYAN, bold=True)
            for position, commit_id in enumerate(self.commit_ids, start=1):
                self._say(f"   {position}. {commit_id}", fg=typer.colors.BRIGHT_BLACK)
        breakdown = ", ".join(f"{score:+d}: {count}" for score, count in summary.score_breakdown.items() if count)
        self._say(f"Score breakdown: {breakdown or 'no executed steps'} (total {summary.total_score})", fg=typer.colors.CYAN)
        self._say(f"Final score: {final_score}/2", fg=typer.colors.CYAN, bold=True)
        return summary


__all__ = [
    "ConfirmationProvider",
    "ExecutionAborted",
    "ExecutionSummary",
    "ExitCode",
    "RollbackError",
    "SAFETY_GRACE_SECONDS",
    "SignalRegistration",
    "StepExecutor",
    "StepReport",
]
