"""Quality gate orchestration for lint and test scripts.

Both checks run concurrently through the detected command runner and are
merged into a :class:`QualityCheckResult`.  The verdict passes only when every
enabled check passes, so a lint success never masks a test failure.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Sequence

from ..config import QualityChecksConfig
from .commands import CommandResolver, RunnerNotFoundError, UnsafeScriptError
from .process import ProcessRunner, run_process

LOGGER = logging.getLogger(__name__)

CheckKind = Literal["lint", "test"]

QUALITY_CHECK_TIMEOUT = 300.0
MAX_REPORTED_FAILURES = 10

_LINT_LOCATION = re.compile(r"^\s*\d+:\d+\s+(error|warning)")
_LINT_SOURCE_PATH = re.compile(r"^/.*\.(py|ts|js|tsx|jsx)$")
_TEST_FAILURE = re.compile(r"FAIL|✕|×|failed", re.IGNORECASE)
_TEST_SUMMARY = re.compile(r"Tests:.*failed", re.IGNORECASE)


class QualityGateError(RuntimeError):
    """Raised by the engine when the quality gate rejects a step."""

    def __init__(self, result: "QualityCheckResult") -> None:
        super().__init__(f"Quality checks failed\n{result.format_summary()}")
        self.result = result


def parse_failures(output: str, kind: CheckKind, *, limit: int = MAX_REPORTED_FAILURES) -> List[str]:
    """Extract the most relevant failure lines from tool output."""

    failures: List[str] = []
    lines = output.splitlines()
    if kind == "lint":
        for line in lines:
            if _LINT_LOCATION.match(line) or _LINT_SOURCE_PATH.match(line.strip()):
                failures.append(line.strip())
    else:
        in_failure = False
        for line in lines:
            stripped = line.strip()
            if _TEST_FAILURE.search(line):
                in_failure = True
                failures.append(stripped)
            elif in_failure and stripped:
                failures.append(stripped)
            elif _TEST_SUMMARY.search(line):
                failures.append(stripped)
            if len(failures) >= limit:
                break
    return failures[:limit]


@dataclass(slots=True)
class CheckOutcome:
    """Result of one lint or test run."""

    passed: bool
    output: str = ""
    failures: List[str] = field(default_factory=list)
    skipped: bool = False

    def describe(self) -> str:
        if self.skipped:
            return "SKIPPED"
        return "PASSED" if self.passed else "FAILED"


@dataclass(slots=True)
class QualityCheckResult:
    """Merged verdict of the lint and test checks."""

    lint: CheckOutcome
    test: CheckOutcome

    @property
    def overall_passed(self) -> bool:
        return self.lint.passed and self.test.passed

    def format_summary(self) -> str:
        lines = [f"Lint: {self.lint.describe()}", f"Test: {self.test.describe()}"]
        for kind, outcome in (("lint", self.lint), ("test", self.test)):
            if outcome.passed or not outcome.failures:
                continue
            lines.append(f"{kind.capitalize()} failures:")
            lines.extend(f"  - {failure}" for failure in outcome.failures)
        return "\n".join(lines)


@dataclass(slots=True)
class QualityCheck:
    """One configured script, run through the project's command runner."""

    kind: CheckKind
    script: str

    async def run(
        self,
        resolver: CommandResolver,
        cwd: Path,
        *,
        timeout: float = QUALITY_CHECK_TIMEOUT,
        runner: ProcessRunner = run_process,
    ) -> CheckOutcome:
        try:
            command = resolver.build_command(self.script)
        except (UnsafeScriptError, RunnerNotFoundError) as error:
            return CheckOutcome(passed=False, output=str(error), failures=[str(error)])

        LOGGER.debug("Running %s check: %s", self.kind, " ".join(command))
        try:
            result = await runner(command, cwd=cwd, timeout=timeout)
        except OSError as error:
            return CheckOutcome(passed=False, output=str(error), failures=[str(error)])

        if result.timed_out:
            message = f"{self.kind} timed out after {timeout:.0f}s"
            return CheckOutcome(passed=False, output=result.combined, failures=[message])
        if result.ok:
            return CheckOutcome(passed=True, output=result.combined)
        failures = parse_failures(result.combined, self.kind)
        if not failures:
            tail = result.message().splitlines()
            failures = tail[-MAX_REPORTED_FAILURES:] or [f"exit code {result.returncode}"]
        return CheckOutcome(passed=False, output=result.combined, failures=failures)


class QualityGate:
    """Run the enabled quality checks for a working tree."""

    def __init__(
        self,
        config: QualityChecksConfig,
        resolver: CommandResolver,
        root: Path | str,
        *,
        timeout: float = QUALITY_CHECK_TIMEOUT,
        runner: ProcessRunner = run_process,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.root = Path(root)
        self.timeout = timeout
        self._runner = runner

    def checks(self) -> Sequence[QualityCheck]:
        checks: List[QualityCheck] = []
        if self.config.lint:
            checks.append(QualityCheck(kind="lint", script=self.config.lint_command))
        if self.config.test:
            checks.append(QualityCheck(kind="test", script=self.config.test_command))
        return checks

    async def run(self) -> QualityCheckResult:
        """Run the checks concurrently; unexpected errors fail both checks."""

        try:
            checks = self.checks()
            outcomes = await asyncio.gather(
                *(
                    check.run(self.resolver, self.root, timeout=self.timeout, runner=self._runner)
                    for check in checks
                )
            )
        except Exception as error:  # noqa: BLE001
            LOGGER.exception("Quality gate crashed")
            message = f"Quality check crashed: {error}"
            return QualityCheckResult(
                lint=CheckOutcome(passed=False, output=message, failures=[message]),
                test=CheckOutcome(passed=False, output=message, failures=[message]),
            )

        by_kind = {check.kind: outcome for check, outcome in zip(checks, outcomes)}
        skipped = CheckOutcome(passed=True, output="disabled", skipped=True)
        return QualityCheckResult(
            lint=by_kind.get("lint", skipped),
            test=by_kind.get("test", skipped),
        )


__all__ = [
    "CheckOutcome",
    "MAX_REPORTED_FAILURES",
    "QUALITY_CHECK_TIMEOUT",
    "QualityCheck",
    "QualityCheckResult",
    "QualityGate",
    "QualityGateError",
    "parse_failures",
]
