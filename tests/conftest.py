from __future__ import annotations

import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest
import yaml

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from stepexec.config import CommitConfig, ExecutionOptions  # noqa: E402
from stepexec.planning.executor import StepExecutor  # noqa: E402
from stepexec.tools.gates import CheckOutcome, QualityCheckResult  # noqa: E402


@dataclass(slots=True)
class GitRepo:
    """Fixture payload for a throwaway git working tree."""

    root: Path

    def git(self, *args: str) -> str:
        completed = subprocess.run(
            ["git", *args],
            cwd=self.root,
            check=True,
            capture_output=True,
            text=True,
        )
        return completed.stdout.strip()

    def commit_count(self) -> int:
        return int(self.git("rev-list", "--count", "HEAD"))

    def head_subject(self) -> str:
        return self.git("log", "-1", "--format=%s")

    def status(self) -> str:
        return self.git("status", "--porcelain")


@pytest.fixture()
def git_repo(tmp_path: Path) -> GitRepo:
    """Create a git repository with one initial commit."""

    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    repo = GitRepo(root=repo_root)
    repo.git("init", "-q")
    repo.git("config", "user.email", "engine@example.com")
    repo.git("config", "user.name", "Step Engine")
    repo.git("config", "commit.gpgsign", "false")

    (repo_root / "README.md").write_text("# fixture\n", encoding="utf-8")
    src_dir = repo_root / "src" / "domain" / "models"
    src_dir.mkdir(parents=True)
    (src_dir / "account.ts").write_text(
        "export interface Account {\n  id: string\n  balance: number\n}\n",
        encoding="utf-8",
    )
    repo.git("add", ".")
    repo.git("commit", "-q", "-m", "Initial fixture state")
    return repo


def write_plan(path: Path, document: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(document, handle, sort_keys=False)
    return path


def read_plan(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def gate_result(*, lint: bool = True, test: bool = True) -> QualityCheckResult:
    return QualityCheckResult(
        lint=CheckOutcome(passed=lint, output="", failures=[] if lint else ["1:1 error no-unused-vars"]),
        test=CheckOutcome(passed=test, output="", failures=[] if test else ["FAIL account.spec.ts"]),
    )


@dataclass
class FakeQualityGate:
    """Stand-in for the lint/test gate; never spawns a process."""

    passed: bool = True
    on_run: Optional[Callable[[], Any]] = None
    calls: int = 0

    async def run(self) -> QualityCheckResult:
        self.calls += 1
        if self.on_run is not None:
            outcome = self.on_run()
            if hasattr(outcome, "__await__"):
                await outcome
        return gate_result(test=self.passed)


@dataclass
class RecordingConfirm:
    answer: bool = True
    prompts: List[str] = field(default_factory=list)

    def __call__(self, message: str, default: bool) -> bool:
        self.prompts.append(message)
        return self.answer


@dataclass
class RecordingSleep:
    delays: List[float] = field(default_factory=list)

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture()
def make_executor(git_repo: GitRepo) -> Callable[..., StepExecutor]:
    """Build engines bound to ``git_repo`` with fake gate, prompt, and sleep."""

    def _factory(
        plan_path: Path,
        *,
        gate: FakeQualityGate | None = None,
        options: ExecutionOptions | None = None,
        config: CommitConfig | None = None,
        **kwargs: Any,
    ) -> StepExecutor:
        kwargs.setdefault("confirm", RecordingConfirm())
        kwargs.setdefault("sleep", RecordingSleep())
        return StepExecutor(
            plan_path,
            root=git_repo.root,
            config=config or CommitConfig(),
            options=options or ExecutionOptions(non_interactive=True),
            quality_gate=gate or FakeQualityGate(),
            **kwargs,
        )

    return _factory
