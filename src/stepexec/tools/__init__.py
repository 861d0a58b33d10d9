"""Process, git, and quality-check integrations used by the execution engine."""

from .audit import AuditEntry, AuditTrail
from .commands import CommandResolver, RunnerNotFoundError, UnsafeScriptError, is_script_safe
from .commit_message import CommitMessageError, generate_commit_message, should_commit_step
from .gates import CheckOutcome, QualityCheckResult, QualityGate, QualityGateError
from .process import ProcessResult, run_process
from .rate_limit import RateLimiter
from .run_log import RunLog, resolve_log_directory
from .scripts import ValidationScriptError, run_validation_script
from .vcs import GitError, GitRepository, is_retryable_git_error

__all__ = [
    "AuditEntry",
    "AuditTrail",
    "CheckOutcome",
    "CommandResolver",
    "CommitMessageError",
    "GitError",
    "GitRepository",
    "ProcessResult",
    "QualityCheckResult",
    "QualityGate",
    "QualityGateError",
    "RateLimiter",
    "RunLog",
    "RunnerNotFoundError",
    "UnsafeScriptError",
    "ValidationScriptError",
    "generate_commit_message",
    "is_retryable_git_error",
    "is_script_safe",
    "resolve_log_directory",
    "run_process",
    "run_validation_script",
    "should_commit_step",
]
