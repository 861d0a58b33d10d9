"""Rate-limited, retrying git helpers.

Every mutating command (stage, commit, reset, checkout) passes through one
:class:`~stepexec.tools.rate_limit.RateLimiter`.  Failures are classified as
retryable (lock contention, transient I/O, timeouts) or permanent; only the
former are retried, with exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from .process import ProcessResult, run_process
from .rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 60.0
MAX_GIT_ATTEMPTS = 3
GIT_RETRY_DELAY = 1.0

T = TypeVar("T")

_NOTHING_TO_COMMIT = (
    "nothing to commit",
    "nothing added to commit",
    "no changes added to commit",
)
_PERMANENT_PATTERNS = (
    "not a git repository",
    *_NOTHING_TO_COMMIT,
    "permission denied",
    "does not exist",
    "did not match any file",
    "unknown revision",
    "bad revision",
    "invalid object name",
)
_RETRYABLE_PATTERNS = (
    "index.lock",
    "unable to create",
    "could not lock",
    "another git process",
    "resource temporarily unavailable",
    "timed out",
    "connection reset",
    "connection refused",
    "could not read from remote",
    "early eof",
)


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""

    def __init__(
        self,
        message: str,
        *,
        command: Sequence[str] = (),
        stderr: str = "",
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.command = tuple(command)
        self.stderr = stderr
        self.retryable = retryable


def is_retryable_git_error(message: str) -> bool:
    """Return ``True`` for transient failures worth retrying.

    Permanent signatures win over transient ones; unrecognised failures are
    treated as permanent.
    """

    lowered = message.lower()
    if any(pattern in lowered for pattern in _PERMANENT_PATTERNS):
        return False
    return any(pattern in lowered for pattern in _RETRYABLE_PATTERNS)


@dataclass(slots=True)
class StatusEntry:
    """One ``git status --porcelain`` line."""

    code: str
    path: str

    @property
    def untracked(self) -> bool:
        return self.code == "??"


class GitRepository:
    """Asynchronous wrapper around ``git`` commands for one working tree."""

    def __init__(
        self,
        root: Path | str,
        *,
        rate_limiter: RateLimiter | None = None,
        max_attempts: int = MAX_GIT_ATTEMPTS,
        retry_delay: float = GIT_RETRY_DELAY,
        timeout: float = GIT_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.root = Path(root).resolve()
        self.rate_limiter = rate_limiter or RateLimiter()
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

    # ------------------------------------------------------------------ git IO
    async def _run_git(self, args: Sequence[str], *, check: bool = True) -> ProcessResult:
        command = ["git", "--no-pager", *args]
        try:
            result = await run_process(command, cwd=self.root, timeout=self.timeout)
        except FileNotFoundError as error:
            raise GitError("git executable not found", command=command) from error
        except NotADirectoryError as error:
            raise GitError(f"Not a git repository: {self.root}", command=command) from error

        if result.timed_out:
            raise GitError(
                f"git {' '.join(args)} timed out after {self.timeout:.0f}s",
                command=command,
                retryable=True,
            )
        if check and result.returncode != 0:
            message = result.message() or "unknown git error"
            raise GitError(
                f"git {' '.join(args)} failed: {message}",
                command=command,
                stderr=result.stderr,
                retryable=is_retryable_git_error(message),
            )
        return result

    async def with_retry(self, operation_name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` retrying transient :class:`GitError` failures."""

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except GitError as error:
                if not error.retryable:
                    raise
                if attempt == self.max_attempts:
                    raise GitError(
                        f"{operation_name} failed after {self.max_attempts} attempts: {error}",
                        command=error.command,
                        stderr=error.stderr,
                        retryable=False,
                    ) from error
                delay = self.retry_delay * (2 ** (attempt - 1))
                LOGGER.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    operation_name,
                    attempt,
                    self.max_attempts,
                    delay,
                    error,
                )
                await self._sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover

    async def _mutate(self, operation_name: str, args: Sequence[str]) -> ProcessResult:
        async def _attempt() -> ProcessResult:
            await self.rate_limiter.acquire()
            return await self._run_git(args)

        return await self.with_retry(operation_name, _attempt)

    async def _query(self, operation_name: str, args: Sequence[str]) -> ProcessResult:
        return await self.with_retry(operation_name, lambda: self._run_git(args))

    # ------------------------------------------------------------- repo status
    async def is_repository(self) -> bool:
        try:
            result = await self._run_git(["rev-parse", "--git-dir"], check=False)
        except GitError:
            return False
        return result.returncode == 0

    async def current_revision(self, *, short: bool = False) -> Optional[str]:
        """Return the ``HEAD`` revision id, or ``None`` when there is none yet."""

        args = ["rev-parse", "--short", "HEAD"] if short else ["rev-parse", "--verify", "HEAD"]
        result = await self.with_retry(
            "Read current revision", lambda: self._run_git(args, check=False)
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    async def status_entries(self) -> List[StatusEntry]:
        result = await self._query("Read status", ["status", "--porcelain", "--untracked-files=all"])
        entries: List[StatusEntry] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            code = line[:2].strip() or line[:2]
            raw_path = line[3:].strip()
            if " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            entries.append(StatusEntry(code=code, path=raw_path.strip('"')))
        return entries

    async def staged_files(self) -> List[str]:
        result = await self._query("Read staged files", ["diff", "--cached", "--name-only"])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def exists_in_revision(self, path: str, revision: str = "HEAD") -> bool:
        """Return ``True`` when ``path`` is present in ``revision``."""

        async def _probe() -> bool:
            result = await self._run_git(["cat-file", "-e", f"{revision}:{path}"], check=False)
            if result.returncode == 0:
                return True
            message = result.message()
            if is_retryable_git_error(message):
                raise GitError(message, retryable=True)
            return False

        return await self.with_retry(f"Check {path} in {revision}", _probe)

    # ---------------------------------------------------------------- mutation
    async def stage(self, paths: Sequence[str]) -> None:
        """Stage ``paths`` including deletions."""

        if not paths:
            return
        await self._mutate("Stage files", ["add", "-A", "--", *paths])

    async def commit(self, message: str) -> Optional[str]:
        """Commit the index and return the short revision id.

        Returns ``None`` when there was nothing to commit.
        """

        try:
            await self._mutate("Commit", ["commit", "-m", message])
        except GitError as error:
            lowered = str(error).lower()
            if any(marker in lowered for marker in _NOTHING_TO_COMMIT):
                LOGGER.info("Nothing to commit")
                return None
            raise
        return await self.current_revision(short=True)

    async def unstage_all(self) -> None:
        """Reset the index to ``HEAD`` (keeps working tree changes)."""

        if await self.current_revision() is None:
            await self._mutate("Reset staged changes", ["rm", "-r", "--cached", "-q", "--ignore-unmatch", "."])
            return
        await self._mutate("Reset staged changes", ["reset", "-q", "HEAD"])

    async def unstage(self, paths: Sequence[str]) -> None:
        """Drop ``paths`` from the index, leaving every other staged entry alone."""

        if not paths:
            return
        if await self.current_revision() is None:
            await self._mutate("Unstage files", ["rm", "-r", "--cached", "-q", "--ignore-unmatch", "--", *paths])
            return
        await self._mutate("Unstage files", ["reset", "-q", "HEAD", "--", *paths])

    async def checkout(self, paths: Sequence[str], revision: str = "HEAD") -> None:
        """Restore ``paths`` from ``revision`` into the index and working tree."""

        if not paths:
            return
        await self._mutate("Restore files", ["checkout", revision, "--", *paths])


__all__ = [
    "GIT_TIMEOUT_SECONDS",
    "GitError",
    "GitRepository",
    "MAX_GIT_ATTEMPTS",
    "StatusEntry",
    "is_retryable_git_error",
]
