"""Command-runner detection and safe script invocation building."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import Callable, List, Literal, Optional, Sequence

from .audit import AuditTrail

LOGGER = logging.getLogger(__name__)

Runner = Literal["npm", "yarn", "pnpm"]

# Checked in order; npm is the fallback when no lock file matches.
LOCK_FILES: tuple[tuple[str, Runner], ...] = (
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
)

_SAFE_SCRIPT = re.compile(r"^[A-Za-z0-9:\-\s]+$")
_DANGEROUS_WORDS = frozenset(
    {
        "rm", "rmdir", "del", "delete",
        "chmod", "chown", "chgrp", "sudo", "su",
        "curl", "wget", "nc", "netcat", "telnet", "ssh", "scp", "ftp",
        "kill", "killall", "pkill",
        "eval", "exec", "source",
    }
)
_DANGEROUS_TOKENS = ("&&", "||", ";", "|", ">", "<", "`", "$", "..")


class UnsafeScriptError(RuntimeError):
    """Raised when a lint/test script is rejected by the allow-list."""

    def __init__(self, script: str) -> None:
        super().__init__(
            f'Unsafe script detected: "{script}". Scripts must contain only alphanumeric '
            "characters, hyphens, colons, and spaces, and cannot contain dangerous keywords."
        )
        self.script = script


class RunnerNotFoundError(RuntimeError):
    """Raised when no supported command runner is installed."""


def is_script_safe(script: str, allowed: Sequence[str] = ()) -> bool:
    """Return ``True`` when ``script`` may be handed to the command runner."""

    if script in allowed:
        return True
    if not script.strip() or not _SAFE_SCRIPT.match(script):
        return False
    if any(token in script for token in _DANGEROUS_TOKENS):
        return False
    words = {word.lower() for word in re.split(r"[\s:]+", script) if word}
    return not (words & _DANGEROUS_WORDS)


class CommandResolver:
    """Pick the project's command runner and build argument-array commands.

    The detected runner is cached on the instance; call :meth:`reset` to force
    a fresh detection.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        allowed_scripts: Sequence[str] = (),
        audit: AuditTrail | None = None,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.root = Path(root)
        self.allowed_scripts = tuple(allowed_scripts)
        self.audit = audit
        self._which = which
        self._runner: Runner | None = None

    def reset(self) -> None:
        self._runner = None

    def detect_runner(self) -> Runner:
        if self._runner is not None:
            return self._runner

        for lock_file, runner in LOCK_FILES:
            if not (self.root / lock_file).exists():
                continue
            if self._which(runner):
                self._runner = runner
                return runner
            LOGGER.warning("%s found but %s is not installed, trying next runner", lock_file, runner)

        if self._which("npm"):
            self._runner = "npm"
            return "npm"
        raise RunnerNotFoundError("No package manager found. Please install npm, yarn, or pnpm.")

    def validate_script(self, script: str) -> None:
        """Raise :class:`UnsafeScriptError` unless ``script`` is allowed."""

        if not is_script_safe(script, self.allowed_scripts):
            self._audit(
                "script_validation_failed",
                {"script": script, "reason": "Contains dangerous keywords or invalid characters"},
            )
            raise UnsafeScriptError(script)
        self._audit("script_validation_success", {"script": script})

    def build_command(self, script: str) -> List[str]:
        """Return the argument array that runs ``script`` through the runner."""

        self.validate_script(script)
        runner = self.detect_runner()
        parts = script.split()
        if runner == "npm":
            return ["npm", "run", *parts]
        return [runner, *parts]

    def _audit(self, event: str, details: dict) -> None:
        if self.audit is not None:
            self.audit.record(event, details)


__all__ = [
    "CommandResolver",
    "LOCK_FILES",
    "Runner",
    "RunnerNotFoundError",
    "UnsafeScriptError",
    "is_script_safe",
]
