"""Validation-script execution in an isolated temporary file."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from .process import ProcessRunner, run_process
from .run_log import RunLog

LOGGER = logging.getLogger(__name__)

VALIDATION_SCRIPT_TIMEOUT = 300.0


class ValidationScriptError(RuntimeError):
    """Raised when a step's validation script exits non-zero or times out."""

    def __init__(self, message: str, *, output: str = "", returncode: int | None = None) -> None:
        super().__init__(message)
        self.output = output
        self.returncode = returncode


async def run_validation_script(
    script: str,
    step_id: str,
    *,
    cwd: Path | str,
    run_log: RunLog | None = None,
    timeout: float = VALIDATION_SCRIPT_TIMEOUT,
    runner: ProcessRunner = run_process,
) -> str:
    """Write ``script`` to a temporary ``.sh`` file, run it with bash and return its output.

    Output lines are streamed into ``run_log`` as they arrive.  The temporary
    file is removed whether or not the script succeeds.
    """

    if run_log is not None:
        run_log.log(f"--- Running validation script for '{step_id}' ---")

    def _stream(stream: str, line: str) -> None:
        if run_log is None or not line.strip():
            return
        if stream == "stderr":
            run_log.error(line)
        else:
            run_log.log(line)

    handle, raw_path = tempfile.mkstemp(prefix="step-", suffix=".sh")
    script_path = Path(raw_path)
    try:
        with os.fdopen(handle, "w", encoding="utf-8", newline="\n") as stream:
            stream.write(script.replace("\r\n", "\n"))
        script_path.chmod(0o755)

        result = await runner(["bash", str(script_path)], cwd=cwd, timeout=timeout, on_output=_stream)
    finally:
        script_path.unlink(missing_ok=True)

    if result.timed_out:
        raise ValidationScriptError(
            f"Validation script for '{step_id}' timed out after {timeout:.0f}s",
            output=result.combined,
        )
    if result.returncode != 0:
        raise ValidationScriptError(
            f"Validation script for '{step_id}' failed with exit code {result.returncode}\n{result.combined.strip()}",
            output=result.combined,
            returncode=result.returncode,
        )
    if run_log is not None:
        run_log.log("--- Script finished successfully ---")
    return result.combined


__all__ = ["VALIDATION_SCRIPT_TIMEOUT", "ValidationScriptError", "run_validation_script"]
