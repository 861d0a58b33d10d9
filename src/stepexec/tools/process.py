"""Out-of-process command execution with a hard timeout."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Literal, Mapping, Sequence

StreamName = Literal["stdout", "stderr"]
OutputHook = Callable[[StreamName, str], None]
ProcessRunner = Callable[..., Awaitable["ProcessResult"]]


@dataclass(slots=True)
class ProcessResult:
    """Captured outcome of a subprocess."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    combined: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def message(self) -> str:
        return self.stderr.strip() or self.stdout.strip()


def _merge_env(extra: Mapping[str, str] | None) -> dict[str, str]:
    env = os.environ.copy()
    if extra:
        env.update({str(key): str(value) for key, value in extra.items()})
    return env


async def run_process(
    command: Sequence[str],
    *,
    cwd: Path | str,
    timeout: float,
    env: Mapping[str, str] | None = None,
    on_output: OutputHook | None = None,
) -> ProcessResult:
    """Run ``command`` (argument array, never a shell string) under ``cwd``.

    Output is decoded as UTF-8 with replacement.  ``on_output`` receives each
    line as it arrives.  When ``timeout`` elapses the process is killed and the
    result is flagged ``timed_out``.  :class:`FileNotFoundError` propagates when
    the executable is missing.
    """

    args = [str(part) for part in command]
    process = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd),
        env=_merge_env(env),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )

    parts: dict[StreamName, List[str]] = {"stdout": [], "stderr": []}
    combined: List[str] = []

    async def _pump(name: StreamName, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        async for raw_line in stream:
            text = raw_line.decode("utf-8", errors="replace")
            parts[name].append(text)
            combined.append(text)
            if on_output is not None:
                on_output(name, text.rstrip("\n"))

    timed_out = False
    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pump("stdout", process.stdout),
                _pump("stderr", process.stderr),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        timed_out = True
        if process.returncode is None:
            process.kill()
        await process.wait()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
        raise

    returncode = process.returncode if process.returncode is not None else -1
    return ProcessResult(
        command=tuple(args),
        returncode=returncode,
        stdout="".join(parts["stdout"]),
        stderr="".join(parts["stderr"]),
        combined="".join(combined),
        timed_out=timed_out,
    )


__all__ = ["OutputHook", "ProcessResult", "ProcessRunner", "StreamName", "run_process"]
