"""Async process execution for adb commands.

Output is captured either as decoded text or as raw bytes, depending on what
the caller asks for. Binary capture never goes through a text codec, so
payloads such as PNG screenshots survive intact.

On timeout the process is terminated and, if it does not exit within a grace
period, killed.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence, Union

from adb_harness.runtime.android.errors import AdbExecutionError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_KILL_GRACE_MS = 2_000


@dataclass(frozen=True)
class ExecOptions:
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = None

    def build_env(self) -> Optional[dict[str, str]]:
        if not self.env:
            return None
        merged = dict(os.environ)
        merged.update({str(k): str(v) for k, v in self.env.items()})
        return merged


@dataclass(frozen=True)
class ExecResult:
    args: list[str]
    stdout: Union[str, bytes]
    stderr: str
    returncode: int

    def ok(self) -> bool:
        return self.returncode == 0


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")


async def _stop_process(proc: asyncio.subprocess.Process, *, kill_grace_ms: int) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=kill_grace_ms / 1000.0)
        return
    except asyncio.TimeoutError:
        logger.warning("pid %s ignored SIGTERM, killing", proc.pid)
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


async def exec_process(
    program: str,
    args: Sequence[str],
    options: Optional[ExecOptions] = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    *,
    binary: bool = False,
    kill_grace_ms: int = DEFAULT_KILL_GRACE_MS,
) -> ExecResult:
    """Run `program args...` and return its captured output.

    Raises:
        AdbExecutionError: the program could not be started, exited non-zero,
            or ran longer than `timeout_ms` (it is killed in that case).
    """

    opts = options or ExecOptions()
    cmd = [str(program)] + [str(a) for a in args]
    logger.debug("exec: %s (timeout=%dms)", " ".join(cmd), timeout_ms)

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=opts.cwd,
            env=opts.build_env(),
        )
    except OSError as e:
        logger.warning("exec failed to start %s: %s", cmd[0], e)
        raise AdbExecutionError(cmd, reason=f"{type(e).__name__}: {e}") from e

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(), timeout=timeout_ms / 1000.0
        )
    except asyncio.TimeoutError as e:
        await _stop_process(proc, kill_grace_ms=kill_grace_ms)
        logger.warning("exec timed out after %dms: %s", timeout_ms, " ".join(cmd))
        raise AdbExecutionError(cmd, timed_out=True, timeout_ms=timeout_ms) from e
    except asyncio.CancelledError:
        await _stop_process(proc, kill_grace_ms=kill_grace_ms)
        raise

    returncode = int(proc.returncode or 0)
    stderr = _decode(stderr_bytes)
    if returncode != 0:
        logger.warning("exec exited with rc=%d: %s", returncode, " ".join(cmd))
        raise AdbExecutionError(cmd, returncode=returncode, stderr=stderr)

    stdout: Union[str, bytes] = stdout_bytes or b""
    if not binary:
        stdout = _decode(stdout_bytes)
    return ExecResult(args=cmd, stdout=stdout, stderr=stderr, returncode=returncode)
