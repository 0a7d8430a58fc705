"""Errors raised by adb command execution and output parsing."""

from __future__ import annotations

import json
from typing import Optional, Sequence


class AdbError(RuntimeError):
    """Base class for adb runner failures."""


class AdbExecutionError(AdbError):
    """Raised when an adb process exits non-zero, cannot start, or times out."""

    def __init__(
        self,
        args: Sequence[str],
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
        timeout_ms: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr
        self.timed_out = timed_out
        self.timeout_ms = timeout_ms

        cmdline = " ".join(self.args_list)
        if timed_out:
            msg = f"adb command timed out after {timeout_ms}ms: {cmdline}"
        elif reason:
            msg = f"adb command failed ({reason}): {cmdline}"
        else:
            msg = f"adb command failed (rc={returncode}): {cmdline}"
        if stderr:
            msg += f"\nstderr: {stderr}"
        super().__init__(msg)


class AdbParseError(AdbError):
    """Raised when adb output does not have the expected structure.

    `stdout` is kept verbatim so tool-version drift can be diagnosed.
    """

    def __init__(self, message: str, *, stdout: str, line_index: Optional[int] = None) -> None:
        self.stdout = stdout
        self.line_index = line_index
        super().__init__(f"{message}, output: {json.dumps(stdout)}")
