from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

from adb_harness.runtime.android.errors import AdbExecutionError
from adb_harness.runtime.android.process_utils import ExecOptions, exec_process

PY = sys.executable


@pytest.mark.asyncio
async def test_exec_process_captures_text_stdout() -> None:
    res = await exec_process(PY, ["-c", "print('hello')"], timeout_ms=10_000)
    assert res.ok()
    assert res.returncode == 0
    assert res.stdout.strip() == "hello"
    assert res.args == [PY, "-c", "print('hello')"]


@pytest.mark.asyncio
async def test_exec_process_binary_capture_is_byte_exact() -> None:
    payload = bytes(range(256)) + b"\r\n\xff\xfe"
    script = f"import sys; sys.stdout.buffer.write({payload!r})"
    res = await exec_process(PY, ["-c", script], timeout_ms=10_000, binary=True)
    assert res.stdout == payload


@pytest.mark.asyncio
async def test_exec_process_nonzero_exit_raises_with_stderr() -> None:
    script = "import sys; sys.stderr.write('error: no devices/emulators found'); sys.exit(3)"
    with pytest.raises(AdbExecutionError) as ei:
        await exec_process(PY, ["-c", script], timeout_ms=10_000)
    assert ei.value.returncode == 3
    assert ei.value.timed_out is False
    assert "no devices/emulators found" in ei.value.stderr
    assert "rc=3" in str(ei.value)


@pytest.mark.asyncio
async def test_exec_process_timeout_kills_process() -> None:
    start = time.monotonic()
    with pytest.raises(AdbExecutionError) as ei:
        await exec_process(PY, ["-c", "import time; time.sleep(30)"], timeout_ms=200)
    assert ei.value.timed_out is True
    assert ei.value.timeout_ms == 200
    assert time.monotonic() - start < 10


@pytest.mark.asyncio
async def test_exec_process_timeout_kills_process_ignoring_sigterm() -> None:
    script = (
        "import signal, sys, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(30)\n"
    )
    start = time.monotonic()
    with pytest.raises(AdbExecutionError) as ei:
        await exec_process(PY, ["-c", script], timeout_ms=500, kill_grace_ms=200)
    assert ei.value.timed_out is True
    assert time.monotonic() - start < 10


@pytest.mark.asyncio
async def test_exec_process_missing_program_raises() -> None:
    with pytest.raises(AdbExecutionError) as ei:
        await exec_process("/nonexistent/adb-harness-test-adb", ["devices"], timeout_ms=1000)
    assert ei.value.returncode is None
    assert "FileNotFoundError" in str(ei.value)


@pytest.mark.asyncio
async def test_exec_process_options_cwd_and_env(tmp_path: Path) -> None:
    script = "import os; print(os.getcwd()); print(os.environ['ADB_HARNESS_TEST_VAR'])"
    res = await exec_process(
        PY,
        ["-c", script],
        ExecOptions(cwd=str(tmp_path), env={"ADB_HARNESS_TEST_VAR": "xyz"}),
        timeout_ms=10_000,
    )
    lines = res.stdout.splitlines()
    assert Path(lines[0]).resolve() == tmp_path.resolve()
    assert lines[1] == "xyz"
