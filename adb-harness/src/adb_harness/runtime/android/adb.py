"""Device-scoped adb command runner.

Every command is scheduled on a `TaskScheduler`, so commands issued through
one runner reach adb one at a time and resolve in submission order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

from adb_harness.config import AdbConfig
from adb_harness.runtime.android.errors import AdbParseError
from adb_harness.runtime.android.line_endings import normalize, normalize_bytes, normalize_text
from adb_harness.runtime.android.process_utils import ExecOptions, ExecResult, exec_process
from adb_harness.runtime.android.ps_parsing import parse_ps_pids
from adb_harness.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

Executor = Callable[..., Awaitable[ExecResult]]

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


@dataclass(frozen=True)
class DeviceHandle:
    serial: str
    adb_command: str


def _resolve_config(config: Optional[AdbConfig]) -> AdbConfig:
    return config if config is not None else AdbConfig.from_env()


async def _schedule_exec(
    scheduler: TaskScheduler,
    executor: Executor,
    config: AdbConfig,
    program: str,
    args: Sequence[str],
    options: Optional[ExecOptions],
    timeout_ms: Optional[int],
    binary: bool,
) -> Union[str, bytes]:
    timeout = timeout_ms or config.default_timeout_ms
    argv = list(args)

    async def _run() -> ExecResult:
        return await executor(
            program,
            argv,
            options,
            timeout,
            binary=binary,
            kill_grace_ms=config.kill_grace_ms,
        )

    result = await scheduler.schedule(_run, description=f"{program} {' '.join(argv)}")
    return result.stdout


class Adb:
    """adb runner bound to one device serial."""

    def __init__(
        self,
        scheduler: TaskScheduler,
        serial: str,
        adb_command: Optional[str] = None,
        *,
        config: Optional[AdbConfig] = None,
        executor: Executor = exec_process,
    ) -> None:
        self._scheduler = scheduler
        self._config = _resolve_config(config)
        self._executor = executor
        self.device = DeviceHandle(
            serial=serial, adb_command=adb_command or self._config.adb_command
        )

    @property
    def serial(self) -> str:
        return self.device.serial

    @property
    def adb_command(self) -> str:
        return self.device.adb_command

    async def _command(
        self,
        args: Sequence[str],
        options: Optional[ExecOptions] = None,
        timeout_ms: Optional[int] = None,
        *,
        binary: bool = False,
    ) -> Union[str, bytes]:
        return await _schedule_exec(
            self._scheduler,
            self._executor,
            self._config,
            self.adb_command,
            args,
            options,
            timeout_ms,
            binary,
        )

    async def run_device_command(
        self,
        args: Sequence[str],
        options: Optional[ExecOptions] = None,
        timeout_ms: Optional[int] = None,
        *,
        binary: bool = False,
    ) -> Union[str, bytes]:
        """Run `adb -s <serial> args...` and return its stdout.

        Raises:
            AdbExecutionError: adb exited non-zero or timed out.
        """

        return await self._command(
            ["-s", self.serial, *args], options, timeout_ms, binary=binary
        )

    async def run_shell_command(
        self,
        args: Sequence[str],
        options: Optional[ExecOptions] = None,
        timeout_ms: Optional[int] = None,
        *,
        binary: bool = False,
    ) -> Union[str, bytes]:
        return await self.run_device_command(["shell", *args], options, timeout_ms, binary=binary)

    async def path_exists(self, path: str) -> bool:
        """True iff `ls <path>` succeeds on the device.

        The shell echoes `$?` as the last line of output; only an exact "0"
        counts.
        """

        stdout = await self.run_shell_command(
            ["ls", path, ">", "/dev/null", "2>&1", ";", "echo", "$?"]
        )
        text = normalize_text(str(stdout)) or ""
        if text.endswith("\n"):
            text = text[:-1]
        status = text.rsplit("\n", 1)[-1]
        return status == "0"

    async def list_process_ids_by_name(self, name: str) -> list[str]:
        """Pids of processes named `name`, in `ps` order.

        Only bare binary names (e.g. 'tcpdump') are supported, not package names.

        Raises:
            AdbParseError: unexpected `ps` output.
        """

        stdout = await self.run_shell_command(["ps", name])
        return parse_ps_pids(str(stdout), self._config.ps_format)

    async def get_prop(self, name: str) -> str:
        stdout = await self.run_shell_command(["getprop", name])
        return str(stdout).strip()

    async def pull_file(
        self, src: str, dst: Union[str, Path], *, timeout_ms: Optional[int] = None
    ) -> str:
        dst_path = Path(dst)
        dst_path.parent.mkdir(parents=True, exist_ok=True)
        return str(await self.run_device_command(["pull", src, str(dst_path)], None, timeout_ms))

    async def push_file(
        self, src: Union[str, Path], dst: str, *, timeout_ms: Optional[int] = None
    ) -> str:
        return str(await self.run_device_command(["push", str(src), dst], None, timeout_ms))

    async def screencap(self, *, timeout_ms: Optional[int] = None) -> bytes:
        """Return a PNG screenshot taken via `adb shell screencap -p`.

        Devices whose shell pty rewrites LF as CRLF return a mangled PNG; that is
        detected from the signature (which itself contains CR LF) and undone.
        """

        stdout = await self.run_shell_command(["screencap", "-p"], None, timeout_ms, binary=True)
        raw = bytes(stdout)
        if raw.startswith(_PNG_SIGNATURE):
            return raw
        data = normalize_bytes(raw) or b""
        if not data.startswith(_PNG_SIGNATURE):
            raise AdbParseError(
                "screencap produced non-PNG bytes", stdout=data[:64].decode("latin-1")
            )
        return bytes(data)

    @staticmethod
    def normalize(
        buf: Optional[Union[str, bytes, bytearray]], *, binary: bool = False
    ) -> Optional[Union[str, bytes, bytearray]]:
        return normalize(buf, binary=binary)


async def list_devices(
    scheduler: TaskScheduler,
    adb_command: Optional[str] = None,
    *,
    config: Optional[AdbConfig] = None,
    executor: Executor = exec_process,
) -> list[str]:
    """Serials of attached devices in state `device`, in `adb devices` order."""

    cfg = _resolve_config(config)
    stdout = await _schedule_exec(
        scheduler,
        executor,
        cfg,
        adb_command or cfg.adb_command,
        ["devices"],
        None,
        None,
        False,
    )
    devices: list[str] = []
    for raw in str(stdout).splitlines():
        line = raw.strip()
        if not line or line.startswith("*") or line.startswith("List of devices attached"):
            continue
        parts = line.split()
        if len(parts) < 2:
            continue
        serial, state = parts[0], parts[1]
        if state == "device":
            devices.append(serial)
    logger.debug("adb devices: %s", devices)
    return devices
