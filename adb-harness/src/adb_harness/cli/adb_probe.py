from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional, Sequence

from adb_harness.config import LOG_LEVELS, AdbConfig, ConfigValidationError
from adb_harness.runtime.android.adb import Adb, Executor, list_devices
from adb_harness.runtime.android.errors import AdbError
from adb_harness.runtime.android.line_endings import normalize_text
from adb_harness.runtime.android.process_utils import exec_process
from adb_harness.runtime.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


class DeviceSelectionError(AdbError):
    """Raised when no serial was given and it cannot be inferred."""


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run device-scoped adb probes.")
    parser.add_argument(
        "--serial",
        type=str,
        default=os.environ.get("ANDROID_SERIAL"),
        help="adb device serial (default: $ANDROID_SERIAL, or the only attached device)",
    )
    parser.add_argument(
        "--adb",
        type=str,
        default=None,
        help="adb command (default: config file, $ANDROID_ADB, or adb)",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML/JSON config file.")
    parser.add_argument(
        "--timeout_ms",
        type=int,
        default=None,
        help="Per-command timeout in milliseconds (default: from config, 60000).",
    )
    parser.add_argument(
        "--log_level", type=str.upper, choices=LOG_LEVELS, default=None, help="Logging level."
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("devices", help="List attached devices in state 'device'.")
    shell = sub.add_parser("shell", help="Run a shell command; prints normalized stdout.")
    shell.add_argument("args", nargs=argparse.REMAINDER)
    exists = sub.add_parser("exists", help="Check if a path exists on device (exit 1 if not).")
    exists.add_argument("path")
    pids = sub.add_parser("pids", help="List pids of processes with a given binary name.")
    pids.add_argument("name")
    getprop = sub.add_parser("getprop", help="Print a system property.")
    getprop.add_argument("name")
    screencap = sub.add_parser("screencap", help="Save a PNG screenshot.")
    screencap.add_argument("--out", type=Path, required=True)
    return parser


async def _resolve_serial(
    args: argparse.Namespace, scheduler: TaskScheduler, cfg: AdbConfig, executor: Executor
) -> str:
    if args.serial:
        return str(args.serial)
    devices = await list_devices(scheduler, args.adb, config=cfg, executor=executor)
    if len(devices) == 1:
        return devices[0]
    if not devices:
        raise DeviceSelectionError(
            "No adb devices in state=device; start an emulator or pass --serial/$ANDROID_SERIAL."
        )
    raise DeviceSelectionError(
        f"Multiple adb devices detected; pass --serial or set $ANDROID_SERIAL. devices={devices}"
    )


async def _run(args: argparse.Namespace, cfg: AdbConfig, executor: Executor) -> int:
    async with TaskScheduler(name="adb-probe") as scheduler:
        if args.command == "devices":
            devices = await list_devices(scheduler, args.adb, config=cfg, executor=executor)
            print(_json_dumps(devices))
            return 0

        serial = await _resolve_serial(args, scheduler, cfg, executor)
        adb = Adb(scheduler, serial, args.adb, config=cfg, executor=executor)

        if args.command == "shell":
            stdout = await adb.run_shell_command(list(args.args))
            sys.stdout.write(normalize_text(str(stdout)) or "")
            return 0
        if args.command == "exists":
            found = await adb.path_exists(args.path)
            print(_json_dumps(found))
            return 0 if found else 1
        if args.command == "pids":
            print(_json_dumps(await adb.list_process_ids_by_name(args.name)))
            return 0
        if args.command == "getprop":
            print(await adb.get_prop(args.name))
            return 0
        if args.command == "screencap":
            data = await adb.screencap()
            args.out.parent.mkdir(parents=True, exist_ok=True)
            args.out.write_bytes(data)
            print(str(args.out))
            return 0
    raise AssertionError(f"unhandled command: {args.command}")


def main(argv: Optional[Sequence[str]] = None, *, executor: Executor = exec_process) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = AdbConfig.from_file(args.config) if args.config else AdbConfig.from_env()
    except (ConfigValidationError, FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=args.log_level or cfg.log_level,
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    if args.timeout_ms is not None:
        if args.timeout_ms <= 0:
            parser.error("--timeout_ms must be positive")
        cfg = replace(cfg, default_timeout_ms=args.timeout_ms)

    try:
        return asyncio.run(_run(args, cfg, executor))
    except AdbError as e:
        logger.debug("adb probe failed", exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
