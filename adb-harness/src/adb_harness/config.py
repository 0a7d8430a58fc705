"""adb-harness configuration.

Values are resolved once, when an `AdbConfig` is built, from (lowest to
highest precedence) built-in defaults, environment variables and an optional
YAML/JSON config file. Handles built from a config never look at the
environment again.

Environment variables:
  ANDROID_ADB                 adb command (path or name)
  ADB_HARNESS_TIMEOUT_MS      default per-command timeout
  ADB_HARNESS_KILL_GRACE_MS   SIGTERM -> SIGKILL grace period on timeout
  ADB_HARNESS_LOG_LEVEL       CLI log level
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from jsonschema import Draft202012Validator

from adb_harness.runtime.android.process_utils import DEFAULT_KILL_GRACE_MS, DEFAULT_TIMEOUT_MS
from adb_harness.runtime.android.ps_parsing import DEFAULT_PS_FORMAT, PsFormat

logger = logging.getLogger(__name__)

DEFAULT_ADB_COMMAND = "adb"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "adb_command": {"type": "string", "minLength": 1},
        "default_timeout_ms": {"type": "integer", "minimum": 1},
        "kill_grace_ms": {"type": "integer", "minimum": 0},
        "log_level": {
            "type": "string",
            "enum": list(LOG_LEVELS),
        },
        "ps": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "header_token": {"type": "string", "minLength": 1},
                "field_count": {"type": "integer", "minimum": 1},
                "pid_field": {"type": "integer", "minimum": 0},
            },
        },
    },
}


class ConfigValidationError(RuntimeError):
    pass


_VALIDATOR = Draft202012Validator(CONFIG_SCHEMA)


def _get_int(environ: Mapping[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    value = environ.get(key)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Invalid int for %s: %s, using default %d", key, value, default)
        return default
    if parsed < minimum:
        logger.warning("%s must be >= %d, got %d, using default %d", key, minimum, parsed, default)
        return default
    return parsed


def _get_log_level(environ: Mapping[str, str], key: str, default: str = "INFO") -> str:
    value = (environ.get(key) or "").strip().upper()
    if not value:
        return default
    if value not in LOG_LEVELS:
        logger.warning("Invalid log level for %s: %s, using default %s", key, value, default)
        return default
    return value


@dataclass(frozen=True)
class AdbConfig:
    adb_command: str = DEFAULT_ADB_COMMAND
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    kill_grace_ms: int = DEFAULT_KILL_GRACE_MS
    ps_format: PsFormat = field(default=DEFAULT_PS_FORMAT)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AdbConfig":
        env = os.environ if environ is None else environ
        return cls(
            adb_command=env.get("ANDROID_ADB") or DEFAULT_ADB_COMMAND,
            default_timeout_ms=_get_int(
                env, "ADB_HARNESS_TIMEOUT_MS", DEFAULT_TIMEOUT_MS, minimum=1
            ),
            kill_grace_ms=_get_int(env, "ADB_HARNESS_KILL_GRACE_MS", DEFAULT_KILL_GRACE_MS),
            log_level=_get_log_level(env, "ADB_HARNESS_LOG_LEVEL"),
        )

    @classmethod
    def from_mapping(
        cls, data: Mapping[str, Any], *, base: Optional["AdbConfig"] = None, where: str = "config"
    ) -> "AdbConfig":
        """Overlay `data` onto `base` (defaults when omitted).

        Every schema violation is reported in one `ConfigValidationError`,
        one `- <where>:<key path>: <message>` line each.
        """

        problems = [
            f"- {where}:{'/'.join(str(p) for p in err.path)}: {err.message}"
            for err in sorted(_VALIDATOR.iter_errors(dict(data)), key=lambda e: list(e.path))
        ]
        if problems:
            raise ConfigValidationError("\n".join(problems))

        cfg = base or cls()
        updates: Dict[str, Any] = {
            k: data[k]
            for k in ("adb_command", "default_timeout_ms", "kill_grace_ms", "log_level")
            if k in data
        }
        ps = data.get("ps")
        if ps:
            fmt = replace(cfg.ps_format, **ps)
            if fmt.pid_field >= fmt.field_count:
                raise ConfigValidationError(
                    f"- {where}:ps: pid_field {fmt.pid_field} out of range for "
                    f"field_count {fmt.field_count}"
                )
            updates["ps_format"] = fmt
        return replace(cfg, **updates)

    @classmethod
    def from_file(cls, path: Path, environ: Optional[Mapping[str, str]] = None) -> "AdbConfig":
        """Environment settings with the YAML (.yaml/.yml) or JSON file at `path` on top."""
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ValueError(f"Unsupported config file extension: {path}")
        text = path.read_text(encoding="utf-8")
        data = json.loads(text) if suffix == ".json" else yaml.safe_load(text)

        if not isinstance(data, dict):
            raise ConfigValidationError(
                f"{path}: config must be a mapping, got {type(data).__name__}"
            )
        return cls.from_mapping(data, base=cls.from_env(environ), where=str(path))
