"""Parsing for `adb shell ps <name>` listings.

Example (toolbox ps, Android <= 7):

  USER     PID   PPID  VSIZE  RSS     WCHAN    PC         NAME
  root      1234  1     3456   1024  ffffffff 00000000 S tcpdump

Data lines have nine whitespace-separated fields: the state letter is its own
column even though the header has no label for it. Any other shape means the
listing tool changed, and we refuse to guess which column holds the pid.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from adb_harness.runtime.android.errors import AdbParseError

_LINE_SPLIT_RE = re.compile(r"\r?\n")


@dataclass(frozen=True)
class PsFormat:
    header_token: str = "USER "
    field_count: int = 9
    pid_field: int = 1


DEFAULT_PS_FORMAT = PsFormat()


def parse_ps_pids(stdout: str, fmt: PsFormat = DEFAULT_PS_FORMAT) -> list[str]:
    """Return pids from a ps listing, in listing order.

    Raises:
        AdbParseError: missing header (ps itself failed) or a data line with
            an unexpected number of fields.
    """

    lines = _LINE_SPLIT_RE.split(stdout or "")
    if not lines or not lines[0].startswith(fmt.header_token):
        raise AdbParseError("ps command failed", stdout=stdout)

    header_name = fmt.header_token.strip()
    pids: list[str] = []
    for i_line, line in enumerate(lines):
        if not line.strip():
            continue  # trailing newline in particular
        fields = line.split()
        if i_line == 0 and fields[0] == header_name:
            continue
        if len(fields) != fmt.field_count:
            raise AdbParseError(
                f"Failed to parse ps output line {i_line}", stdout=stdout, line_index=i_line
            )
        pids.append(fields[fmt.pid_field])
    return pids
