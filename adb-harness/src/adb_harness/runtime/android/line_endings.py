"""CRLF -> LF normalization for adb output.

`adb shell` allocates a pty on older devices, which turns every `\\n` the
device writes into `\\r\\n`:

    adb shell ls | cat -v
    acct^M
    cache^M

The output may be binary (e.g. `screencap -p`), so the bytes variant works on
raw byte pairs. Decoding as UTF-8 corrupts PNGs, and rewriting a hex dump
(`0d0a` -> `0a`) mangles unaligned sequences such as `70d0a6`.
"""

from __future__ import annotations

from typing import Optional, Union

_CR = 0x0D
_LF = 0x0A


def normalize_text(text: Optional[str]) -> Optional[str]:
    if not text:
        return text
    return text.replace("\r\n", "\n")


def normalize_bytes(buf: Optional[Union[bytes, bytearray]]) -> Optional[Union[bytes, bytearray]]:
    """Replace every CR LF pair in `buf` with LF, leaving all other bytes alone.

    Lone CR bytes (not followed by LF) are preserved. The result is never longer
    than the input, and normalizing it again is a no-op.
    """

    if not buf:
        return buf

    src = memoryview(buf)
    src_len = len(buf)
    out = bytearray(src_len)
    written = 0
    copy_from = 0  # start of the next span not yet copied

    for pos in range(1, src_len):
        if src[pos] == _LF and src[pos - 1] == _CR:
            span = pos - 1 - copy_from
            if span > 0:
                out[written : written + span] = src[copy_from : pos - 1]
                written += span
            out[written] = _LF
            written += 1
            copy_from = pos + 1

    tail = src_len - copy_from
    if tail > 0:
        out[written : written + tail] = src[copy_from:src_len]
        written += tail

    return bytes(out[:written])


def normalize(
    buf: Optional[Union[str, bytes, bytearray]], *, binary: bool = False
) -> Optional[Union[str, bytes, bytearray]]:
    """Normalize line endings of adb output.

    `binary` declares the representation the caller captured; text and bytes
    go through different implementations.
    """

    if binary:
        return normalize_bytes(buf)  # type: ignore[arg-type]
    return normalize_text(buf)  # type: ignore[arg-type]
