"""adb-harness.

Device-scoped adb command running for test/measurement harnesses:
- a FIFO task scheduler so one device sees one adb command at a time
- typed device queries (path existence, process ids)
- binary-safe CRLF normalization of adb output
"""

__all__ = [
    "cli",
    "config",
    "runtime",
]
