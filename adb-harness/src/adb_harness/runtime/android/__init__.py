"""Android runtime helpers for adb-harness.

This package contains *thin* wrappers around adb so that:
  * every command is scoped to one device serial (`adb -s <serial>`)
  * output parsing fails loudly on unexpected tool output
  * binary output (screenshots, pulled files) is never run through a text codec

Tests do not require a running emulator; the process executor is injectable.
"""
