"""Runtime: task scheduling and device runners."""
