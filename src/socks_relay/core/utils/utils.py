"""Formatting helpers for the statistics panel."""

from typing import Final

BYTE_UNITS: Final = ("B", "KB", "MB", "GB", "TB")
UNIT_STEP: Final = 1024


def format_bytes(bytes_: float) -> str:
    """Render a byte count with a binary unit, e.g. ``2.0 KB``.

    Args:
        bytes_: Number of bytes, or bytes per second

    Returns:
        str: Value scaled to the largest unit below 1024, TB at most
    """
    value = float(bytes_)
    for unit in BYTE_UNITS[:-1]:
        if value < UNIT_STEP:
            return f"{value:.1f} {unit}"
        value /= UNIT_STEP
    return f"{value:.1f} {BYTE_UNITS[-1]}"


def format_duration(seconds: float) -> str:
    """Format a duration as ``1h02m03s``, ``2m05s`` or ``4.2s``."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m{secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m{secs:02d}s"
