"""Utility functions and helpers."""

from socks_relay.core.utils.utils import format_bytes, format_duration

__all__ = ["format_bytes", "format_duration"]
