"""Telemetry helpers for structured runtime logging."""

from .logger import RunLogger, configure_logging

__all__ = ["RunLogger", "configure_logging"]
