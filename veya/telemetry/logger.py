"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic pipeline/stage-level runtime logs through `loguru`.
- Keep secret values and provider payloads out of log lines.
"""

from __future__ import annotations

from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = str(value.value if hasattr(value, "value") else value).strip()
    if not raw:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in raw
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
        if context[key] is not None
    ]
    return (" " + " ".join(tokens)) if tokens else ""


def configure_logging(sink: TextIO, level: str = "INFO") -> None:
    """Route all loguru output to one sink with message-only formatting."""

    _loguru_logger.remove()
    _loguru_logger.add(sink, format="{message}", level=level, colorize=False)


class RunLogger:
    """Emit deterministic phase logs for pipeline and media cache activity."""

    def __init__(self, sink: TextIO | None = None) -> None:
        """Initialize the logger, reconfiguring loguru when a sink is given."""

        if sink is not None:
            configure_logging(sink)

    def _emit(self, level: str, event: str, pipeline: object, stage: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = (
            f"[phase] level={level} pipeline={_sanitize_context_value(pipeline)} "
            f"stage={stage} event={event}{_format_context(context)}"
        )
        _loguru_logger.log(level, line)

    def log_stage_start(self, pipeline: object, stage: str, **context: object) -> None:
        """Emit a stage-start runtime event."""

        self._emit("INFO", "start", pipeline, stage, **context)

    def log_stage_complete(self, pipeline: object, stage: str, **context: object) -> None:
        """Emit a stage-complete runtime event."""

        self._emit("INFO", "complete", pipeline, stage, **context)

    def log_stage_failure(self, pipeline: object, stage: str, error_type: str, **context: object) -> None:
        """Emit a stage-failure runtime event without sensitive payload details."""

        self._emit(
            "ERROR",
            "failure",
            pipeline,
            stage,
            error_type=error_type,
            **context,
        )

    def log_event(self, pipeline: object, stage: str, event: str, **context: object) -> None:
        """Emit an informational runtime event such as a superseded invocation."""

        self._emit("INFO", event, pipeline, stage, **context)

    def log_warning(self, pipeline: object, stage: str, event: str, **context: object) -> None:
        """Emit a warning runtime event for recoverable failures."""

        self._emit("WARNING", event, pipeline, stage, **context)
