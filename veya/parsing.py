"""Shared parsing helpers for settings, environment, and CLI value normalization."""

from __future__ import annotations


_TRUE_BOOLEAN_TOKENS = frozenset({"1", "true", "yes", "on"})
_FALSE_BOOLEAN_TOKENS = frozenset({"0", "false", "no", "off"})


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_permissive_boolean(value: object) -> bool | None:
    """Parse a permissive boolean token and return `None` for invalid values."""

    if isinstance(value, bool):
        return value

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None

    token = normalized.lower()
    if token in _TRUE_BOOLEAN_TOKENS:
        return True
    if token in _FALSE_BOOLEAN_TOKENS:
        return False
    return None


def parse_non_negative_int(value: object, field_name: str) -> int:
    """Parse an integer setting that must be zero or greater.

    Args:
        value: Integer or textual integer value.
        field_name: Field name for an actionable validation error message.

    Raises:
        ValueError: If the value is boolean, non-numeric, or negative.
    """

    if isinstance(value, bool):
        raise ValueError(f"`{field_name}` must be a non-negative integer.")
    if isinstance(value, int):
        parsed = value
    else:
        normalized = normalize_optional_string(value)
        if normalized is None:
            raise ValueError(f"`{field_name}` must be a non-negative integer.")
        try:
            parsed = int(normalized)
        except ValueError as exc:
            raise ValueError(f"`{field_name}` must be a non-negative integer.") from exc
    if parsed < 0:
        raise ValueError(f"`{field_name}` must be a non-negative integer.")
    return parsed


def parse_language_tag(value: object) -> str | None:
    """Normalize a BCP-47-like language tag to lowercase primary and uppercase region.

    `en_us`, `EN-us`, and `en-US` all normalize to `en-US`; blank values yield `None`.
    """

    normalized = normalize_optional_string(value)
    if normalized is None:
        return None
    parts = normalized.replace("_", "-").split("-")
    primary = parts[0].lower()
    rest = [part.upper() if len(part) == 2 else part for part in parts[1:] if part]
    return "-".join([primary, *rest])
