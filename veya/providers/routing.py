"""Language-keyed selection among configured speech endpoints."""

from __future__ import annotations

from typing import Sequence

from ..config import ProviderConfig
from ..errors import ErrorKind, VeyaError


def _primary_subtag(language: str) -> str:
    """Return the lowercase primary subtag of a language tag (`en-US` -> `en`)."""

    return language.replace("_", "-").split("-", 1)[0].lower()


def _find(language: str, configs: Sequence[ProviderConfig]) -> ProviderConfig | None:
    """Return the exact-tag match, else the first primary-subtag match."""

    wanted = language.replace("_", "-").lower()
    for config in configs:
        if config.language and config.language.lower() == wanted:
            return config
    primary = _primary_subtag(language)
    for config in configs:
        if config.language and _primary_subtag(config.language) == primary:
            return config
    return None


def route_speech_config(
    language: str,
    configs: Sequence[ProviderConfig],
    fallback_language: str | None = None,
) -> ProviderConfig:
    """Select the speech endpoint serving `language`.

    Order: exact tag, primary subtag (`en-US` and `en` match each other), the
    configured fallback language, then the first configured endpoint.

    Raises:
        VeyaError: `SYNTHESIS_FAILED` when no speech endpoint is configured.
    """

    if not configs:
        raise VeyaError(ErrorKind.SYNTHESIS_FAILED, "No TTS service configured.")

    if language:
        matched = _find(language, configs)
        if matched is not None:
            return matched
    if fallback_language:
        matched = _find(fallback_language, configs)
        if matched is not None:
            return matched
    return configs[0]
