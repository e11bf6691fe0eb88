"""Configuration model and loaders for Veya.

Responsibilities:
- Define application settings and provider endpoints as typed dataclasses.
- Derive retry and cache policies from user-facing settings.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `ProviderConfig`: one configured provider endpoint (text, vision, or speech).
- `VeyaConfig`: normalized application settings.
- `ConfigLoader`: static construction helpers for `VeyaConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .models.datatypes import CachePolicy
from .parsing import (
    normalize_optional_string,
    parse_language_tag,
    parse_non_negative_int,
    parse_permissive_boolean,
)
from .retry import RetryPolicy


_DEFAULT_DATA_DIR = Path.home() / ".veya" / "data"
_DEFAULT_CACHE_DIR = Path.home() / ".veya" / "cache"
_SUPPORTED_AUDIO_FORMATS = frozenset({"mp3", "wav"})


class ApiProvider(str, Enum):
    """Supported provider families."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    ELEVENLABS = "elevenlabs"
    OLLAMA = "ollama"
    CUSTOM = "custom"


class ModelType(str, Enum):
    """Capability a provider endpoint is configured for."""

    TEXT = "text"
    VISION = "vision"
    TTS = "tts"


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    """One configured provider endpoint.

    Attributes:
        id: Stable identifier, also used to derive the secret reference.
        name: Display name.
        provider: Provider family.
        model_type: Capability served by this endpoint.
        base_url: API base URL; family default when empty.
        model_name: Model identifier sent to the provider.
        api_key_ref: Secret store reference; never the raw key.
        language: Language served by a speech endpoint (e.g. `en`, `zh-CN`).
        voice: Optional speech voice identifier.
        is_local: Local endpoints (e.g. Ollama) need no API key.
        is_active: Inactive endpoints are ignored.
    """

    id: str
    name: str
    provider: ApiProvider
    model_type: ModelType
    model_name: str
    base_url: str = ""
    api_key_ref: str | None = None
    language: str | None = None
    voice: str | None = None
    is_local: bool = False
    is_active: bool = True


@dataclass(slots=True)
class VeyaConfig:
    """Application settings.

    Attributes:
        data_dir: Root for persisted data (saved audio, history records).
        cache_dir: Root for disposable data (temporary audio).
        retry_count: Retries after the first attempt for every provider call.
        retry_base_delay_ms: Backoff before the first retry.
        retry_max_delay_ms: Backoff upper bound for text and vision calls.
        cast_retry_max_delay_ms: Backoff upper bound for cast calls.
        ai_completion_enabled: Default for vision capture AI completion.
        cache_max_size_mb: Persisted audio size bound.
        cache_auto_clean_days: Persisted audio age bound.
        audio_format: Cast output container (`mp3` or `wav`).
        tts_fallback_language: Speech language used when no endpoint matches.
        providers: Configured provider endpoints.
    """

    data_dir: Path = _DEFAULT_DATA_DIR
    cache_dir: Path = _DEFAULT_CACHE_DIR
    retry_count: int = 3
    retry_base_delay_ms: int = 500
    retry_max_delay_ms: int = 10_000
    cast_retry_max_delay_ms: int = 30_000
    ai_completion_enabled: bool = True
    cache_max_size_mb: int = 500
    cache_auto_clean_days: int = 30
    audio_format: str = "mp3"
    tts_fallback_language: str | None = None
    providers: list[ProviderConfig] = field(default_factory=list)

    def validate(self) -> None:
        """Validate settings values before use."""

        if self.retry_count < 0:
            raise ValueError("`retry_count` must be a non-negative integer.")
        if self.retry_base_delay_ms < 0:
            raise ValueError("`retry_base_delay_ms` must be a non-negative integer.")
        if self.retry_base_delay_ms > self.retry_max_delay_ms:
            raise ValueError("`retry_base_delay_ms` must not exceed `retry_max_delay_ms`.")
        if self.retry_base_delay_ms > self.cast_retry_max_delay_ms:
            raise ValueError("`retry_base_delay_ms` must not exceed `cast_retry_max_delay_ms`.")
        if self.cache_max_size_mb <= 0:
            raise ValueError("`cache_max_size_mb` must be a positive integer.")
        if self.cache_auto_clean_days <= 0:
            raise ValueError("`cache_auto_clean_days` must be a positive integer.")
        if self.audio_format not in _SUPPORTED_AUDIO_FORMATS:
            supported = ", ".join(sorted(_SUPPORTED_AUDIO_FORMATS))
            raise ValueError(f"Unsupported `audio_format` `{self.audio_format}`; supported: {supported}.")
        seen: set[str] = set()
        for provider in self.providers:
            if provider.id in seen:
                raise ValueError(f"Duplicate provider id `{provider.id}`.")
            seen.add(provider.id)
            if provider.model_type is ModelType.TTS and provider.provider in {
                ApiProvider.ANTHROPIC,
                ApiProvider.OLLAMA,
            }:
                raise ValueError(
                    f"Provider `{provider.id}` uses `{provider.provider.value}`, "
                    "which does not support speech."
                )
            if provider.model_type is not ModelType.TTS and provider.provider is ApiProvider.ELEVENLABS:
                raise ValueError(f"Provider `{provider.id}` uses `elevenlabs`, which only supports speech.")

    def retry_policy(self) -> RetryPolicy:
        """Return the retry policy for text and vision calls."""

        return RetryPolicy.from_millis(
            self.retry_count, self.retry_base_delay_ms, self.retry_max_delay_ms
        )

    def cast_retry_policy(self) -> RetryPolicy:
        """Return the retry policy for cast script and speech calls."""

        return RetryPolicy.from_millis(
            self.retry_count, self.retry_base_delay_ms, self.cast_retry_max_delay_ms
        )

    def cache_policy(self) -> CachePolicy:
        """Return the persisted audio eviction policy."""

        return CachePolicy.from_settings(self.cache_max_size_mb, self.cache_auto_clean_days)

    @property
    def temp_audio_dir(self) -> Path:
        """Directory for temporary cast output."""

        return self.cache_dir / "audio" / "temp"

    @property
    def saved_audio_dir(self) -> Path:
        """Directory for persisted cast output."""

        return self.data_dir / "audio" / "saved"

    @property
    def records_path(self) -> Path:
        """History records file."""

        return self.data_dir / "records.jsonl"

    def active_providers(self, model_type: ModelType) -> list[ProviderConfig]:
        """Return active endpoints for one capability, in configuration order."""

        return [
            provider
            for provider in self.providers
            if provider.is_active and provider.model_type is model_type
        ]

    def text_provider(self) -> ProviderConfig:
        """Return the first active text endpoint."""

        candidates = self.active_providers(ModelType.TEXT)
        if not candidates:
            raise ValueError("No active text model is configured.")
        return candidates[0]

    def vision_provider(self) -> ProviderConfig:
        """Return the first active vision endpoint, falling back to the text endpoint."""

        candidates = self.active_providers(ModelType.VISION)
        if candidates:
            return candidates[0]
        return self.text_provider()

    def provider_by_id(self, provider_id: str) -> ProviderConfig:
        """Return a configured endpoint by identifier."""

        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        raise ValueError(f"Unknown provider id `{provider_id}`.")

    def with_provider(self, updated: ProviderConfig) -> VeyaConfig:
        """Return a copy of this config with one endpoint replaced by identifier."""

        providers = [updated if item.id == updated.id else item for item in self.providers]
        return replace(self, providers=providers)


class ConfigLoader:
    """Factory methods for creating `VeyaConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "data_dir",
            "cache_dir",
            "retry_count",
            "retry_base_delay_ms",
            "retry_max_delay_ms",
            "cast_retry_max_delay_ms",
            "ai_completion_enabled",
            "cache_max_size_mb",
            "cache_auto_clean_days",
            "audio_format",
            "tts_fallback_language",
            "providers",
        }
    )
    _REQUIRED_PROVIDER_KEYS = frozenset({"id", "provider", "model_type", "model_name"})
    _SUPPORTED_PROVIDER_KEYS = frozenset(
        {
            "id",
            "name",
            "provider",
            "model_type",
            "base_url",
            "model_name",
            "api_key_ref",
            "language",
            "voice",
            "is_local",
            "is_active",
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> VeyaConfig:
        """Create a validated config from a YAML file."""

        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return ConfigLoader.from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_mapping(payload: Mapping[str, Any], source_label: str = "config") -> VeyaConfig:
        """Build a validated config from a parsed mapping."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            raise ValueError(f"{source_label} includes unsupported key(s): {', '.join(unknown)}.")

        defaults = VeyaConfig()
        config = VeyaConfig(
            data_dir=ConfigLoader._optional_path(payload, "data_dir") or defaults.data_dir,
            cache_dir=ConfigLoader._optional_path(payload, "cache_dir") or defaults.cache_dir,
            retry_count=ConfigLoader._optional_int(
                payload, "retry_count", source_label, defaults.retry_count
            ),
            retry_base_delay_ms=ConfigLoader._optional_int(
                payload, "retry_base_delay_ms", source_label, defaults.retry_base_delay_ms
            ),
            retry_max_delay_ms=ConfigLoader._optional_int(
                payload, "retry_max_delay_ms", source_label, defaults.retry_max_delay_ms
            ),
            cast_retry_max_delay_ms=ConfigLoader._optional_int(
                payload, "cast_retry_max_delay_ms", source_label, defaults.cast_retry_max_delay_ms
            ),
            ai_completion_enabled=ConfigLoader._optional_boolean(
                payload, "ai_completion_enabled", source_label, defaults.ai_completion_enabled
            ),
            cache_max_size_mb=ConfigLoader._optional_int(
                payload, "cache_max_size_mb", source_label, defaults.cache_max_size_mb
            ),
            cache_auto_clean_days=ConfigLoader._optional_int(
                payload, "cache_auto_clean_days", source_label, defaults.cache_auto_clean_days
            ),
            audio_format=(
                normalize_optional_string(payload.get("audio_format")) or defaults.audio_format
            ).lower(),
            tts_fallback_language=parse_language_tag(payload.get("tts_fallback_language")),
            providers=ConfigLoader._providers(payload.get("providers"), source_label),
        )
        config.validate()
        return config

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> VeyaConfig:
        """Create a validated config from `VEYA_*` environment variables.

        `VEYA_CONFIG` points at a YAML file loaded first; the remaining
        variables override its scalar settings.
        """

        env_map: Mapping[str, str] = os.environ if env is None else env

        config_path = normalize_optional_string(env_map.get("VEYA_CONFIG"))
        config = ConfigLoader.from_yaml(Path(config_path)) if config_path else VeyaConfig()

        data_dir = normalize_optional_string(env_map.get("VEYA_DATA_DIR"))
        if data_dir is not None:
            config.data_dir = Path(data_dir)
        cache_dir = normalize_optional_string(env_map.get("VEYA_CACHE_DIR"))
        if cache_dir is not None:
            config.cache_dir = Path(cache_dir)

        for field_name in (
            "retry_count",
            "retry_base_delay_ms",
            "retry_max_delay_ms",
            "cast_retry_max_delay_ms",
            "cache_max_size_mb",
            "cache_auto_clean_days",
        ):
            env_key = f"VEYA_{field_name.upper()}"
            raw_value = normalize_optional_string(env_map.get(env_key))
            if raw_value is not None:
                setattr(config, field_name, parse_non_negative_int(raw_value, env_key))

        completion = env_map.get("VEYA_AI_COMPLETION_ENABLED")
        if normalize_optional_string(completion) is not None:
            parsed = parse_permissive_boolean(completion)
            if parsed is None:
                raise ValueError(
                    "Environment variable `VEYA_AI_COMPLETION_ENABLED` must be a boolean value "
                    "(`true`/`false`, `1`/`0`, `yes`/`no`)."
                )
            config.ai_completion_enabled = parsed

        audio_format = normalize_optional_string(env_map.get("VEYA_AUDIO_FORMAT"))
        if audio_format is not None:
            config.audio_format = audio_format.lower()
        fallback_language = parse_language_tag(env_map.get("VEYA_TTS_FALLBACK_LANGUAGE"))
        if fallback_language is not None:
            config.tts_fallback_language = fallback_language

        config.validate()
        return config

    @staticmethod
    def _providers(raw: object, source_label: str) -> list[ProviderConfig]:
        """Parse the `providers` list."""

        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ValueError(f"{source_label} field `providers` must be a list.")
        return [ConfigLoader._provider(item, index, source_label) for index, item in enumerate(raw)]

    @staticmethod
    def _provider(raw: object, index: int, source_label: str) -> ProviderConfig:
        """Parse one provider entry."""

        label = f"{source_label} provider #{index + 1}"
        if not isinstance(raw, Mapping):
            raise ValueError(f"{label} must be a mapping/object.")
        unknown = sorted(set(raw).difference(ConfigLoader._SUPPORTED_PROVIDER_KEYS))
        if unknown:
            raise ValueError(f"{label} includes unsupported key(s): {', '.join(unknown)}.")
        missing = sorted(
            key
            for key in ConfigLoader._REQUIRED_PROVIDER_KEYS
            if normalize_optional_string(raw.get(key)) is None
        )
        if missing:
            raise ValueError(f"{label} is missing required key(s): {', '.join(missing)}.")

        provider_id = str(raw["id"]).strip()
        try:
            provider = ApiProvider(str(raw["provider"]).strip().lower())
            model_type = ModelType(str(raw["model_type"]).strip().lower())
        except ValueError as exc:
            raise ValueError(f"{label} has an unsupported provider or model type: {exc}") from exc

        is_local = ConfigLoader._optional_boolean(
            raw, "is_local", label, provider is ApiProvider.OLLAMA
        )
        return ProviderConfig(
            id=provider_id,
            name=normalize_optional_string(raw.get("name")) or provider_id,
            provider=provider,
            model_type=model_type,
            model_name=str(raw["model_name"]).strip(),
            base_url=normalize_optional_string(raw.get("base_url")) or "",
            api_key_ref=normalize_optional_string(raw.get("api_key_ref")),
            language=parse_language_tag(raw.get("language")),
            voice=normalize_optional_string(raw.get("voice")),
            is_local=is_local,
            is_active=ConfigLoader._optional_boolean(raw, "is_active", label, True),
        )

    @staticmethod
    def _optional_path(payload: Mapping[str, Any], key: str) -> Path | None:
        """Read an optional path field, expanding `~`."""

        value = normalize_optional_string(payload.get(key))
        if value is None:
            return None
        return Path(value).expanduser()

    @staticmethod
    def _optional_int(
        payload: Mapping[str, Any], key: str, source_label: str, default: int
    ) -> int:
        """Read and validate a non-negative integer payload field."""

        if key not in payload or payload[key] is None:
            return default
        try:
            return parse_non_negative_int(payload[key], key)
        except ValueError as exc:
            raise ValueError(f"{source_label}: {exc}") from exc

    @staticmethod
    def _optional_boolean(
        payload: Mapping[str, Any], key: str, source_label: str, default: bool
    ) -> bool:
        """Read and validate a boolean field from a payload."""

        if key not in payload:
            return default

        parsed = parse_permissive_boolean(payload[key])
        if parsed is None:
            raise ValueError(
                f"{source_label} field `{key}` must be a boolean value "
                "(`true`/`false`, `1`/`0`, `yes`/`no`)."
            )
        return parsed
