"""Provider factory helpers for text, vision, and speech adapters.

Responsibilities:
- Resolve configured endpoints to concrete adapter implementations.
- Read API keys from the secret store by reference at construction time.
- Keep orchestration independent from concrete adapter class construction.
"""

from __future__ import annotations

from dataclasses import replace

from .config import ApiProvider, ModelType, ProviderConfig
from .credentials import SecretStore, api_key_ref_for
from .providers.anthropic import DEFAULT_ANTHROPIC_BASE_URL, AnthropicTextAdapter
from .providers.base import SpeechAdapter, TextAdapter
from .providers.elevenlabs import DEFAULT_ELEVENLABS_BASE_URL, ElevenLabsSpeechAdapter
from .providers.openai_compat import (
    DEFAULT_OPENAI_BASE_URL,
    OpenAICompatibleSpeechAdapter,
    OpenAICompatibleTextAdapter,
)
from .retry import RetryPolicy, Sleeper


_DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class ProviderFactory:
    """Factory for provider-backed adapters used by the pipelines."""

    def __init__(self, secret_store: SecretStore, *, sleeper: Sleeper | None = None) -> None:
        """Bind the factory to a secret store and optional retry sleeper."""

        self._secret_store = secret_store
        self._sleeper = sleeper

    def create_text_adapter(self, config: ProviderConfig, policy: RetryPolicy) -> TextAdapter:
        """Create a text adapter for a text or vision endpoint."""

        if config.model_type is ModelType.TTS:
            raise ValueError(f"Provider `{config.id}` is a speech endpoint, not a text endpoint.")

        api_key = self._api_key(config)
        if config.provider is ApiProvider.ANTHROPIC:
            return AnthropicTextAdapter(
                model=config.model_name,
                api_key=api_key,
                policy=policy,
                base_url=config.base_url or DEFAULT_ANTHROPIC_BASE_URL,
                sleeper=self._sleeper,
            )
        if config.provider in {ApiProvider.OPENAI, ApiProvider.OLLAMA, ApiProvider.CUSTOM}:
            return OpenAICompatibleTextAdapter(
                model=config.model_name,
                api_key=api_key,
                policy=policy,
                base_url=config.base_url or self._openai_compatible_base_url(config.provider),
                provider_id=config.provider.value,
                requires_api_key=not config.is_local,
                sleeper=self._sleeper,
            )
        raise ValueError(f"Unsupported text provider `{config.provider.value}`.")

    def create_speech_adapter(self, config: ProviderConfig, policy: RetryPolicy) -> SpeechAdapter:
        """Create a speech adapter for a speech endpoint."""

        if config.model_type is not ModelType.TTS:
            raise ValueError(f"Provider `{config.id}` is not a speech endpoint.")

        api_key = self._api_key(config)
        if config.provider is ApiProvider.ELEVENLABS:
            return ElevenLabsSpeechAdapter(
                api_key=api_key,
                policy=policy,
                model=config.model_name,
                voice=config.voice,
                base_url=config.base_url or DEFAULT_ELEVENLABS_BASE_URL,
                sleeper=self._sleeper,
            )
        if config.provider in {ApiProvider.OPENAI, ApiProvider.CUSTOM}:
            return OpenAICompatibleSpeechAdapter(
                model=config.model_name,
                api_key=api_key,
                policy=policy,
                voice=config.voice,
                base_url=config.base_url or DEFAULT_OPENAI_BASE_URL,
                provider_id=config.provider.value,
                requires_api_key=not config.is_local,
                sleeper=self._sleeper,
            )
        raise ValueError(f"Unsupported speech provider `{config.provider.value}`.")

    @staticmethod
    def register_api_key(
        config: ProviderConfig, api_key: str, secret_store: SecretStore
    ) -> ProviderConfig:
        """Store a raw API key and return the endpoint config carrying its reference."""

        ref_id = secret_store.put(api_key_ref_for(config.id), api_key)
        return replace(config, api_key_ref=ref_id)

    def _api_key(self, config: ProviderConfig) -> str | None:
        """Resolve an endpoint API key by reference; local endpoints need none."""

        if config.is_local:
            return None
        ref_id = config.api_key_ref or api_key_ref_for(config.id)
        return self._secret_store.get(ref_id)

    @staticmethod
    def _openai_compatible_base_url(provider: ApiProvider) -> str:
        """Return the default base URL for an OpenAI-compatible family."""

        if provider is ApiProvider.OLLAMA:
            return _DEFAULT_OLLAMA_BASE_URL
        return DEFAULT_OPENAI_BASE_URL
