"""Unit tests for settings loading, speech routing, secrets, and adapter construction."""

from __future__ import annotations

from pathlib import Path

import pytest

from veya.config import ApiProvider, ConfigLoader, ModelType, ProviderConfig, VeyaConfig
from veya import credentials
from veya.credentials import KeyringSecretStore, api_key_ref_for
from veya.errors import ErrorKind, VeyaError
from veya.provider_factory import ProviderFactory
from veya.providers.anthropic import AnthropicTextAdapter
from veya.providers.elevenlabs import ElevenLabsSpeechAdapter
from veya.providers.openai_compat import OpenAICompatibleSpeechAdapter, OpenAICompatibleTextAdapter
from veya.providers.routing import route_speech_config
from veya.retry import RetryPolicy
from tests.fakes import speech_endpoint


class FakeKeyringBackend:
    """Stand-in for an operational keyring backend."""


class FakeKeyringModule:
    """In-memory keyring stub for deterministic secret store tests."""

    def __init__(self) -> None:
        """Initialize fake storage dictionary."""

        self._storage: dict[tuple[str, str], str] = {}

    def get_keyring(self) -> FakeKeyringBackend:
        """Return an operational backend."""

        return FakeKeyringBackend()

    def get_password(self, service_name: str, account_name: str) -> str | None:
        """Return previously stored password if present."""

        return self._storage.get((service_name, account_name))

    def set_password(self, service_name: str, account_name: str, value: str) -> None:
        """Store password value for the service/account key."""

        self._storage[(service_name, account_name)] = value

    def delete_password(self, service_name: str, account_name: str) -> None:
        """Delete password value for the service/account key."""

        self._storage.pop((service_name, account_name), None)


def _secret_store(monkeypatch: pytest.MonkeyPatch) -> KeyringSecretStore:
    """Return a keyring secret store backed by the in-memory fake."""

    monkeypatch.setattr(credentials, "keyring", FakeKeyringModule())
    return KeyringSecretStore()


def test_yaml_config_loads_settings_and_providers(tmp_path: Path) -> None:
    """YAML settings should map onto typed config with normalized provider entries."""

    config_path = tmp_path / "veya.yaml"
    config_path.write_text(
        "\n".join(
            [
                f"data_dir: {tmp_path / 'data'}",
                "retry_count: 5",
                "retry_base_delay_ms: 200",
                "ai_completion_enabled: no",
                "audio_format: WAV",
                "tts_fallback_language: en_us",
                "providers:",
                "  - id: local",
                "    provider: ollama",
                "    model_type: text",
                "    model_name: llama3",
                "  - id: voice-zh",
                "    provider: elevenlabs",
                "    model_type: tts",
                "    model_name: eleven_multilingual_v2",
                "    language: zh_cn",
            ]
        ),
        encoding="utf-8",
    )

    config = ConfigLoader.from_yaml(config_path)

    assert config.data_dir == tmp_path / "data"
    assert config.retry_policy() == RetryPolicy(5, 0.2, 10.0)
    assert config.cast_retry_policy() == RetryPolicy(5, 0.2, 30.0)
    assert config.ai_completion_enabled is False
    assert config.audio_format == "wav"
    assert config.tts_fallback_language == "en-US"
    assert config.text_provider().is_local is True
    assert config.vision_provider().id == "local"
    assert config.active_providers(ModelType.TTS)[0].language == "zh-CN"
    assert config.records_path == tmp_path / "data" / "records.jsonl"


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("unknown_key: 1\n", "unsupported key"),
        ("retry_count: -2\n", "retry_count"),
        ("audio_format: ogg\n", "audio_format"),
        ("providers:\n  - id: a\n    provider: openai\n", "missing required"),
        (
            "providers:\n  - {id: a, provider: anthropic, model_type: tts, model_name: m}\n",
            "does not support speech",
        ),
        ("- just\n- a list\n", "top-level mapping"),
    ],
)
def test_yaml_config_rejects_invalid_values(tmp_path: Path, content: str, message: str) -> None:
    """Invalid settings should raise actionable `ValueError`s."""

    config_path = tmp_path / "veya.yaml"
    config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match=message):
        ConfigLoader.from_yaml(config_path)


def test_env_config_overrides_defaults(tmp_path: Path) -> None:
    """`VEYA_*` variables should override scalar settings."""

    config = ConfigLoader.from_env(
        {
            "VEYA_DATA_DIR": str(tmp_path / "d"),
            "VEYA_CACHE_DIR": str(tmp_path / "c"),
            "VEYA_RETRY_COUNT": "1",
            "VEYA_CACHE_MAX_SIZE_MB": "10",
            "VEYA_AI_COMPLETION_ENABLED": "false",
            "VEYA_TTS_FALLBACK_LANGUAGE": "ja",
        }
    )

    assert config.temp_audio_dir == tmp_path / "c" / "audio" / "temp"
    assert config.saved_audio_dir == tmp_path / "d" / "audio" / "saved"
    assert config.retry_count == 1
    assert config.cache_policy().max_total_bytes == 10 * 1024 * 1024
    assert config.ai_completion_enabled is False
    assert config.tts_fallback_language == "ja"


def test_env_config_rejects_invalid_boolean() -> None:
    """Unparseable boolean environment values should fail."""

    with pytest.raises(ValueError, match="VEYA_AI_COMPLETION_ENABLED"):
        ConfigLoader.from_env({"VEYA_AI_COMPLETION_ENABLED": "sometimes"})


def test_missing_text_provider_is_reported() -> None:
    """Asking for a text endpoint without one configured should fail clearly."""

    with pytest.raises(ValueError, match="No active text model"):
        VeyaConfig().text_provider()


def test_speech_routing_prefers_exact_then_primary_then_fallback() -> None:
    """Routing should match exact tags, then primary subtags, then the fallback language."""

    configs = [
        speech_endpoint("en-generic", "en"),
        speech_endpoint("zh-tw", "zh-TW"),
        speech_endpoint("zh-cn", "zh-CN"),
        speech_endpoint("ja", "ja"),
    ]

    assert route_speech_config("zh-CN", configs).id == "zh-cn"
    assert route_speech_config("zh_cn", configs).id == "zh-cn"
    assert route_speech_config("zh-HK", configs).id == "zh-tw"
    assert route_speech_config("en-GB", configs).id == "en-generic"
    assert route_speech_config("fr", configs, fallback_language="ja").id == "ja"
    assert route_speech_config("fr", configs).id == "en-generic"


def test_speech_routing_without_endpoints_fails_with_synthesis_error() -> None:
    """No configured speech endpoint should raise `SYNTHESIS_FAILED`."""

    with pytest.raises(VeyaError) as exc_info:
        route_speech_config("en", [])

    assert exc_info.value.kind is ErrorKind.SYNTHESIS_FAILED
    assert "No TTS service configured" in exc_info.value.detail


def test_secret_store_put_get_delete(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keyring store should set, get, and delete secrets by reference."""

    store = _secret_store(monkeypatch)

    assert store.is_available() is True
    assert store.get("api_key_x") is None
    assert store.put("api_key_x", "  abc123  ") == "api_key_x"
    assert store.get("api_key_x") == "abc123"
    assert store.delete("api_key_x") is True
    assert store.delete("api_key_x") is False
    with pytest.raises(ValueError):
        store.put("api_key_x", "   ")


def test_factory_builds_adapters_per_provider_family(monkeypatch: pytest.MonkeyPatch) -> None:
    """Endpoints should resolve to the adapter of their provider family with stored keys."""

    store = _secret_store(monkeypatch)
    factory = ProviderFactory(store)
    policy = RetryPolicy(1, 0.1, 1.0)
    anthropic = ProviderConfig(
        id="claude",
        name="Claude",
        provider=ApiProvider.ANTHROPIC,
        model_type=ModelType.TEXT,
        model_name="claude-sonnet",
    )
    anthropic = ProviderFactory.register_api_key(anthropic, "sk-ant-test", store)
    local = ProviderConfig(
        id="local",
        name="Local",
        provider=ApiProvider.OLLAMA,
        model_type=ModelType.TEXT,
        model_name="llama3",
        is_local=True,
    )
    eleven = ProviderConfig(
        id="eleven",
        name="ElevenLabs",
        provider=ApiProvider.ELEVENLABS,
        model_type=ModelType.TTS,
        model_name="eleven_multilingual_v2",
        voice="voice-1",
    )

    text_adapter = factory.create_text_adapter(anthropic, policy)
    local_adapter = factory.create_text_adapter(local, policy)
    speech_adapter = factory.create_speech_adapter(eleven, policy)
    openai_speech = factory.create_speech_adapter(speech_endpoint("tts", "en"), policy)

    assert anthropic.api_key_ref == api_key_ref_for("claude")
    assert isinstance(text_adapter, AnthropicTextAdapter)
    assert isinstance(local_adapter, OpenAICompatibleTextAdapter)
    assert local_adapter._transport.base_url == "http://localhost:11434/v1"
    assert isinstance(speech_adapter, ElevenLabsSpeechAdapter)
    assert speech_adapter.voice == "voice-1"
    assert isinstance(openai_speech, OpenAICompatibleSpeechAdapter)
    with pytest.raises(ValueError):
        factory.create_speech_adapter(local, policy)
