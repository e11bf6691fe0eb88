"""Integration tests for the Typer CLI over fake providers and temporary storage."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from veya import cli
from veya.credentials import SecretStore
from veya.errors import ErrorKind, VeyaError
from veya.io.records import JsonlRecordStore
from tests.fakes import FakeProviderFactory, FakeTextAdapter, analysis_fragments


_ENGLISH_INPUT = "The weather is lovely today and we are going for a long walk in the park."
_FRENCH_INPUT = "Le chat dort sur la table de la cuisine pendant que nous préparons le dîner."
_HISTORY_INPUT = "the cat and the dog are playing happily outside today"
_SCRIPT = "Host: Hello listeners.\n\nGuest: Hi there!\n\nHost: Goodbye."


class MemorySecretStore(SecretStore):
    """In-memory secret store for credential command tests."""

    def __init__(self) -> None:
        """Initialize empty secret storage."""

        self.secrets: dict[str, str] = {}

    def is_available(self) -> bool:
        """Report storage as available."""

        return True

    def put(self, ref_id: str, secret: str) -> str:
        """Store a stripped secret."""

        self.secrets[ref_id] = secret.strip()
        return ref_id

    def get(self, ref_id: str) -> str | None:
        """Return a stored secret."""

        return self.secrets.get(ref_id)

    def delete(self, ref_id: str) -> bool:
        """Delete a stored secret and report whether it existed."""

        return self.secrets.pop(ref_id, None) is not None


def _write_config(tmp_path: Path, audio_format: str = "mp3") -> Path:
    """Write a YAML config with one text and one speech endpoint."""

    config_path = tmp_path / "veya.yaml"
    config_path.write_text(
        "\n".join(
            [
                f"data_dir: {tmp_path / 'data'}",
                f"cache_dir: {tmp_path / 'cache'}",
                "retry_count: 0",
                f"audio_format: {audio_format}",
                "providers:",
                "  - id: text-main",
                "    name: Main text",
                "    provider: openai",
                "    model_type: text",
                "    model_name: gpt-4o-mini",
                "  - id: tts-en",
                "    provider: openai",
                "    model_type: tts",
                "    model_name: tts-1",
                "    language: en",
            ]
        ),
        encoding="utf-8",
    )
    return config_path


def _install_fakes(monkeypatch: pytest.MonkeyPatch, factory: FakeProviderFactory) -> MemorySecretStore:
    """Route CLI adapter construction and secret storage to fakes."""

    secret_store = MemorySecretStore()
    monkeypatch.setattr(cli, "create_secret_store", lambda: secret_store)
    def fake_factory(store: SecretStore) -> FakeProviderFactory:
        return factory

    fake_factory.register_api_key = cli.ProviderFactory.register_api_key  # type: ignore[attr-defined]
    monkeypatch.setattr(cli, "ProviderFactory", fake_factory)
    return secret_store


def test_insight_streams_sections_and_records_history(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """`insight` should print section headers, the detected language, and record history."""

    _install_fakes(monkeypatch, FakeProviderFactory(text_adapter=FakeTextAdapter(analysis_fragments())))
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(
        cli.app, ["insight", _ENGLISH_INPUT, "--config", str(config_path)]
    )

    assert result.exit_code == 0, result.output
    assert "[progress] command=insight stage=detecting" in result.output
    assert "[ORIGINAL]" in result.output
    assert "[SIMPLIFIED]" in result.output
    assert "Detected language: en" in result.output
    records = JsonlRecordStore(tmp_path / "data" / "records.jsonl").list_query_records()
    assert records[0].input_text == _ENGLISH_INPUT


def test_insight_reads_input_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """`--file` should supply the analyzed text."""

    _install_fakes(monkeypatch, FakeProviderFactory(text_adapter=FakeTextAdapter(analysis_fragments())))
    input_file = tmp_path / "input.txt"
    input_file.write_text(_FRENCH_INPUT, encoding="utf-8")

    result = CliRunner().invoke(
        cli.app,
        ["insight", "--file", str(input_file), "--config", str(_write_config(tmp_path))],
    )

    assert result.exit_code == 0, result.output
    assert "Detected language: fr" in result.output


def test_insight_reports_provider_error_kind(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Provider failures should exit with code 1 and name the error kind."""

    failing = FakeTextAdapter(error=VeyaError(ErrorKind.INVALID_CREDENTIAL, "openai authentication failed"))
    _install_fakes(monkeypatch, FakeProviderFactory(text_adapter=failing))

    result = CliRunner().invoke(
        cli.app, ["insight", "hello", "--config", str(_write_config(tmp_path))]
    )

    assert result.exit_code == 1
    assert "insight failed (invalid_credential): openai authentication failed" in result.output
    assert "Hint: The API key was rejected." in result.output


def test_insight_rejects_two_input_sources(tmp_path: Path) -> None:
    """Inline text and `--file` together should fail at the input stage."""

    input_file = tmp_path / "input.txt"
    input_file.write_text("text", encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["insight", "inline", "--file", str(input_file)])

    assert result.exit_code == 1
    assert "insight failed at stage `input`" in result.output


def test_missing_config_file_fails_at_config_stage(tmp_path: Path) -> None:
    """A nonexistent `--config` path should be reported with a hint."""

    result = CliRunner().invoke(
        cli.app, ["insight", "hello", "--config", str(tmp_path / "missing.yaml")]
    )

    assert result.exit_code == 1
    assert "insight failed at stage `config`" in result.output
    assert "Config file not found" in result.output


def test_invalid_config_value_fails_at_config_stage(tmp_path: Path) -> None:
    """Schema violations should be reported as invalid configuration."""

    config_path = tmp_path / "bad.yaml"
    config_path.write_text("audio_format: flac\n", encoding="utf-8")

    result = CliRunner().invoke(cli.app, ["purge", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_capture_text_without_completion_reports_zero_inferred(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """`capture-text --no-completion` should echo the OCR text verbatim."""

    factory = FakeProviderFactory()
    _install_fakes(monkeypatch, factory)

    result = CliRunner().invoke(
        cli.app,
        ["capture-text", "Recognized words", "--no-completion", "--config", str(_write_config(tmp_path))],
    )

    assert result.exit_code == 0, result.output
    assert "Recognized words" in result.output
    assert "Inferred characters: 0" in result.output
    assert factory.text_calls == []


def test_capture_text_with_completion_counts_inferred_characters(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Completed characters should be counted from the inferred ranges."""

    _install_fakes(monkeypatch, FakeProviderFactory(text_adapter=FakeTextAdapter(["ing!"])))

    result = CliRunner().invoke(
        cli.app,
        ["capture-text", "Complet", "--completion", "--config", str(_write_config(tmp_path))],
    )

    assert result.exit_code == 0, result.output
    assert "Inferred characters: 4" in result.output


def test_cast_saves_audio_by_default(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """`cast` should print the temporary artifact and promote it unless `--no-save`."""

    _install_fakes(monkeypatch, FakeProviderFactory(text_adapter=FakeTextAdapter(reply=_SCRIPT)))
    config_path = _write_config(tmp_path, audio_format="wav")

    saved = CliRunner().invoke(
        cli.app, ["cast", "Some content", "--speed", "slow", "--config", str(config_path)]
    )
    temporary_only = CliRunner().invoke(
        cli.app, ["cast", "Other content", "--no-save", "--config", str(config_path)]
    )

    assert saved.exit_code == 0, saved.output
    assert "[progress] command=cast stage=synthesizing progress=100%" in saved.output
    assert "Segments: 3" in saved.output
    assert "Saved audio:" in saved.output
    assert "(persisted," in saved.output
    assert temporary_only.exit_code == 0, temporary_only.output
    assert "Saved audio:" not in temporary_only.output
    assert len(list((tmp_path / "data" / "audio" / "saved").glob("*.wav"))) == 1
    assert len(list((tmp_path / "cache" / "audio" / "temp").glob("*.wav"))) == 2


def test_save_purge_and_evict_commands(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Cache commands should promote, purge, and evict audio files."""

    _install_fakes(monkeypatch, FakeProviderFactory(text_adapter=FakeTextAdapter(reply=_SCRIPT)))
    config_path = _write_config(tmp_path)
    runner = CliRunner()
    runner.invoke(cli.app, ["cast", "content", "--no-save", "--config", str(config_path)])
    temporary = next((tmp_path / "cache" / "audio" / "temp").glob("*.mp3"))

    saved = runner.invoke(cli.app, ["save", str(temporary), "--config", str(config_path)])
    purged = runner.invoke(cli.app, ["purge", "--config", str(config_path)])
    purged_again = runner.invoke(cli.app, ["purge", "--config", str(config_path)])
    evicted = runner.invoke(cli.app, ["evict", "--config", str(config_path)])
    missing = runner.invoke(cli.app, ["save", str(temporary), "--config", str(config_path)])

    assert saved.exit_code == 0, saved.output
    assert "Saved audio:" in saved.output
    assert "Removed temporary audio files: 1" in purged.output
    assert "Removed temporary audio files: 0" in purged_again.output
    assert "Evicted audio files: 0" in evicted.output
    assert missing.exit_code == 1
    assert "save failed (storage_failure)" in missing.output


def test_history_lists_records_and_rejects_conflicting_flags(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """History should list queries, podcasts, and words, one listing at a time."""

    _install_fakes(
        monkeypatch,
        FakeProviderFactory(text_adapter=FakeTextAdapter(analysis_fragments(), reply=_SCRIPT)),
    )
    config_path = _write_config(tmp_path)
    runner = CliRunner()

    empty = runner.invoke(cli.app, ["history", "--config", str(config_path)])
    runner.invoke(cli.app, ["insight", _HISTORY_INPUT, "--config", str(config_path)])
    runner.invoke(cli.app, ["cast", "content", "--no-save", "--config", str(config_path)])
    queries = runner.invoke(cli.app, ["history", "--config", str(config_path)])
    podcasts = runner.invoke(cli.app, ["history", "--podcasts", "--config", str(config_path)])
    words = runner.invoke(cli.app, ["history", "--words", "--config", str(config_path)])
    conflict = runner.invoke(cli.app, ["history", "--podcasts", "--words"])

    assert "No query history." in empty.output
    assert f"text_insight lang=en {_HISTORY_INPUT}" in queries.output
    assert "custom bilingual/normal" in podcasts.output
    assert "the\t2\ten" in words.output
    assert conflict.exit_code == 1
    assert "cannot be used together" in conflict.output


def test_history_uses_environment_directories(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Without `--config`, `VEYA_*` variables should choose the storage directories."""

    monkeypatch.delenv("VEYA_CONFIG", raising=False)
    monkeypatch.setenv("VEYA_DATA_DIR", str(tmp_path / "env-data"))
    monkeypatch.setenv("VEYA_CACHE_DIR", str(tmp_path / "env-cache"))
    temp_dir = tmp_path / "env-cache" / "audio" / "temp"
    temp_dir.mkdir(parents=True)
    (temp_dir / "leftover.mp3").write_bytes(b"ID3")

    history = CliRunner().invoke(cli.app, ["history"])
    purge = CliRunner().invoke(cli.app, ["purge"])

    assert history.exit_code == 0, history.output
    assert "No query history." in history.output
    assert "Removed temporary audio files: 1" in purge.output


def test_credentials_set_status_and_clear(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Credentials should be stored by reference, reported, and cleared."""

    secret_store = _install_fakes(monkeypatch, FakeProviderFactory())
    config_path = _write_config(tmp_path)
    runner = CliRunner()

    stored = runner.invoke(
        cli.app, ["credentials", "text-main", "--set", "--config", str(config_path)], input="sk-secret\n"
    )
    status = runner.invoke(cli.app, ["credentials", "text-main", "--config", str(config_path)])
    cleared = runner.invoke(cli.app, ["credentials", "text-main", "--clear", "--config", str(config_path)])
    cleared_again = runner.invoke(
        cli.app, ["credentials", "text-main", "--clear", "--config", str(config_path)]
    )

    assert stored.exit_code == 0, stored.output
    assert "stored in secure credential storage as `api_key_text-main`" in stored.output
    assert "sk-secret" not in stored.output
    assert "Stored API key for `text-main`: present" in status.output
    assert "Secure credential storage: available" in status.output
    assert "Stored API key cleared" in cleared.output
    assert "No stored API key found" in cleared_again.output
    assert secret_store.secrets == {}


def test_credentials_rejects_unknown_provider_and_blank_key(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Unknown endpoints and blank prompted keys should fail with exit code 1."""

    _install_fakes(monkeypatch, FakeProviderFactory())
    config_path = _write_config(tmp_path)
    runner = CliRunner()

    unknown = runner.invoke(cli.app, ["credentials", "nope", "--config", str(config_path)])
    blank = runner.invoke(
        cli.app, ["credentials", "text-main", "--set", "--config", str(config_path)], input="\n"
    )
    conflict = runner.invoke(
        cli.app, ["credentials", "text-main", "--set", "--clear", "--config", str(config_path)]
    )

    assert unknown.exit_code == 1
    assert "Unknown provider id `nope`" in unknown.output
    assert blank.exit_code == 1
    assert "No API key entered." in blank.output
    assert conflict.exit_code == 1
