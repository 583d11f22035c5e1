import pytest
from pydantic import ValidationError

from lesson_audio.config import DEFAULT_SAMPLE_RATE, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "RESEMBLE_AI_API_KEY",
        "RESEMBLE_VOICE_UUID",
        "RESEMBLE_PROJECT_UUID",
        "TTS_SAMPLE_RATE",
        "OPENAI_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.tts_sample_rate == DEFAULT_SAMPLE_RATE
    assert settings.tts_precision == "PCM_16"
    assert str(settings.resemble_stream_endpoint) == "https://f.cluster.resemble.ai/stream"
    assert settings.openai_model == "gpt-4"
    assert settings.tts_configured is False


def test_environment_aliases(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RESEMBLE_AI_API_KEY", "secret")
    monkeypatch.setenv("RESEMBLE_VOICE_UUID", "voice")
    monkeypatch.setenv("RESEMBLE_PROJECT_UUID", "project")
    monkeypatch.setenv("TTS_SAMPLE_RATE", "44100")
    monkeypatch.setenv("OPENAI_TIMEOUT", "30")

    settings = Settings(_env_file=None)

    assert settings.resemble_api_key is not None
    assert settings.resemble_api_key.get_secret_value() == "secret"
    assert settings.tts_sample_rate == 44100
    assert settings.request_timeout == 30
    assert settings.tts_configured is True


def test_unsupported_sample_rate_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TTS_SAMPLE_RATE", "12345")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
