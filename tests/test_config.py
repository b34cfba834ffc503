"""Unit tests for environment-driven settings."""

from relay.config import GENERATION_CONFIG, Settings

ENV_VARS = [
    "GEMINI_API_KEY", "GEMINI_MODEL", "RELAY_HOST", "RELAY_PORT", "UPLOAD_DIR",
    "POLL_INTERVAL_SECONDS", "POLL_MAX_ATTEMPTS", "SESSION_IDLE_MINUTES",
    "SESSION_MAX_ENTRIES", "SESSION_CLEANUP_SECONDS", "LOG_LEVEL",
]


def _clear_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(monkeypatch):
    _clear_env(monkeypatch)

    settings = Settings.from_env()

    assert settings.gemini_api_key is None
    assert settings.gemini_model == "gemini-2.0-flash"
    assert (settings.host, settings.port) == ("0.0.0.0", 3000)
    assert settings.poll_interval_seconds == 2.0


def test_environment_overrides(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("GEMINI_API_KEY", "secret")
    monkeypatch.setenv("RELAY_PORT", "8080")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("SESSION_MAX_ENTRIES", "0")
    monkeypatch.setenv("UPLOAD_DIR", "")

    settings = Settings.from_env()

    assert settings.gemini_api_key == "secret"
    assert settings.port == 8080
    assert settings.poll_interval_seconds == 0.5
    assert settings.session_max_entries == 0
    # Empty values fall back to defaults
    assert settings.upload_dir == "uploads"


def test_generation_config_is_fixed():
    assert GENERATION_CONFIG == {
        "temperature": 1.0,
        "top_p": 0.95,
        "top_k": 40,
        "max_output_tokens": 8192,
    }
