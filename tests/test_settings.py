"""Configuration settings behaviour tests."""

from __future__ import annotations

from app.config import Settings


def test_defaults_report_missing_credentials(monkeypatch) -> None:
    """Without keys the settings still load and list what is missing."""

    for name in ("OPENAI_API_KEY", "TMDB_API_KEY", "TMDB_KEY"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.missing_credentials() == ["OPENAI_API_KEY", "TMDB_API_KEY"]
    assert settings.environment_flags()["openai_configured"] is False


def test_legacy_tmdb_key_is_accepted(monkeypatch) -> None:
    """The older TMDB_KEY variable still populates the catalog key."""

    monkeypatch.delenv("TMDB_API_KEY", raising=False)
    monkeypatch.setenv("TMDB_KEY", "legacy-key")

    settings = Settings(_env_file=None)

    assert settings.tmdb_api_key == "legacy-key"


def test_canonical_tmdb_key_wins(monkeypatch) -> None:
    monkeypatch.setenv("TMDB_API_KEY", "canonical")
    monkeypatch.setenv("TMDB_KEY", "legacy")

    settings = Settings(_env_file=None)

    assert settings.tmdb_api_key == "canonical"


def test_blank_keys_count_as_missing(monkeypatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "   ")
    monkeypatch.setenv("TMDB_API_KEY", "tmdb")

    settings = Settings(_env_file=None)

    assert settings.openai_api_key is None
    assert settings.missing_credentials() == ["OPENAI_API_KEY"]
    assert settings.environment_flags()["tmdb_configured"] is True


def test_legacy_tmdb_key_use_is_reported(monkeypatch) -> None:
    monkeypatch.delenv("TMDB_API_KEY", raising=False)
    monkeypatch.setenv("TMDB_KEY", "legacy-key")

    legacy = Settings(_env_file=None)

    monkeypatch.setenv("TMDB_API_KEY", "canonical")
    canonical = Settings(_env_file=None)

    assert legacy.uses_legacy_tmdb_key() is True
    assert canonical.uses_legacy_tmdb_key() is False
    assert "tmdb_legacy_key" not in canonical.model_dump()
