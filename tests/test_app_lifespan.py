"""Application startup tests running the real lifespan against SQLite."""

from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app


def _settings(tmp_path, **overrides: str) -> Settings:
    values = {
        "OPENAI_API_KEY": "",
        "TMDB_API_KEY": "",
        "TMDB_KEY": "",
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'cinemood.db'}",
        **overrides,
    }
    return Settings(_env_file=None, **values)  # type: ignore[arg-type]


def _startup_messages(caplog, level: int) -> list[str]:
    markers = ("TMDB_KEY is deprecated", "dependent endpoints")
    return [
        record.getMessage()
        for record in caplog.records
        if record.name == "app.main"
        and record.levelno == level
        and any(marker in record.getMessage() for marker in markers)
    ]


def test_app_starts_without_credentials_and_persists_library(tmp_path, caplog) -> None:
    app = create_app(_settings(tmp_path))

    with caplog.at_level(logging.INFO, logger="app.main"):
        with TestClient(app) as client:
            health = client.get("/api/health")
            favorite = client.post(
                "/api/favorite",
                json={
                    "user_id": "alice",
                    "tmdb_id": 5,
                    "type": "movie",
                    "title": "Five",
                    "action": "add",
                },
            )
            profile = client.get("/api/profile/alice")
            recommend = client.post("/api/recommend", json={"mood_text": "cozy"})
            chat = client.post("/chat", json={"user_id": "alice", "message": "hi"})
            history = client.get("/history/alice")

    assert _startup_messages(caplog, logging.ERROR) == [
        "OPENAI_API_KEY is not configured; dependent endpoints will fail",
        "TMDB_API_KEY is not configured; dependent endpoints will fail",
    ]

    assert health.status_code == 200
    assert health.json()["environment"] == {
        "openai_configured": False,
        "tmdb_configured": False,
        "database_configured": True,
        "production": False,
    }

    assert favorite.json() == {"ok": True, "success": True, "message": "Added to favorites"}
    payload = profile.json()
    assert profile.status_code == 200
    assert [item["tmdb_id"] for item in payload["favorites"]] == [5]
    assert payload["stats"]["total_favorites"] == 1
    assert payload["stats"]["total_moods"] == 0

    assert recommend.status_code == 500
    assert recommend.json() == {"ok": False, "error": "Server configuration error"}
    assert chat.status_code == 500
    assert chat.json() == {"error": "Failed: OpenAI API key is not configured"}
    assert history.json() == []


def test_shutdown_closes_http_clients(tmp_path) -> None:
    app = create_app(_settings(tmp_path, OPENAI_API_KEY="sk", TMDB_API_KEY="tmdb"))

    with TestClient(app) as client:
        client.get("/api/health")
        tmdb_http = app.state.recommendation_service._tmdb._client
        openai_http = app.state.chat_service._ai._client
        assert not tmdb_http.is_closed
        assert not openai_http.is_closed

    assert tmdb_http.is_closed
    assert openai_http.is_closed


def test_legacy_tmdb_key_is_used_with_a_warning(tmp_path, caplog) -> None:
    app = create_app(_settings(tmp_path, OPENAI_API_KEY="sk", TMDB_KEY="legacy-key"))

    with caplog.at_level(logging.INFO, logger="app.main"):
        with TestClient(app) as client:
            health = client.get("/api/health")

    assert _startup_messages(caplog, logging.WARNING) == [
        "TMDB_KEY is deprecated; set TMDB_API_KEY instead"
    ]
    assert _startup_messages(caplog, logging.ERROR) == []
    assert health.json()["environment"]["tmdb_configured"] is True
