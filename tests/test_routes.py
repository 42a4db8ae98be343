from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.errors import NotFoundError, PersistenceError, UpstreamError
from app.main import register_routes
from app.models import FavoriteRequest, LibraryEntry, MoodAnalysis
from app.repository import Repository
from app.services.chat import ChatService
from app.services.profile import ProfileService
from app.services.recommender import RecommendationResult, RecommendationService


class DummyRecommendationService(RecommendationService):
    """RecommendationService stub that records calls instead of hitting APIs."""

    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        # Deliberately skip super().__init__ to avoid touching external systems.
        self.calls: list[tuple[str, Any]] = []

    async def recommend(self, user_id: str, mood_text: str) -> RecommendationResult:
        self.calls.append(("recommend", (user_id, mood_text)))
        return RecommendationResult(
            mood_summary="Picks for a light mood",
            analysis=MoodAnalysis(mood_tags=["light"], genres=["comedy"]),
        )

    async def title_details(self, kind: str, tmdb_id: int) -> dict[str, Any]:
        self.calls.append(("title", (kind, tmdb_id)))
        if tmdb_id == 404:
            raise NotFoundError("Title not found")
        return {"tmdb_id": tmdb_id, "type": kind, "title": "Found", "ai_description": "d"}

    async def discover(self) -> list[dict[str, Any]]:
        return [{"id": "trending", "title": "Trending", "caption": "c", "items": []}]


class DummyProfileService(ProfileService):
    def __init__(self, *, fail: bool = False) -> None:  # pragma: no cover - nothing to initialise
        self.fail = fail
        self.favorites: list[FavoriteRequest] = []
        self.viewed: list[LibraryEntry] = []

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        if self.fail:
            raise PersistenceError("Failed to load favorites")
        return {"cinema_personality": "p", "mood_history": [], "favorites": [], "viewed_titles": [], "stats": {}}

    async def update_favorite(self, request: FavoriteRequest) -> str:
        self.favorites.append(request)
        return "Added to favorites"

    async def mark_viewed(self, entry: LibraryEntry) -> str:
        self.viewed.append(entry)
        return "Marked as viewed"


class DummyChatService(ChatService):
    def __init__(self, *, error: Exception | None = None) -> None:  # pragma: no cover
        self.error = error
        self.calls: list[tuple[str, str | None, str | None]] = []

    async def reply(self, user_id: str, message: str | None, image: str | None = None) -> str:
        self.calls.append((user_id, message, image))
        if self.error:
            raise self.error
        return "Hello back"


class DummyTurn:
    def to_payload(self) -> dict[str, Any]:
        return {"prompt": "hi", "reply": "hey"}


class DummyRepository(Repository):
    def __init__(self, *, fail: bool = False) -> None:  # pragma: no cover
        self.fail = fail

    async def list_turns(self, user_id: str):
        if self.fail:
            raise PersistenceError("Failed to load chat history")
        return [DummyTurn()]


def build_app(
    *,
    settings: Settings | None = None,
    profile: DummyProfileService | None = None,
    chat: DummyChatService | None = None,
    repository: DummyRepository | None = None,
) -> tuple[FastAPI, DummyRecommendationService]:
    app = FastAPI()
    register_routes(app)
    recommender = DummyRecommendationService()
    app.state.settings = settings or Settings(
        _env_file=None, OPENAI_API_KEY="sk", TMDB_API_KEY="tmdb"
    )  # type: ignore[arg-type]
    app.state.recommendation_service = recommender
    app.state.profile_service = profile or DummyProfileService()
    app.state.chat_service = chat or DummyChatService()
    app.state.repository = repository or DummyRepository()
    return app, recommender


def test_recommend_returns_envelope() -> None:
    app, recommender = build_app()

    with TestClient(app) as client:
        response = client.post("/api/recommend", json={"mood_text": "something light"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert payload["mood_summary"] == "Picks for a light mood"
    assert payload["recommendations"] == []
    assert recommender.calls == [("recommend", ("anonymous", "something light"))]


def test_recommend_rejects_empty_mood_without_calls() -> None:
    app, recommender = build_app()

    with TestClient(app) as client:
        response = client.post("/api/recommend", json={"user_id": "u", "mood_text": "  "})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "mood_text is required"}
    assert recommender.calls == []


def test_recommend_reports_missing_configuration() -> None:
    settings = Settings(_env_file=None, OPENAI_API_KEY="", TMDB_API_KEY="")  # type: ignore[arg-type]
    app, recommender = build_app(settings=settings)

    with TestClient(app) as client:
        response = client.post("/api/recommend", json={"mood_text": "happy"})

    assert response.status_code == 500
    assert response.json()["ok"] is False
    assert recommender.calls == []


def test_title_route_validates_params() -> None:
    app, recommender = build_app()

    with TestClient(app) as client:
        bad_type = client.get("/api/title/person/5")
        bad_id = client.get("/api/title/movie/abc")
        missing = client.get("/api/title/movie/404")
        found = client.get("/api/title/tv/12")

    assert bad_type.status_code == 400
    assert bad_id.status_code == 400
    assert missing.status_code == 404
    assert missing.json() == {"ok": False, "error": "Title not found"}
    assert found.status_code == 200
    assert found.json()["ok"] is True
    assert found.json()["title"] == "Found"
    assert ("title", ("tv", 12)) in recommender.calls


def test_discover_route() -> None:
    app, _ = build_app()

    with TestClient(app) as client:
        response = client.get("/api/discover")

    assert response.status_code == 200
    assert response.json()["sections"][0]["id"] == "trending"


def test_profile_route_maps_persistence_errors() -> None:
    app, _ = build_app(profile=DummyProfileService(fail=True))

    with TestClient(app) as client:
        response = client.get("/api/profile/alice")

    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "Failed to load favorites"}


def test_favorite_rejects_unknown_action_without_mutation() -> None:
    profile = DummyProfileService()
    app, _ = build_app(profile=profile)

    with TestClient(app) as client:
        response = client.post(
            "/api/favorite",
            json={
                "user_id": "alice",
                "tmdb_id": 5,
                "type": "movie",
                "title": "Five",
                "action": "toggle",
            },
        )

    assert response.status_code == 400
    assert response.json()["ok"] is False
    assert profile.favorites == []


def test_favorite_requires_user_and_id() -> None:
    profile = DummyProfileService()
    app, _ = build_app(profile=profile)

    with TestClient(app) as client:
        response = client.post("/api/favorite", json={"action": "add"})

    assert response.status_code == 400
    assert profile.favorites == []


def test_favorite_add_succeeds() -> None:
    profile = DummyProfileService()
    app, _ = build_app(profile=profile)

    with TestClient(app) as client:
        response = client.post(
            "/api/favorite",
            json={
                "user_id": "alice",
                "tmdb_id": "5",
                "type": "movie",
                "title": "Five",
                "poster_url": None,
                "action": "add",
            },
        )

    assert response.status_code == 200
    assert response.json() == {"ok": True, "success": True, "message": "Added to favorites"}
    assert profile.favorites[0].tmdb_id == 5


def test_viewed_route() -> None:
    profile = DummyProfileService()
    app, _ = build_app(profile=profile)

    with TestClient(app) as client:
        response = client.post(
            "/api/viewed",
            json={"user_id": "alice", "tmdb_id": 9, "type": "tv", "title": "Nine"},
        )

    assert response.status_code == 200
    assert response.json()["message"] == "Marked as viewed"
    assert profile.viewed[0].type == "tv"


def test_chat_requires_message_or_image() -> None:
    chat = DummyChatService()
    app, _ = build_app(chat=chat)

    with TestClient(app) as client:
        response = client.post("/chat", json={"user_id": "alice", "message": "  "})

    assert response.status_code == 400
    assert response.json() == {"error": "Message or image is required"}
    assert chat.calls == []


def test_chat_rejects_non_data_url_images() -> None:
    chat = DummyChatService()
    app, _ = build_app(chat=chat)

    with TestClient(app) as client:
        response = client.post("/chat", json={"image": "https://example.com/cat.png"})

    assert response.status_code == 400
    assert chat.calls == []


def test_chat_returns_bare_reply() -> None:
    chat = DummyChatService()
    app, _ = build_app(chat=chat)

    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "hi"})

    assert response.status_code == 200
    assert response.json() == {"reply": "Hello back"}
    assert chat.calls == [("anonymous", "hi", None)]


def test_chat_maps_upstream_errors() -> None:
    app, _ = build_app(chat=DummyChatService(error=UpstreamError("model down")))

    with TestClient(app) as client:
        response = client.post("/chat", json={"message": "hi"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed: model down"}


def test_history_route() -> None:
    app, _ = build_app()

    with TestClient(app) as client:
        ok = client.get("/history/alice")

    failing_app, _ = build_app(repository=DummyRepository(fail=True))
    with TestClient(failing_app) as client:
        failed = client.get("/history/alice")

    assert ok.json() == [{"prompt": "hi", "reply": "hey"}]
    assert failed.status_code == 500
    assert failed.json() == {"error": "Failed to load chat history"}


def test_health_reports_environment_flags() -> None:
    settings = Settings(_env_file=None, OPENAI_API_KEY="sk", TMDB_API_KEY="")  # type: ignore[arg-type]
    app, _ = build_app(settings=settings)
    app.state.started_at = 0.0

    with TestClient(app) as client:
        response = client.get("/api/health")

    payload = response.json()
    assert response.status_code == 200
    assert payload["status"] == "ok"
    assert payload["environment"]["openai_configured"] is True
    assert payload["environment"]["tmdb_configured"] is False
    assert payload["uptime"] >= 0
    assert "timestamp" in payload
