"""Entry point for the FastAPI-powered CineMood service."""

from __future__ import annotations

import json
import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, TypeVar

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import Settings, get_settings
from .database import Database
from .errors import CineMoodError, ConfigurationError, InvalidRequestError
from .models import MEDIA_TYPES, ChatRequest, FavoriteRequest, LibraryEntry, RecommendRequest
from .repository import Repository
from .services.chat import ChatService
from .services.openai import OpenAIClient
from .services.profile import ProfileService
from .services.recommender import RecommendationService
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ServiceT = TypeVar("ServiceT")
PayloadT = TypeVar("PayloadT", bound=BaseModel)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    settings: Settings = fastapi_app.state.settings
    for name in settings.missing_credentials():
        logger.error("%s is not configured; dependent endpoints will fail", name)
    if settings.uses_legacy_tmdb_key():
        logger.warning("TMDB_KEY is deprecated; set TMDB_API_KEY instead")

    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    openai_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.openai_api_url),
            timeout=httpx.Timeout(60.0, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    repository = Repository(database.session_factory)
    tmdb = TMDBClient(settings, tmdb_http_client)
    openai = OpenAIClient(settings, openai_http_client)

    fastapi_app.state.database = database
    fastapi_app.state.repository = repository
    fastapi_app.state.recommendation_service = RecommendationService(
        tmdb, openai, repository
    )
    fastapi_app.state.chat_service = ChatService(settings, openai, repository)
    fastapi_app.state.profile_service = ProfileService(openai, repository)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app(app_settings: Settings | None = None) -> FastAPI:
    settings = app_settings or get_settings()
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Mood-based movie and TV recommendations powered by OpenAI and TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    fastapi_app.state.settings = settings
    fastapi_app.state.started_at = time.monotonic()

    register_routes(fastapi_app)
    return fastapi_app


def get_service(fastapi_app: FastAPI, name: str, expected: type[ServiceT]) -> ServiceT:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{name} not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(CineMoodError)
    async def _cinemood_error_handler(_: Request, exc: CineMoodError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message)
        return JSONResponse(
            {"ok": False, "error": exc.message}, status_code=exc.status_code
        )

    @fastapi_app.exception_handler(Exception)
    async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
        return JSONResponse(
            {"ok": False, "error": "Internal server error"}, status_code=500
        )

    def _settings() -> Settings:
        settings = getattr(fastapi_app.state, "settings", None)
        if not isinstance(settings, Settings):
            raise RuntimeError("Settings not initialised")
        return settings

    def _require(*, openai: bool = False, tmdb: bool = False) -> None:
        settings = _settings()
        if (openai and not settings.openai_api_key) or (tmdb and not settings.tmdb_api_key):
            raise ConfigurationError("Server configuration error")

    @fastapi_app.post("/api/recommend")
    async def recommend(request: Request) -> dict[str, Any]:
        body = _validate(RecommendRequest, await _read_json_object(request))
        if not body.mood_text:
            raise InvalidRequestError("mood_text is required")
        _require(openai=True, tmdb=True)

        service = get_service(fastapi_app, "recommendation_service", RecommendationService)
        result = await service.recommend(body.user_id, body.mood_text)
        return {"ok": True, **result.to_payload()}

    @fastapi_app.get("/api/title/{media_type}/{tmdb_id}")
    async def title_details(media_type: str, tmdb_id: str) -> dict[str, Any]:
        if media_type not in MEDIA_TYPES:
            raise InvalidRequestError("type must be 'movie' or 'tv'")
        try:
            parsed_id = int(tmdb_id)
        except ValueError:
            parsed_id = 0
        if parsed_id <= 0:
            raise InvalidRequestError("tmdb_id must be a positive integer")
        _require(tmdb=True)

        service = get_service(fastapi_app, "recommendation_service", RecommendationService)
        details = await service.title_details(media_type, parsed_id)
        return {"ok": True, **details}

    @fastapi_app.get("/api/discover")
    async def discover() -> dict[str, Any]:
        _require(tmdb=True)
        service = get_service(fastapi_app, "recommendation_service", RecommendationService)
        return {"ok": True, "sections": await service.discover()}

    @fastapi_app.get("/api/profile/{user_id}")
    async def profile(user_id: str) -> dict[str, Any]:
        user_id = user_id.strip()
        if not user_id:
            raise InvalidRequestError("user_id is required")
        service = get_service(fastapi_app, "profile_service", ProfileService)
        return {"ok": True, **await service.get_profile(user_id)}

    @fastapi_app.post("/api/favorite")
    async def favorite(request: Request) -> dict[str, Any]:
        body = _validate(FavoriteRequest, await _read_json_object(request))
        service = get_service(fastapi_app, "profile_service", ProfileService)
        message = await service.update_favorite(body)
        return {"ok": True, "success": True, "message": message}

    @fastapi_app.post("/api/viewed")
    async def viewed(request: Request) -> dict[str, Any]:
        body = _validate(LibraryEntry, await _read_json_object(request))
        service = get_service(fastapi_app, "profile_service", ProfileService)
        message = await service.mark_viewed(body)
        return {"ok": True, "success": True, "message": message}

    @fastapi_app.post("/chat")
    async def chat(request: Request) -> JSONResponse:
        try:
            body = _validate(ChatRequest, await _read_json_object(request))
        except InvalidRequestError as exc:
            return JSONResponse({"error": exc.message}, status_code=400)
        if not body.message and not body.image:
            return JSONResponse(
                {"error": "Message or image is required"}, status_code=400
            )

        service = get_service(fastapi_app, "chat_service", ChatService)
        try:
            reply = await service.reply(body.user_id, body.message, body.image)
        except CineMoodError as exc:
            logger.error("Chat request for %s failed: %s", body.user_id, exc.message)
            return JSONResponse({"error": f"Failed: {exc.message}"}, status_code=500)
        return JSONResponse({"reply": reply})

    @fastapi_app.get("/history/{user_id}")
    async def history(user_id: str) -> JSONResponse:
        repository = get_service(fastapi_app, "repository", Repository)
        try:
            turns = await repository.list_turns(user_id)
        except CineMoodError as exc:
            return JSONResponse({"error": exc.message}, status_code=500)
        return JSONResponse([turn.to_payload() for turn in turns])

    @fastapi_app.get("/api/health")
    async def healthcheck() -> dict[str, Any]:
        started_at = getattr(fastapi_app.state, "started_at", time.monotonic())
        return {
            "status": "ok",
            "uptime": round(time.monotonic() - started_at, 3),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": _settings().environment_flags(),
        }


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid payload")
    return payload


def _validate(model: type[PayloadT], payload: dict[str, Any]) -> PayloadT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequestError(_format_validation_error(exc)) from exc


def _format_validation_error(exc: ValidationError) -> str:
    messages: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = str(error.get("msg", "invalid value"))
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid payload"


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=app.state.settings.server_host,
        port=app.state.settings.server_port,
        reload=app.state.settings.environment == "development",
    )
