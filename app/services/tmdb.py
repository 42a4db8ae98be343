"""Client for discovering and describing titles on The Movie Database (TMDB)."""

from __future__ import annotations

import logging
import random
from typing import Any, Iterable

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import MEDIA_TYPES, TitleDetails, TitleRecord
from ..utils import parse_year

logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/original"

RANDOM_PAGE_RANGE = (1, 5)
VOTE_COUNT_FLOOR = {"movie": 100, "tv": 50}

GENRE_MAP: dict[str, int] = {
    "action": 28,
    "adventure": 12,
    "animation": 16,
    "comedy": 35,
    "crime": 80,
    "documentary": 99,
    "drama": 18,
    "family": 10751,
    "fantasy": 14,
    "history": 36,
    "horror": 27,
    "music": 10402,
    "mystery": 9648,
    "romance": 10749,
    "science fiction": 878,
    "sci-fi": 878,
    "thriller": 53,
    "war": 10752,
    "western": 37,
    "tv movie": 10770,
}


def map_genres_to_ids(names: Iterable[object]) -> list[int]:
    """Translate genre names into TMDB ids, silently dropping unknown names."""

    ids: list[int] = []
    for name in names:
        if not isinstance(name, str):
            continue
        genre_id = GENRE_MAP.get(name.strip().lower())
        if genre_id is not None and genre_id not in ids:
            ids.append(genre_id)
    return ids


class TMDBClient:
    """Client responsible for fetching and normalizing TMDB listings."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        rng: random.Random | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._rng = rng or random.Random()

    async def discover_titles(
        self,
        kind: str,
        genre_ids: Iterable[int],
        *,
        min_rating: float = 6.0,
        max_results: int = 10,
        random_page: bool = True,
        exclude_genre_ids: Iterable[int] = (),
    ) -> list[TitleRecord]:
        """Return popular titles matching every supplied genre.

        A random page in ``RANDOM_PAGE_RANGE`` keeps repeated searches with
        the same filters from always returning the same handful of titles.
        Failures are logged and reported as an empty list, so callers cannot
        tell "no matches" apart from "TMDB unavailable".
        """

        if not self._supports_kind(kind):
            return []
        page = self._rng.randint(*RANDOM_PAGE_RANGE) if random_page else 1
        params: dict[str, Any] = {
            "sort_by": "popularity.desc",
            "vote_average.gte": min_rating,
            "vote_count.gte": VOTE_COUNT_FLOOR[kind],
            "page": page,
        }
        genres = ",".join(str(genre_id) for genre_id in genre_ids)
        if genres:
            params["with_genres"] = genres
        excluded = ",".join(str(genre_id) for genre_id in exclude_genre_ids)
        if excluded:
            params["without_genres"] = excluded

        payload = await self._get_json(f"/discover/{kind}", params, label="discover")
        return self._normalize_results(payload, kind=kind, limit=max_results)

    async def get_title_details(self, kind: str, tmdb_id: int) -> TitleDetails | None:
        """Fetch a single title with its trailer, or ``None`` when unavailable."""

        if not self._supports_kind(kind):
            return None
        payload = await self._get_json(
            f"/{kind}/{tmdb_id}",
            {"append_to_response": "videos"},
            label="details",
        )
        if not isinstance(payload, dict) or "id" not in payload:
            return None

        base = self._normalize_item(payload, kind=kind)
        if base is None:
            return None
        genres = [
            str(genre["name"])
            for genre in payload.get("genres") or []
            if isinstance(genre, dict) and genre.get("name")
        ]
        update = {
            "genres": genres,
            "rating": base.rating or 0.0,
            "overview": base.overview or "",
            "runtime": payload.get("runtime") if kind == "movie" else None,
            "seasons": payload.get("number_of_seasons") if kind == "tv" else None,
            "trailer_key": self._select_trailer(payload.get("videos")),
            "tagline": payload.get("tagline") or "",
        }
        try:
            return TitleDetails.model_validate({**base.model_dump(), **update})
        except ValidationError:
            logger.warning("TMDB returned an unusable payload for %s/%s", kind, tmdb_id)
            return None

    async def get_trending(
        self, media_type: str = "all", time_window: str = "week", *, limit: int = 10
    ) -> list[TitleRecord]:
        payload = await self._get_json(
            f"/trending/{media_type}/{time_window}", {}, label="trending"
        )
        default_kind = media_type if media_type in MEDIA_TYPES else None
        return self._normalize_results(payload, kind=default_kind, limit=limit)

    async def get_popular(self, kind: str = "movie", *, limit: int = 10) -> list[TitleRecord]:
        if not self._supports_kind(kind):
            return []
        payload = await self._get_json(f"/{kind}/popular", {}, label="popular")
        return self._normalize_results(payload, kind=kind, limit=limit)

    async def get_similar(
        self, kind: str, tmdb_id: int, *, limit: int = 10
    ) -> list[TitleRecord]:
        if not self._supports_kind(kind):
            return []
        payload = await self._get_json(
            f"/{kind}/{tmdb_id}/similar", {}, label="similar"
        )
        return self._normalize_results(payload, kind=kind, limit=limit)

    async def _get_json(
        self, endpoint: str, params: dict[str, Any], *, label: str
    ) -> Any:
        query = {**params, "api_key": self._settings.tmdb_api_key or ""}
        try:
            response = await self._client.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB %s request to %s failed: %s", label, endpoint, exc)
            return None
        if response.status_code == 404:
            logger.info("TMDB %s lookup %s returned 404", label, endpoint)
            return None
        if response.status_code >= 400:
            logger.warning(
                "TMDB %s request to %s failed (%s): %s",
                label,
                endpoint,
                response.status_code,
                response.text,
            )
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("TMDB %s response from %s was not JSON", label, endpoint)
            return None

    def _normalize_results(
        self, payload: Any, *, kind: str | None, limit: int
    ) -> list[TitleRecord]:
        if not isinstance(payload, dict):
            return []
        results = payload.get("results")
        if not isinstance(results, list):
            return []

        records: list[TitleRecord] = []
        for entry in results:
            if len(records) >= limit:
                break
            if not isinstance(entry, dict):
                continue
            record = self._normalize_item(entry, kind=entry.get("media_type") or kind)
            if record is not None:
                records.append(record)
        return records

    def _normalize_item(self, item: dict[str, Any], *, kind: object) -> TitleRecord | None:
        if kind not in MEDIA_TYPES:
            # Trending "all" also returns people.
            return None
        title = item.get("title") or item.get("name")
        if not title or item.get("id") is None:
            return None
        date_value = item.get("release_date") or item.get("first_air_date")
        try:
            return TitleRecord(
                tmdb_id=int(item["id"]),
                type=kind,  # type: ignore[arg-type]
                title=str(title),
                year=parse_year(date_value),
                poster_url=self._build_image_url(item.get("poster_path"), POSTER_BASE_URL),
                backdrop_url=self._build_image_url(
                    item.get("backdrop_path"), BACKDROP_BASE_URL
                ),
                overview=item.get("overview"),
                rating=item.get("vote_average"),
                popularity=item.get("popularity"),
            )
        except (TypeError, ValueError, ValidationError):
            logger.debug("Skipping malformed TMDB entry %s", item.get("id"))
            return None

    @staticmethod
    def _select_trailer(videos: object) -> str | None:
        if not isinstance(videos, dict):
            return None
        for video in videos.get("results") or []:
            if not isinstance(video, dict):
                continue
            if video.get("type") == "Trailer" and video.get("site") == "YouTube":
                key = video.get("key")
                return str(key) if key else None
        return None

    @staticmethod
    def _supports_kind(kind: str) -> bool:
        if kind in MEDIA_TYPES:
            return True
        logger.warning("Ignoring TMDB request for unsupported media type %r", kind)
        return False

    @staticmethod
    def _build_image_url(path: object, base_url: str) -> str | None:
        if not isinstance(path, str) or not path:
            return None
        if path.startswith("http"):
            return path
        return f"{base_url}{path}"
