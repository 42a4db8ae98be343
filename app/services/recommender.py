"""Mood-driven recommendations, title details and the discover page."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..errors import InvalidRequestError, NotFoundError, PersistenceError
from ..models import MoodAnalysis, RecommendedTitle, TitleDetails, TitleRecord
from ..repository import Repository
from ..sections import DISCOVER_SECTIONS, DiscoverSectionDefinition
from .openai import OpenAIClient
from .tmdb import TMDBClient, map_genres_to_ids

logger = logging.getLogger(__name__)

MOVIE_CANDIDATES = 6
TV_CANDIDATES = 4
MAX_RECOMMENDATIONS = 8
SECTION_ITEM_LIMIT = 10
EMPTY_RESULTS_SUMMARY = (
    "Hmm, the projector came up empty for that mood. "
    "Try describing it a little differently?"
)


@dataclass(slots=True)
class RecommendationResult:
    mood_summary: str
    analysis: MoodAnalysis
    recommendations: list[RecommendedTitle] = field(default_factory=list)
    degraded: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "mood_summary": self.mood_summary,
            "mood_tags": list(self.analysis.mood_tags),
            "genres": list(self.analysis.genres),
            "recommendations": [
                title.model_dump(mode="json") for title in self.recommendations
            ],
        }


class RecommendationService:
    """Composes the catalog and language-model clients into user-facing lists."""

    def __init__(
        self,
        tmdb_client: TMDBClient,
        openai_client: OpenAIClient,
        repository: Repository,
        *,
        rng: random.Random | None = None,
    ):
        self._tmdb = tmdb_client
        self._ai = openai_client
        self._repository = repository
        self._rng = rng or random.Random()

    async def recommend(self, user_id: str, mood_text: str) -> RecommendationResult:
        """Turn free-text mood into a shuffled, annotated list of titles."""

        mood_text = (mood_text or "").strip()
        if not mood_text:
            raise InvalidRequestError("mood_text is required")

        parsed = await self._ai.parse_mood(mood_text)
        analysis = parsed.value
        genre_ids = map_genres_to_ids(analysis.genres)
        avoided_ids = [
            genre_id
            for genre_id in map_genres_to_ids(analysis.avoid)
            if genre_id not in genre_ids
        ]

        movies, shows = await asyncio.gather(
            self._tmdb.discover_titles(
                "movie",
                genre_ids,
                max_results=MOVIE_CANDIDATES,
                exclude_genre_ids=avoided_ids,
            ),
            self._tmdb.discover_titles(
                "tv",
                genre_ids,
                max_results=TV_CANDIDATES,
                exclude_genre_ids=avoided_ids,
            ),
        )
        candidates = [*movies, *shows]
        self._rng.shuffle(candidates)
        candidates = candidates[:MAX_RECOMMENDATIONS]

        if not candidates:
            logger.info("No catalog candidates for genres %s", analysis.genres)
            return RecommendationResult(
                mood_summary=EMPTY_RESULTS_SUMMARY,
                analysis=analysis,
                degraded=parsed.degraded,
            )

        # Sentences are index-aligned with ``candidates``; keep the order fixed.
        fits = await self._ai.explain_fit(mood_text, analysis.mood_tags, candidates)
        recommendations = [
            RecommendedTitle(**title.model_dump(), why_it_fits=sentence)
            for title, sentence in zip(candidates, fits.value)
        ]

        await self._store_recommendations(user_id, mood_text, analysis, recommendations)
        return RecommendationResult(
            mood_summary=self._summarize(analysis),
            analysis=analysis,
            recommendations=recommendations,
            degraded=parsed.degraded or fits.degraded,
        )

    async def title_details(self, kind: str, tmdb_id: int) -> dict[str, Any]:
        """Return catalog details enriched with generated copy and similar titles."""

        details = await self._tmdb.get_title_details(kind, tmdb_id)
        if details is None:
            raise NotFoundError("Title not found")

        atmosphere, audience, similar = await asyncio.gather(
            self._ai.describe_atmosphere(
                details.title, details.overview or "", details.genres
            ),
            self._ai.describe_audience_fit(details.title, details.genres),
            self._tmdb.get_similar(kind, tmdb_id, limit=6),
        )
        return {
            **details.model_dump(mode="json"),
            "ai_description": atmosphere.value,
            "ai_viewer_fit": audience.value,
            "similar": [title.model_dump(mode="json") for title in similar],
        }

    async def discover(self) -> list[dict[str, Any]]:
        """Build the fixed discover carousels with generated captions."""

        listings = await asyncio.gather(
            *(self._fetch_section(definition) for definition in DISCOVER_SECTIONS)
        )
        captions = await asyncio.gather(
            *(
                self._ai.caption_section(
                    definition.title, [item.title for item in items[:3]]
                )
                for definition, items in zip(DISCOVER_SECTIONS, listings)
            )
        )
        return [
            {
                "id": definition.key,
                "title": definition.title,
                "caption": caption.value,
                "items": [item.model_dump(mode="json") for item in items],
            }
            for definition, items, caption in zip(DISCOVER_SECTIONS, listings, captions)
        ]

    async def _fetch_section(
        self, definition: DiscoverSectionDefinition
    ) -> list[TitleRecord]:
        if definition.source == "trending":
            return await self._tmdb.get_trending(
                definition.kind, "week", limit=SECTION_ITEM_LIMIT
            )
        if definition.source == "popular":
            return await self._tmdb.get_popular(definition.kind, limit=SECTION_ITEM_LIMIT)
        return await self._tmdb.discover_titles(
            definition.kind,
            map_genres_to_ids(definition.genres),
            max_results=SECTION_ITEM_LIMIT,
        )

    async def _store_recommendations(
        self,
        user_id: str,
        mood_text: str,
        analysis: MoodAnalysis,
        recommendations: Sequence[RecommendedTitle],
    ) -> None:
        try:
            mood_id = await self._repository.add_mood(
                user_id, mood_text, analysis.mood_tags, analysis.genres
            )
        except PersistenceError:
            # Without a mood id the recommendation rows would be orphans.
            logger.exception("Failed to store mood query for %s", user_id)
            return
        try:
            await self._repository.add_recommendations(user_id, mood_id, recommendations)
        except PersistenceError:
            logger.exception("Failed to store recommendations for mood %s", mood_id)

    @staticmethod
    def _summarize(analysis: MoodAnalysis) -> str:
        if analysis.mood_tags:
            return f"Picks for a {', '.join(analysis.mood_tags[:3])} mood"
        return "Picks for your mood"
