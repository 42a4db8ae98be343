"""Per-user profile aggregation plus favorite and viewed-title writes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import InvalidRequestError
from ..models import FavoriteRequest, LibraryEntry
from ..repository import Repository
from ..utils import top_counts
from .openai import OpenAIClient

logger = logging.getLogger(__name__)

MOOD_HISTORY_LIMIT = 20
VIEWED_HISTORY_LIMIT = 10
TOP_LABEL_LIMIT = 5
PLACEHOLDER_PERSONALITY = (
    "Your cinema personality is still loading. Share a few moods to reveal it!"
)


class ProfileService:
    def __init__(self, openai_client: OpenAIClient, repository: Repository):
        self._ai = openai_client
        self._repository = repository

    async def get_profile(self, user_id: str) -> dict[str, Any]:
        """Aggregate a user's moods, favorites and viewing log.

        Persistence failures propagate: the data is the response.
        """

        moods, favorites, viewed = await asyncio.gather(
            self._repository.list_moods(user_id, limit=MOOD_HISTORY_LIMIT),
            self._repository.list_favorites(user_id),
            self._repository.list_viewed(user_id, limit=VIEWED_HISTORY_LIMIT),
        )

        if moods:
            # Rows arrive newest first; the summary expects oldest first.
            personality = await self._ai.summarize_taste(
                [mood.mood_text for mood in reversed(moods)],
                [favorite.title for favorite in favorites],
                [entry.title for entry in reversed(viewed)],
            )
            cinema_personality = personality.value
        else:
            cinema_personality = PLACEHOLDER_PERSONALITY

        return {
            "cinema_personality": cinema_personality,
            "mood_history": [mood.to_payload() for mood in moods],
            "favorites": [favorite.to_payload() for favorite in favorites],
            "viewed_titles": [entry.to_payload() for entry in viewed],
            "stats": {
                "total_moods": len(moods),
                "total_favorites": len(favorites),
                "total_viewed": len(viewed),
                "top_mood_tags": top_counts(
                    (mood.mood_tags or [] for mood in moods),
                    key="tag",
                    limit=TOP_LABEL_LIMIT,
                ),
                "top_genres": top_counts(
                    (mood.genres or [] for mood in moods),
                    key="genre",
                    limit=TOP_LABEL_LIMIT,
                ),
            },
        }

    async def update_favorite(self, request: FavoriteRequest) -> str:
        if request.action == "remove":
            removed = await self._repository.remove_favorite(
                request.user_id, request.tmdb_id
            )
            if not removed:
                return "Title was not in favorites"
            return "Removed from favorites"

        self._require_title_fields(request)
        added = await self._repository.add_favorite(request)
        if not added:
            return "Already in favorites"
        logger.info("User %s favorited %s %s", request.user_id, request.type, request.tmdb_id)
        return "Added to favorites"

    async def mark_viewed(self, entry: LibraryEntry) -> str:
        self._require_title_fields(entry)
        await self._repository.add_viewed(entry)
        return "Marked as viewed"

    @staticmethod
    def _require_title_fields(entry: LibraryEntry) -> None:
        if entry.type is None or not entry.title:
            raise InvalidRequestError("type and title are required")
