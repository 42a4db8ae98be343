"""Read/write access to the interaction history tables."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import ChatTurn, Favorite, MoodQuery, Recommendation, ViewedTitle
from .errors import PersistenceError
from .models import LibraryEntry, RecommendedTitle

logger = logging.getLogger(__name__)


class Repository:
    """Wraps the relational store behind user-scoped operations.

    Each call opens its own session so independent reads can run
    concurrently within one request.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_turns(self, user_id: str) -> list[ChatTurn]:
        """Return every chat turn for ``user_id`` oldest first."""

        stmt = (
            select(ChatTurn)
            .where(ChatTurn.user_id == user_id)
            .order_by(ChatTurn.created_at.asc(), ChatTurn.id.asc())
        )
        return await self._fetch_all(stmt, "chat history")

    async def add_turn(self, user_id: str, prompt: str, reply: str) -> None:
        async with self._session_factory() as session:
            try:
                session.add(ChatTurn(user_id=user_id, prompt=prompt, reply=reply))
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to store chat turn") from exc

    async def add_mood(
        self,
        user_id: str,
        mood_text: str,
        mood_tags: Sequence[str],
        genres: Sequence[str],
    ) -> int:
        """Insert a mood query and return its generated identifier."""

        async with self._session_factory() as session:
            try:
                record = MoodQuery(
                    user_id=user_id,
                    mood_text=mood_text,
                    mood_tags=list(mood_tags),
                    genres=list(genres),
                )
                session.add(record)
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to store mood query") from exc
            return record.id

    async def add_recommendations(
        self, user_id: str, mood_id: int, titles: Sequence[RecommendedTitle]
    ) -> None:
        if not titles:
            return
        async with self._session_factory() as session:
            try:
                session.add_all(
                    Recommendation(
                        user_id=user_id,
                        mood_id=mood_id,
                        tmdb_id=title.tmdb_id,
                        type=title.type,
                        title=title.title,
                        why_it_fits=title.why_it_fits,
                    )
                    for title in titles
                )
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to store recommendations") from exc

    async def list_moods(self, user_id: str, *, limit: int = 20) -> list[MoodQuery]:
        """Return the most recent mood queries newest first."""

        stmt = (
            select(MoodQuery)
            .where(MoodQuery.user_id == user_id)
            .order_by(MoodQuery.created_at.desc(), MoodQuery.id.desc())
            .limit(limit)
        )
        return await self._fetch_all(stmt, "mood history")

    async def list_favorites(self, user_id: str) -> list[Favorite]:
        stmt = (
            select(Favorite)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        )
        return await self._fetch_all(stmt, "favorites")

    async def add_favorite(self, entry: LibraryEntry) -> bool:
        """Store a favorite unless the user already saved that title."""

        async with self._session_factory() as session:
            try:
                existing = await session.execute(
                    select(Favorite.id)
                    .where(
                        Favorite.user_id == entry.user_id,
                        Favorite.tmdb_id == entry.tmdb_id,
                    )
                    .limit(1)
                )
                if existing.scalar_one_or_none() is not None:
                    return False
                session.add(
                    Favorite(
                        user_id=entry.user_id,
                        tmdb_id=entry.tmdb_id,
                        type=entry.type,
                        title=entry.title,
                        poster_url=entry.poster_url,
                        created_at=datetime.utcnow(),
                    )
                )
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to store favorite") from exc
            return True

    async def remove_favorite(self, user_id: str, tmdb_id: int) -> int:
        """Delete a favorite and return how many rows were removed."""

        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    delete(Favorite).where(
                        Favorite.user_id == user_id, Favorite.tmdb_id == tmdb_id
                    )
                )
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to remove favorite") from exc
            return result.rowcount or 0

    async def list_viewed(self, user_id: str, *, limit: int = 10) -> list[ViewedTitle]:
        stmt = (
            select(ViewedTitle)
            .where(ViewedTitle.user_id == user_id)
            .order_by(ViewedTitle.created_at.desc(), ViewedTitle.id.desc())
            .limit(limit)
        )
        return await self._fetch_all(stmt, "viewed titles")

    async def add_viewed(self, entry: LibraryEntry) -> None:
        async with self._session_factory() as session:
            try:
                session.add(
                    ViewedTitle(
                        user_id=entry.user_id,
                        tmdb_id=entry.tmdb_id,
                        type=entry.type,
                        title=entry.title,
                        poster_url=entry.poster_url,
                        created_at=datetime.utcnow(),
                    )
                )
                await session.commit()
            except SQLAlchemyError as exc:
                raise PersistenceError("Failed to store viewed title") from exc

    async def _fetch_all(self, stmt, label: str) -> list:
        async with self._session_factory() as session:
            try:
                result = await session.execute(stmt)
            except SQLAlchemyError as exc:
                logger.warning("Failed to load %s: %s", label, exc)
                raise PersistenceError(f"Failed to load {label}") from exc
            return list(result.scalars().all())
