from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database
from app.models import LibraryEntry, RecommendedTitle
from app.repository import Repository


def _run(database_path, scenario):
    async def runner():
        database = Database(f"sqlite+aiosqlite:///{database_path}")
        await database.create_all()
        try:
            return await scenario(Repository(database.session_factory))
        finally:
            await database.dispose()

    return asyncio.run(runner())


def test_create_all_builds_history_tables(tmp_path) -> None:
    database_path = tmp_path / "cinemood.db"

    async def scenario(repository: Repository) -> None:
        return None

    _run(database_path, scenario)

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        tables = set(inspect(engine).get_table_names())
    finally:
        engine.dispose()

    assert {"chat_history", "moods", "recommendations", "favorites", "viewed_titles"} <= tables


def test_turns_are_scoped_and_ordered(tmp_path) -> None:
    async def scenario(repository: Repository):
        await repository.add_turn("alice", "first", "one")
        await repository.add_turn("bob", "other", "x")
        await repository.add_turn("alice", "second", "two")
        return await repository.list_turns("alice")

    turns = _run(tmp_path / "turns.db", scenario)

    assert [(turn.prompt, turn.reply) for turn in turns] == [("first", "one"), ("second", "two")]
    assert turns[0].to_payload()["user_id"] == "alice"


def test_mood_and_recommendations_are_linked(tmp_path) -> None:
    async def scenario(repository: Repository):
        mood_id = await repository.add_mood("alice", "cozy night", ["cozy"], ["comedy"])
        await repository.add_recommendations(
            "alice",
            mood_id,
            [
                RecommendedTitle(tmdb_id=1, type="movie", title="One", why_it_fits="Warm."),
                RecommendedTitle(tmdb_id=2, type="tv", title="Two", why_it_fits="Soft."),
            ],
        )
        moods = await repository.list_moods("alice")
        return mood_id, moods

    mood_id, moods = _run(tmp_path / "moods.db", scenario)

    assert isinstance(mood_id, int)
    assert moods[0].to_payload()["mood_tags"] == ["cozy"]

    engine = create_engine(f"sqlite:///{tmp_path / 'moods.db'}")
    try:
        with engine.connect() as connection:
            rows = connection.exec_driver_sql(
                "SELECT mood_id, tmdb_id FROM recommendations ORDER BY tmdb_id"
            ).all()
    finally:
        engine.dispose()
    assert rows == [(mood_id, 1), (mood_id, 2)]


def test_list_moods_returns_newest_first_with_limit(tmp_path) -> None:
    async def scenario(repository: Repository):
        for index in range(25):
            await repository.add_mood("alice", f"mood {index}", [], [])
        return await repository.list_moods("alice", limit=20)

    moods = _run(tmp_path / "limit.db", scenario)

    assert len(moods) == 20
    assert moods[0].mood_text == "mood 24"


def test_favorites_are_deduplicated_and_removable(tmp_path) -> None:
    entry = LibraryEntry(user_id="alice", tmdb_id=10, type="movie", title="Ten")

    async def scenario(repository: Repository):
        first = await repository.add_favorite(entry)
        second = await repository.add_favorite(entry)
        saved = await repository.list_favorites("alice")
        removed = await repository.remove_favorite("alice", 10)
        remaining = await repository.list_favorites("alice")
        return first, second, len(saved), removed, remaining

    first, second, saved, removed, remaining = _run(tmp_path / "fav.db", scenario)

    assert (first, second, saved, removed, remaining) == (True, False, 1, 1, [])


def test_viewed_titles_are_append_only(tmp_path) -> None:
    entry = LibraryEntry(user_id="alice", tmdb_id=10, type="tv", title="Ten", poster_url=None)

    async def scenario(repository: Repository):
        for _ in range(3):
            await repository.add_viewed(entry)
        return await repository.list_viewed("alice", limit=2)

    viewed = _run(tmp_path / "viewed.db", scenario)

    assert len(viewed) == 2
    assert viewed[0].to_payload()["type"] == "tv"
