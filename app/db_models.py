"""SQLAlchemy ORM models backing the interaction history."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class ChatTurn(Base):
    """One request/response pair from the chat assistant."""

    __tablename__ = "chat_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    prompt: Mapped[str] = mapped_column(Text)
    reply: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "prompt": self.prompt,
            "reply": self.reply,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class MoodQuery(Base):
    """A mood search and the tags/genres the model extracted from it."""

    __tablename__ = "moods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    mood_text: Mapped[str] = mapped_column(Text)
    mood_tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    recommendations: Mapped[list["Recommendation"]] = relationship(
        back_populates="mood", cascade="all, delete-orphan"
    )

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "mood_text": self.mood_text,
            "mood_tags": list(self.mood_tags or []),
            "genres": list(self.genres or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Recommendation(Base):
    """A title suggested in response to a mood query."""

    __tablename__ = "recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    mood_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("moods.id", ondelete="CASCADE")
    )
    tmdb_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(255))
    why_it_fits: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    mood: Mapped[MoodQuery] = relationship(back_populates="recommendations")


class Favorite(Base):
    """A title the user explicitly saved."""

    __tablename__ = "favorites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    tmdb_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(255))
    poster_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tmdb_id": self.tmdb_id,
            "type": self.type,
            "title": self.title,
            "poster_url": self.poster_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ViewedTitle(Base):
    """Append-only log of titles the user opened or marked as watched."""

    __tablename__ = "viewed_titles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    tmdb_id: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(16))
    title: Mapped[str] = mapped_column(String(255))
    poster_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "tmdb_id": self.tmdb_id,
            "type": self.type,
            "title": self.title,
            "poster_url": self.poster_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
