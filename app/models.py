"""Pydantic models describing catalog records and request payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MediaType = Literal["movie", "tv"]
MEDIA_TYPES: frozenset[str] = frozenset({"movie", "tv"})

T = TypeVar("T")


class TitleRecord(BaseModel):
    """Normalized movie or TV entry returned by the catalog client."""

    tmdb_id: int
    type: MediaType
    title: str
    year: int | None = None
    poster_url: str | None = None
    backdrop_url: str | None = None
    overview: str | None = None
    rating: float | None = None
    popularity: float | None = None


class TitleDetails(TitleRecord):
    """A title with the extra fields shown on its detail view."""

    genres: list[str] = Field(default_factory=list)
    runtime: int | None = None
    seasons: int | None = None
    trailer_key: str | None = None
    tagline: str = ""


class RecommendedTitle(TitleRecord):
    why_it_fits: str


class MoodAnalysis(BaseModel):
    """Structured reading of a free-text mood."""

    mood_tags: list[str] = Field(default_factory=list)
    genres: list[str] = Field(default_factory=list)
    avoid: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("avoid", "avoid_themes")
    )


@dataclass(slots=True)
class AIResult(Generic[T]):
    """Value produced by the language model, or its fallback when degraded."""

    value: T
    degraded: bool = False
    reason: str | None = None

    @classmethod
    def ok(cls, value: T) -> "AIResult[T]":
        return cls(value=value)

    @classmethod
    def fallback(cls, value: T, reason: str) -> "AIResult[T]":
        return cls(value=value, degraded=True, reason=reason)


class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class RecommendRequest(_Payload):
    user_id: str = "anonymous"
    mood_text: str = ""

    @field_validator("user_id", mode="before")
    @classmethod
    def _default_user(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "anonymous"
        return value


class LibraryEntry(_Payload):
    """Fields shared by favorite and viewed-title writes."""

    user_id: str = Field(min_length=1)
    tmdb_id: int = Field(gt=0)
    type: MediaType | None = None
    title: str | None = None
    poster_url: str | None = None


class FavoriteRequest(LibraryEntry):
    action: Literal["add", "remove"]


class ChatRequest(_Payload):
    user_id: str = "anonymous"
    message: str | None = None
    image: str | None = None

    @field_validator("user_id", mode="before")
    @classmethod
    def _default_user(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "anonymous"
        return value

    @field_validator("message", "image", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("image")
    @classmethod
    def _require_data_url(cls, value: str | None) -> str | None:
        if value is not None and not value.startswith("data:image/"):
            raise ValueError("image must be a data:image/... URL")
        return value
