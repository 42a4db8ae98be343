"""Fixed carousel definitions for the discover page."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

SectionSource = Literal["trending", "popular", "discover"]


@dataclass(frozen=True)
class DiscoverSectionDefinition:
    """Describes one carousel and the TMDB listing that fills it."""

    key: str
    title: str
    source: SectionSource
    kind: str = "movie"
    genres: tuple[str, ...] = field(default_factory=tuple)


DISCOVER_SECTIONS: tuple[DiscoverSectionDefinition, ...] = (
    DiscoverSectionDefinition(
        key="trending",
        title="Trending This Week",
        source="trending",
        kind="all",
    ),
    DiscoverSectionDefinition(
        key="popular_movies",
        title="Popular Movies",
        source="popular",
    ),
    DiscoverSectionDefinition(
        key="feel_good",
        title="Feel-Good Picks",
        source="discover",
        genres=("comedy", "family"),
    ),
    DiscoverSectionDefinition(
        key="mind_benders",
        title="Mind Benders",
        source="discover",
        genres=("mystery", "thriller"),
    ),
)
