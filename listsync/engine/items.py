"""Provider-agnostic media item value object."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class MediaKind(str, Enum):
    MOVIE = "movie"
    TV = "tv"

    @classmethod
    def from_provider(cls, value: str) -> "MediaKind":
        """Map provider vocabularies (``show``, ``shows``, ``movies``...) onto movie/tv."""

        normalised = value.strip().lower()
        if normalised in {"tv", "show", "shows", "series"}:
            return cls.TV
        if normalised in {"movie", "movies", "film"}:
            return cls.MOVIE
        raise ValueError(f"Unknown media kind: {value}")


@dataclass(frozen=True, slots=True)
class MediaItem:
    """Normalised catalog item. Equality and hashing use ``external_id`` only."""

    external_id: int
    title: str = field(compare=False)
    media_kind: MediaKind = field(compare=False, default=MediaKind.MOVIE)
    year: int | None = field(compare=False, default=None)

    def __post_init__(self) -> None:
        if isinstance(self.external_id, bool) or not isinstance(self.external_id, int):
            raise TypeError("external_id must be an integer")
        if self.external_id <= 0:
            raise ValueError("external_id must be positive")


__all__ = ["MediaItem", "MediaKind"]
