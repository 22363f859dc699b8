"""
Feature vocabulary: the fixed, ordered set of IGDB attribute ids we encode.

Columns are laid out family by family (genres, then themes, then player
perspectives), so the column of an id is ``family_offset + position``.
Ids that are not part of the vocabulary simply have no column.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping


class Family(Enum):
    """Attribute families; values match the ``Game`` field names."""
    GENRE = "genres"
    THEME = "themes"
    PERSPECTIVE = "player_perspectives"


FAMILY_ORDER = (Family.GENRE, Family.THEME, Family.PERSPECTIVE)


@dataclass(frozen=True)
class FeatureVocabulary:
    """Immutable id -> column table shared by the encoder and profile builder."""

    genres: tuple[int, ...]
    themes: tuple[int, ...]
    perspectives: tuple[int, ...]
    labels: Mapping[tuple[Family, int], str] = field(default_factory=dict, compare=False)

    _columns: Mapping[tuple[Family, int], int] = field(init=False, repr=False, compare=False)
    _offsets: Mapping[Family, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize via object.__setattr__
        object.__setattr__(self, "genres", tuple(int(i) for i in self.genres))
        object.__setattr__(self, "themes", tuple(int(i) for i in self.themes))
        object.__setattr__(self, "perspectives", tuple(int(i) for i in self.perspectives))
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels or {})))

        columns: dict[tuple[Family, int], int] = {}
        offsets: dict[Family, int] = {}
        col = 0
        for family in FAMILY_ORDER:
            ids = self.ids(family)
            if len(set(ids)) != len(ids):
                raise ValueError(f"Duplicate ids in {family.value} vocabulary: {ids}")
            offsets[family] = col
            for attr_id in ids:
                columns[(family, attr_id)] = col
                col += 1

        object.__setattr__(self, "_columns", MappingProxyType(columns))
        object.__setattr__(self, "_offsets", MappingProxyType(offsets))

    def ids(self, family: Family) -> tuple[int, ...]:
        if family is Family.GENRE:
            return self.genres
        if family is Family.THEME:
            return self.themes
        return self.perspectives

    def column_of(self, family: Family, attr_id: int) -> int | None:
        """Return the column for an attribute id, or None if it is not in the vocabulary."""
        return self._columns.get((family, attr_id))

    def offset(self, family: Family) -> int:
        return self._offsets[family]

    def __len__(self) -> int:
        return len(self._columns)

    def columns(self) -> Iterable[tuple[int, Family, int]]:
        """Yield ``(column, family, attr_id)`` in column order."""
        for family in FAMILY_ORDER:
            start = self.offset(family)
            for pos, attr_id in enumerate(self.ids(family)):
                yield start + pos, family, attr_id

    def feature_at(self, column: int) -> tuple[Family, int]:
        if not 0 <= column < len(self):
            raise IndexError(f"Column {column} out of range for vocabulary of size {len(self)}")
        for family in reversed(FAMILY_ORDER):
            start = self.offset(family)
            if column >= start:
                return family, self.ids(family)[column - start]
        raise IndexError(column)  # pragma: no cover - unreachable for valid columns

    def label(self, column: int) -> str:
        family, attr_id = self.feature_at(column)
        return self.labels.get((family, attr_id), f"{family.value}:{attr_id}")

    @classmethod
    def from_named(
        cls,
        genres: Mapping[int, str],
        themes: Mapping[int, str],
        perspectives: Mapping[int, str],
    ) -> "FeatureVocabulary":
        """Build a vocabulary from ordered ``{id: name}`` tables."""
        labels = {}
        for family, table in zip(FAMILY_ORDER, (genres, themes, perspectives)):
            for attr_id, name in table.items():
                labels[(family, int(attr_id))] = name
        return cls(
            genres=tuple(genres),
            themes=tuple(themes),
            perspectives=tuple(perspectives),
            labels=labels,
        )


# IGDB enumerations (ids are IGDB's own; order defines column layout)
IGDB_GENRES = {
    2: "Point-and-click",
    4: "Fighting",
    5: "Shooter",
    7: "Music",
    8: "Platform",
    9: "Puzzle",
    10: "Racing",
    11: "Real Time Strategy (RTS)",
    12: "Role-playing (RPG)",
    13: "Simulator",
    14: "Sport",
    15: "Strategy",
    16: "Turn-based strategy (TBS)",
    24: "Tactical",
    25: "Hack and slash/Beat 'em up",
    26: "Quiz/Trivia",
    30: "Pinball",
    31: "Adventure",
    32: "Indie",
    33: "Arcade",
    34: "Visual Novel",
    35: "Card & Board Game",
    36: "MOBA",
}

IGDB_THEMES = {
    1: "Action",
    17: "Fantasy",
    18: "Science fiction",
    19: "Horror",
    20: "Thriller",
    21: "Survival",
    22: "Historical",
    23: "Stealth",
    27: "Comedy",
    28: "Business",
    31: "Drama",
    32: "Non-fiction",
    33: "Sandbox",
    34: "Educational",
    35: "Kids",
    38: "Open world",
    39: "Warfare",
    40: "Party",
    41: "4X (explore, expand, exploit, and exterminate)",
    42: "Erotic",
    43: "Mystery",
    44: "Romance",
}

IGDB_PERSPECTIVES = {
    1: "First person",
    2: "Third person",
    3: "Bird view / Isometric",
    4: "Side view",
    5: "Text",
    6: "Auditory",
    7: "Virtual Reality",
}

DEFAULT_VOCABULARY = FeatureVocabulary.from_named(IGDB_GENRES, IGDB_THEMES, IGDB_PERSPECTIVES)
