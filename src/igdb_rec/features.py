"""
Feature encoding for content-based filtering.

Games are encoded as binary indicator rows over a FeatureVocabulary. The
feature-set helpers derive the attribute ids used to query for candidates
and merge candidate pools without duplicates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from scipy.sparse import csr_matrix

from .igdb import Game
from .vocabulary import DEFAULT_VOCABULARY, FAMILY_ORDER, FeatureVocabulary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatedGame:
    game: Game
    rating: float


@dataclass(frozen=True)
class FeatureSet:
    """Distinct attribute ids per family across a set of games."""

    genres: frozenset[int] = frozenset()
    themes: frozenset[int] = frozenset()
    perspectives: frozenset[int] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (self.genres or self.themes or self.perspectives)


def encode_items(
    games: Sequence[Game],
    vocabulary: FeatureVocabulary = DEFAULT_VOCABULARY,
) -> csr_matrix:
    """
    Encode games into a (n_games, len(vocabulary)) indicator matrix.

    Row order follows the input. Ids unknown to the vocabulary are skipped.
    """
    rows, cols = [], []
    for row, game in enumerate(games):
        for family in FAMILY_ORDER:
            for attr_id in getattr(game, family.value):
                col = vocabulary.column_of(family, attr_id)
                if col is None:
                    continue
                rows.append(row)
                cols.append(col)

    data = np.ones(len(rows), dtype=np.float64)
    matrix = csr_matrix(
        (data, (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
        shape=(len(games), len(vocabulary)),
        dtype=np.float64,
    )
    # scipy sums duplicate (row, col) pairs; entries must stay 0/1
    matrix.data = np.minimum(matrix.data, 1.0)
    return matrix


def extract_feature_set(games: Iterable[Game]) -> FeatureSet:
    genres: set[int] = set()
    themes: set[int] = set()
    perspectives: set[int] = set()
    for game in games:
        genres.update(game.genres)
        themes.update(game.themes)
        perspectives.update(game.player_perspectives)
    return FeatureSet(frozenset(genres), frozenset(themes), frozenset(perspectives))


def merge_unique(*pools: Iterable[Game]) -> list[Game]:
    """Concatenate game pools keeping only the first occurrence of each id."""
    seen: set[int] = set()
    merged: list[Game] = []
    for pool in pools:
        for game in pool:
            if game.id in seen:
                continue
            seen.add(game.id)
            merged.append(game)
    return merged
