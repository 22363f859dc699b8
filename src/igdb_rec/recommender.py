from dataclasses import dataclass
import logging
from typing import Mapping, Sequence

import numpy as np

from .config import (
    ALLOW_NEGATIVE_RATINGS,
    CANDIDATE_MIN_RATING,
    EXCLUDE_RATED_GAMES,
)
from .features import RatedGame, encode_items, extract_feature_set, merge_unique
from .igdb import CatalogError, Game
from .profile import PreferenceVector, build_profile
from .vocabulary import DEFAULT_VOCABULARY, FeatureVocabulary

logger = logging.getLogger(__name__)


class DimensionMismatch(ValueError):
    """Candidate matrix and preference vector disagree on shape."""


@dataclass(frozen=True)
class ScoredGame:
    game: Game
    score: float


def score_candidates(
    candidate_matrix,
    profile: PreferenceVector | np.ndarray,
    candidates: Sequence[Game],
) -> list[ScoredGame]:
    """
    Score each candidate row against the profile and rank by score, highest
    first. Equal scores keep their input order. Nothing is filtered.

    Raises:
        DimensionMismatch: column count differs from the profile length, or
            row count differs from the number of candidates
    """
    weights = profile.weights if isinstance(profile, PreferenceVector) else np.asarray(profile, dtype=np.float64)
    if weights.ndim != 1:
        raise DimensionMismatch(f"Profile must be a 1-D vector, got shape {weights.shape}")

    n_rows, n_cols = candidate_matrix.shape
    if n_cols != weights.shape[0]:
        raise DimensionMismatch(
            f"Candidate matrix has {n_cols} feature columns but profile has {weights.shape[0]}"
        )
    if n_rows != len(candidates):
        raise DimensionMismatch(f"Candidate matrix has {n_rows} rows for {len(candidates)} candidates")
    if n_rows == 0:
        return []

    scores = np.asarray(candidate_matrix @ weights, dtype=np.float64).ravel()
    order = np.argsort(-scores, kind="stable")
    return [ScoredGame(game=candidates[i], score=float(scores[i])) for i in order]


class GameRecommender:
    """
    Content-based game recommender.

    Builds a preference vector from the user's rated games, pulls candidates
    that share genres/themes/perspectives with them (plus IGDB's "similar
    games"), and ranks the candidates by their dot product with the profile.

    ``catalog`` needs ``find_games_from_ids``, ``find_similar_games`` and
    ``find_candidates``; IGDBClient provides them.
    """

    def __init__(
        self,
        catalog,
        vocabulary: FeatureVocabulary = DEFAULT_VOCABULARY,
        allow_negative_ratings: bool = ALLOW_NEGATIVE_RATINGS,
        exclude_rated: bool = EXCLUDE_RATED_GAMES,
        min_rating: float = CANDIDATE_MIN_RATING,
    ):
        self.catalog = catalog
        self.vocabulary = vocabulary
        self.allow_negative_ratings = allow_negative_ratings
        self.exclude_rated = exclude_rated
        self.min_rating = min_rating

    def rate_games(self, rating_by_id: Mapping[int, float]) -> list[RatedGame]:
        """Pair catalog games with the user's ratings; ids the catalog lacks are dropped."""
        games = self.catalog.find_games_from_ids(rating_by_id.keys())
        rated = [RatedGame(game=g, rating=float(rating_by_id[g.id])) for g in games if g.id in rating_by_id]

        missing = set(rating_by_id) - {rg.game.id for rg in rated}
        if missing:
            logger.warning(f"{len(missing)} rated game(s) not found in catalog: {sorted(missing)}")
        return rated

    def build_profile(self, rating_by_id: Mapping[int, float]) -> PreferenceVector:
        """Profile for a ``{game_id: rating}`` mapping. Catalog failures raise CatalogError."""
        return build_profile(
            self.rate_games(rating_by_id),
            vocabulary=self.vocabulary,
            allow_negative=self.allow_negative_ratings,
        )

    def create_candidate_list(self, games: Sequence[Game]) -> list[Game]:
        """
        Candidate pool for the given games: catalog games sharing their
        attributes, followed by IGDB's similar games. Each id appears once.
        """
        game_ids = {g.id for g in games}
        similar = self.catalog.find_similar_games(game_ids)
        feature_set = extract_feature_set(games)

        exclude_ids = {g.id for g in similar} | game_ids
        filtered = self.catalog.find_candidates(
            feature_set,
            exclude_ids=exclude_ids,
            min_rating=self.min_rating,
        )
        candidates = merge_unique(filtered, similar)
        logger.debug(f"Candidate pool: {len(filtered)} filtered + {len(similar)} similar -> {len(candidates)}")
        return candidates

    def recommend(self, rating_by_id: Mapping[int, float], limit: int | None = None) -> list[ScoredGame]:
        """
        Rank candidate games for a ``{game_id: rating}`` mapping.

        Raises UnderdeterminedProfile when the ratings carry no signal. An
        unreachable catalog yields an empty ranking, not an error.
        """
        try:
            rated_games = self.rate_games(rating_by_id)
        except CatalogError as e:
            logger.error(f"Catalog unavailable while fetching rated games: {e}")
            return []
        profile = build_profile(
            rated_games,
            vocabulary=self.vocabulary,
            allow_negative=self.allow_negative_ratings,
        )

        games = [rg.game for rg in rated_games]
        candidates = self.create_candidate_list(games)
        if self.exclude_rated:
            rated_ids = {g.id for g in games}
            candidates = [c for c in candidates if c.id not in rated_ids]

        if not candidates:
            logger.info("No candidate games retrieved; returning empty ranking")
            return []

        candidate_mat = encode_items(candidates, self.vocabulary)
        ranked = score_candidates(candidate_mat, profile, candidates)
        logger.info(f"Ranked {len(ranked)} candidates from {len(rated_games)} rated games")
        return ranked[:limit] if limit is not None else ranked
