import logging
import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .features import RatedGame, encode_items
from .vocabulary import DEFAULT_VOCABULARY, Family, FeatureVocabulary
from .config import ALLOW_NEGATIVE_RATINGS, PROFILE_ZERO_TOLERANCE

logger = logging.getLogger(__name__)


class UnderdeterminedProfile(ValueError):
    """The rated games carry no usable signal (no ratings, or weights summing to zero)."""


@dataclass
class PreferenceVector:
    """Normalized per-feature weights derived from a user's rated games."""
    weights: np.ndarray
    vocabulary: FeatureVocabulary = field(default=DEFAULT_VOCABULARY, repr=False)
    n_rated: int = 0

    def __len__(self) -> int:
        return int(self.weights.shape[0])

    def top_features(self, n: int = 10) -> list[tuple[Family, int, str, float]]:
        """Strongest non-zero features, highest weight first."""
        order = np.argsort(-self.weights, kind="stable")
        top = []
        for col in order:
            weight = float(self.weights[col])
            if weight == 0.0:
                continue
            family, attr_id = self.vocabulary.feature_at(int(col))
            top.append((family, attr_id, self.vocabulary.label(int(col)), weight))
            if len(top) >= n:
                break
        return top

    def to_dict(self) -> dict:
        features = {}
        for col, family, attr_id in self.vocabulary.columns():
            weight = float(self.weights[col])
            if weight != 0.0:
                features.setdefault(family.value, {})[attr_id] = weight
        return {"n_rated": self.n_rated, "features": features}


def _validate_ratings(ratings: np.ndarray, allow_negative: bool) -> None:
    if not np.all(np.isfinite(ratings)):
        raise ValueError("Ratings must be finite numbers")
    if not allow_negative and np.any(ratings < 0):
        raise ValueError("Negative ratings are disabled (IGDB_REC_ALLOW_NEGATIVE_RATINGS=false)")


def build_profile(
    rated_games: Sequence[RatedGame],
    vocabulary: FeatureVocabulary = DEFAULT_VOCABULARY,
    allow_negative: bool = ALLOW_NEGATIVE_RATINGS,
) -> PreferenceVector:
    """
    Build a preference vector from rated games.

    Each feature's weight is the sum of the ratings of every rated game that
    has it (``w = Mᵀ · r``); the result is divided by ``sum(w)`` so the
    weights sum to 1.

    Negative ratings (when allowed) are kept signed and the divisor is the
    signed total. A negative total inverts the signs: ratings that are all
    negative give the same profile as their absolute values, so aversion only
    shows up next to positively rated games. A total of zero cannot be
    normalized and raises UnderdeterminedProfile instead of producing NaN/inf.

    Raises:
        UnderdeterminedProfile: no rated games, or the weighted sum is zero
        ValueError: a rating is not finite, or is negative while disallowed
    """
    if not rated_games:
        raise UnderdeterminedProfile("Cannot build a profile without rated games")

    ratings = np.array([rg.rating for rg in rated_games], dtype=np.float64)
    _validate_ratings(ratings, allow_negative)

    feat_mat = encode_items([rg.game for rg in rated_games], vocabulary)
    weighted = np.asarray(feat_mat.T @ ratings).ravel()
    total = float(weighted.sum())

    if math.isclose(total, 0.0, abs_tol=PROFILE_ZERO_TOLERANCE):
        logger.info(
            f"Underdetermined profile from {len(rated_games)} rated games "
            f"({feat_mat.nnz} recognized features, weighted sum {total:g})"
        )
        raise UnderdeterminedProfile(
            "Rated games carry no usable signal; rate more games with known genres, themes or perspectives"
        )

    logger.debug(f"Built profile from {len(rated_games)} rated games over {len(vocabulary)} features")
    return PreferenceVector(weights=weighted / total, vocabulary=vocabulary, n_rated=len(rated_games))
