import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from igdb_rec.igdb import Game  # noqa: E402
from igdb_rec.vocabulary import FeatureVocabulary  # noqa: E402

GENRE_A = 1
GENRE_B = 2


def make_game(game_id, name=None, genres=(), themes=(), perspectives=(), release=None):
    return Game(
        id=game_id,
        name=name or f"Game {game_id}",
        genres=frozenset(genres),
        themes=frozenset(themes),
        player_perspectives=frozenset(perspectives),
        first_release_date=release,
    )


class FakeCatalog:
    """In-memory catalog with the same find_* surface as IGDBClient."""

    def __init__(self, games=(), similar=(), candidates=()):
        self.games = {g.id: g for g in games}
        self.similar = list(similar)
        self.candidates = list(candidates)
        self.candidate_calls = []

    def find_games_from_ids(self, game_ids):
        return [self.games[i] for i in sorted(set(game_ids)) if i in self.games]

    def find_similar_games(self, game_ids):
        return list(self.similar)

    def find_candidates(self, feature_set, exclude_ids=(), min_rating=0.0, limit=500):
        self.candidate_calls.append(
            {"feature_set": feature_set, "exclude_ids": set(exclude_ids), "min_rating": min_rating}
        )
        excluded = set(exclude_ids)
        return [c for c in self.candidates if c.id not in excluded]


@pytest.fixture
def fresh_config(monkeypatch):
    """
    Reload config after env changes; restores the default module afterwards.
    """
    import igdb_rec.config as config

    yield lambda: importlib.reload(config)

    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def tiny_vocabulary():
    """Two genres, no themes or perspectives: genre A -> col 0, genre B -> col 1."""
    return FeatureVocabulary(genres=(GENRE_A, GENRE_B), themes=(), perspectives=())


@pytest.fixture
def game_factory():
    return make_game


@pytest.fixture
def fake_catalog():
    return FakeCatalog
