import numpy as np
import pytest
from scipy.sparse import csr_matrix

from igdb_rec.features import RatedGame, encode_items
from igdb_rec.igdb import CatalogError
from igdb_rec.profile import UnderdeterminedProfile, build_profile
from igdb_rec.recommender import DimensionMismatch, GameRecommender, score_candidates
from igdb_rec.vocabulary import DEFAULT_VOCABULARY, FeatureVocabulary


def _scenario_profile(tiny_vocabulary, game_factory):
    return build_profile(
        [
            RatedGame(game_factory(1, genres={1}), 2.0),
            RatedGame(game_factory(2, genres={2}), 1.0),
        ],
        tiny_vocabulary,
    )


def test_scenario_scores_and_rank(tiny_vocabulary, game_factory):
    profile = _scenario_profile(tiny_vocabulary, game_factory)
    a = game_factory(10, name="A", genres={1})
    b = game_factory(11, name="B", genres={2})
    ab = game_factory(12, name="AB", genres={1, 2})
    candidates = [a, b, ab]

    ranked = score_candidates(encode_items(candidates, tiny_vocabulary), profile, candidates)

    assert [r.game.name for r in ranked] == ["AB", "A", "B"]
    scores = {r.game.name: r.score for r in ranked}
    assert scores["A"] == pytest.approx(0.667, abs=1e-3)
    assert scores["B"] == pytest.approx(0.333, abs=1e-3)
    assert scores["AB"] == pytest.approx(1.0)


def test_ties_preserve_input_order(tiny_vocabulary, game_factory):
    profile = _scenario_profile(tiny_vocabulary, game_factory)
    candidates = [
        game_factory(30, genres={2}),
        game_factory(20, genres={1}),
        game_factory(10, genres={2}),
        game_factory(5, genres={1}),
    ]

    ranked = score_candidates(encode_items(candidates, tiny_vocabulary), profile, candidates)

    assert [r.game.id for r in ranked] == [20, 5, 30, 10]
    scores = [r.score for r in ranked]
    assert scores == sorted(scores, reverse=True)


def test_extra_preferred_feature_never_lowers_score(game_factory):
    profile = build_profile(
        [
            RatedGame(game_factory(1, genres={12, 31}, themes={17}), 4.0),
            RatedGame(game_factory(2, genres={31}, perspectives={2}), 2.0),
        ]
    )
    base = game_factory(10, genres={31})
    extended = game_factory(11, genres={31}, themes={17})
    candidates = [base, extended]

    ranked = score_candidates(encode_items(candidates), profile, candidates)
    scores = {r.game.id: r.score for r in ranked}

    assert scores[11] >= scores[10]
    assert ranked[0].game.id == 11


def test_zero_candidates_return_empty(tiny_vocabulary, game_factory):
    profile = _scenario_profile(tiny_vocabulary, game_factory)
    assert score_candidates(encode_items([], tiny_vocabulary), profile, []) == []


def test_dimension_mismatch_is_fatal(tiny_vocabulary, game_factory):
    profile = _scenario_profile(tiny_vocabulary, game_factory)
    candidates = [game_factory(1, genres={12})]
    default_mat = encode_items(candidates, DEFAULT_VOCABULARY)

    with pytest.raises(DimensionMismatch):
        score_candidates(default_mat, profile, candidates)

    with pytest.raises(DimensionMismatch):
        score_candidates(encode_items(candidates, tiny_vocabulary), np.array([]), candidates)

    with pytest.raises(DimensionMismatch):
        score_candidates(encode_items(candidates, tiny_vocabulary), profile, candidates * 2)


def test_score_accepts_raw_weight_vectors(game_factory):
    candidates = [game_factory(1), game_factory(2)]
    matrix = csr_matrix(np.array([[1.0, 0.0, 1.0], [0.0, 1.0, 0.0]]))

    ranked = score_candidates(matrix, np.array([0.1, 0.6, 0.3]), candidates)

    assert [r.game.id for r in ranked] == [2, 1]
    assert ranked[0].score == pytest.approx(0.6)
    assert ranked[1].score == pytest.approx(0.4)


def _recommender_fixture(game_factory, fake_catalog, **kwargs):
    rated_a = game_factory(1, name="Rated A", genres={12, 31}, themes={1, 17}, perspectives={2})
    rated_b = game_factory(2, name="Rated B", genres={4}, themes={1}, perspectives={4})
    similar = [
        game_factory(100, name="Similar RPG", genres={12}, themes={17}),
        game_factory(2, name="Rated B (similar)", genres={4}),
        game_factory(101, name="Similar fighter", genres={4}, perspectives={4}),
    ]
    candidates = [
        game_factory(200, name="Adventure RPG", genres={12, 31}, themes={1, 17}, perspectives={2}),
        game_factory(101, name="Similar fighter dup", genres={4}),
        game_factory(201, name="Puzzle", genres={9}),
        game_factory(1, name="Rated A again", genres={12}),
    ]
    catalog = fake_catalog(games=[rated_a, rated_b], similar=similar, candidates=candidates)
    return GameRecommender(catalog, **kwargs), catalog


def test_recommend_ranks_merged_pool(game_factory, fake_catalog):
    recommender, catalog = _recommender_fixture(game_factory, fake_catalog)

    recs = recommender.recommend({1: 2.0, 2: 1.0})

    ids = [r.game.id for r in recs]
    assert ids[0] == 200
    assert len(ids) == len(set(ids))
    # Rated games never come back, even via the similar pool
    assert 1 not in ids and 2 not in ids
    # Similar games are excluded from the filter query and merged back once
    call = catalog.candidate_calls[0]
    assert {100, 101, 1, 2} <= call["exclude_ids"]
    assert call["feature_set"].genres == {4, 12, 31}
    assert [r.game.name for r in recs if r.game.id == 101] == ["Similar fighter"]


def test_recommend_limit_and_keep_rated(game_factory, fake_catalog):
    recommender, _ = _recommender_fixture(game_factory, fake_catalog, exclude_rated=False)

    recs = recommender.recommend({1: 2.0, 2: 1.0})
    assert 2 in [r.game.id for r in recs]

    limited = recommender.recommend({1: 2.0, 2: 1.0}, limit=2)
    assert len(limited) == 2
    assert [r.game.id for r in limited] == [r.game.id for r in recs[:2]]


def test_create_candidate_list_dedups_similar_pool(game_factory, fake_catalog):
    recommender, catalog = _recommender_fixture(game_factory, fake_catalog)
    catalog.candidates.append(game_factory(100, name="RPG from filter", genres={12}))
    # The fake ignores excluded ids, so force a duplicate through the filter path
    catalog.find_candidates = lambda *args, **kwargs: list(catalog.candidates)

    pool = recommender.create_candidate_list([catalog.games[1]])

    ids = [g.id for g in pool]
    assert ids.count(100) == 1
    assert next(g for g in pool if g.id == 100).name == "RPG from filter"


def test_recommend_without_signal_raises(game_factory, fake_catalog):
    recommender, _ = _recommender_fixture(game_factory, fake_catalog)

    with pytest.raises(UnderdeterminedProfile):
        recommender.recommend({1: 0.0, 2: 0.0})

    # Ids the catalog does not know leave nothing to build a profile from
    with pytest.raises(UnderdeterminedProfile):
        recommender.recommend({999: 5.0})


def test_recommend_returns_empty_when_no_candidates(game_factory, fake_catalog):
    rated = game_factory(1, genres={12})
    catalog = fake_catalog(games=[rated])
    recommender = GameRecommender(catalog)

    assert recommender.recommend({1: 4.0}) == []


def test_recommend_drops_unknown_ids_with_warning(game_factory, fake_catalog, caplog):
    recommender, _ = _recommender_fixture(game_factory, fake_catalog)

    with caplog.at_level("WARNING"):
        recs = recommender.recommend({1: 2.0, 404: 5.0})

    assert recs
    assert "not found in catalog" in caplog.text


def test_recommender_uses_injected_vocabulary(game_factory, fake_catalog):
    vocab = FeatureVocabulary(genres=(4, 9), themes=(), perspectives=())
    rated = game_factory(1, genres={4})
    catalog = fake_catalog(
        games=[rated],
        candidates=[game_factory(10, genres={9}), game_factory(11, genres={4, 12})],
    )

    recs = GameRecommender(catalog, vocabulary=vocab).recommend({1: 1.0})

    assert [r.game.id for r in recs] == [11, 10]
    assert recs[0].score == pytest.approx(1.0)
    assert recs[1].score == pytest.approx(0.0)


def test_recommend_returns_empty_when_catalog_fails(game_factory, fake_catalog, caplog):
    class BrokenCatalog(fake_catalog):
        def find_games_from_ids(self, game_ids):
            raise CatalogError("IGDB unreachable")

    recommender = GameRecommender(BrokenCatalog(games=[game_factory(1, genres={12})]))

    with caplog.at_level("ERROR"):
        recs = recommender.recommend({1: 4.0})

    assert recs == []
    assert "Catalog unavailable" in caplog.text

    with pytest.raises(CatalogError):
        recommender.build_profile({1: 4.0})
