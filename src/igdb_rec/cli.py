import argparse
import json
import logging
import math
import sys
from pathlib import Path

from .config import ALLOW_NEGATIVE_RATINGS, DEFAULT_RECOMMENDATION_LIMIT, EXCLUDE_RATED_GAMES
from .igdb import CatalogError, IGDBClient
from .profile import UnderdeterminedProfile
from .recommender import GameRecommender, ScoredGame
from .vocabulary import DEFAULT_VOCABULARY

logger = logging.getLogger(__name__)


def _parse_ratings(entries: list[str] | None) -> dict[int, float]:
    """
    Parse CLI ratings in the form game_id:rating into a dict.
    Invalid entries are ignored with a warning.
    """
    if not entries:
        return {}

    parsed: dict[int, float] = {}
    for entry in entries:
        if ":" not in entry:
            logger.warning("Ignoring rating '%s' (expected game_id:rating)", entry)
            continue
        id_part, rating_part = entry.split(":", 1)
        try:
            game_id = int(id_part)
            rating = float(rating_part)
        except ValueError:
            logger.warning("Ignoring rating '%s' (invalid number)", entry)
            continue
        if game_id < 0:
            logger.warning("Ignoring rating '%s' (negative game id)", entry)
            continue
        if not math.isfinite(rating):
            logger.warning("Ignoring rating '%s' (rating must be finite)", entry)
            continue
        parsed[game_id] = rating

    return parsed


def _load_ratings_file(path: str | Path) -> dict[int, float]:
    """Read a JSON object mapping game ids to ratings."""
    payload = json.loads(Path(path).read_text())
    if not isinstance(payload, dict):
        raise ValueError(f"{path}: expected a JSON object of game_id -> rating")
    return _parse_ratings([f"{k}:{v}" for k, v in payload.items()])


def _collect_ratings(args: argparse.Namespace) -> dict[int, float]:
    ratings = {}
    if getattr(args, "file", None):
        ratings.update(_load_ratings_file(args.file))
    ratings.update(_parse_ratings(args.ratings))
    return ratings


def _make_client() -> IGDBClient:
    try:
        return IGDBClient.from_env()
    except ValueError as e:
        logger.error(f"{e}. Register an application at https://dev.twitch.tv/console")
        sys.exit(1)


def _format_recommendation(rank: int, rec: ScoredGame) -> str:
    year = rec.game.release_year
    year_str = f" ({year})" if year else ""
    return f"{rank}. {rec.game.name or rec.game.id}{year_str} - Score: {rec.score:.3f}"


def cmd_recommend(args: argparse.Namespace) -> None:
    """Recommend games for a set of ratings."""
    ratings = _collect_ratings(args)
    if not ratings:
        logger.error("No ratings given. Pass game_id:rating pairs or --file ratings.json")
        sys.exit(1)

    with _make_client() as client:
        recommender = GameRecommender(
            client,
            allow_negative_ratings=ALLOW_NEGATIVE_RATINGS,
            exclude_rated=not args.keep_rated,
        )
        try:
            recs = recommender.recommend(ratings, limit=args.limit)
        except UnderdeterminedProfile as e:
            logger.error(f"Need more ratings: {e}")
            sys.exit(1)
        except ValueError as e:
            logger.error(f"Invalid ratings: {e}")
            sys.exit(1)

    if args.json:
        output = [
            {
                "id": r.game.id,
                "name": r.game.name,
                "year": r.game.release_year,
                "score": round(r.score, 4),
                "genres": sorted(r.game.genres),
                "themes": sorted(r.game.themes),
                "player_perspectives": sorted(r.game.player_perspectives),
            }
            for r in recs
        ]
        print(json.dumps(output, indent=2))
        return

    if not recs:
        logger.info("No candidate games found.")
        return

    logger.info(f"\nTop {len(recs)} recommendations:")
    for i, r in enumerate(recs, 1):
        logger.info(_format_recommendation(i, r))


def cmd_profile(args: argparse.Namespace) -> None:
    """Show the preference profile built from a set of ratings."""
    ratings = _collect_ratings(args)
    if not ratings:
        logger.error("No ratings given. Pass game_id:rating pairs or --file ratings.json")
        sys.exit(1)

    with _make_client() as client:
        recommender = GameRecommender(client, allow_negative_ratings=ALLOW_NEGATIVE_RATINGS)
        try:
            profile = recommender.build_profile(ratings)
        except CatalogError as e:
            logger.error(f"Catalog unavailable: {e}")
            sys.exit(1)
        except UnderdeterminedProfile as e:
            logger.error(f"Need more ratings: {e}")
            sys.exit(1)
        except ValueError as e:
            logger.error(f"Invalid ratings: {e}")
            sys.exit(1)

    if args.json:
        print(json.dumps(profile.to_dict(), indent=2))
        return

    logger.info(f"\nProfile from {profile.n_rated} rated games")
    for family, attr_id, label, weight in profile.top_features(args.limit):
        logger.info(f"  [{family.name.lower()}] {label} ({attr_id}): {weight:+.3f}")


def cmd_search(args: argparse.Namespace) -> None:
    """Search the catalog for games by name."""
    with _make_client() as client:
        games = client.search_game(args.name)

    if not games:
        logger.info(f"No games found for '{args.name}'")
        return

    for game in games:
        year = game.release_year
        logger.info(f"  {game.id}: {game.name}" + (f" ({year})" if year else ""))


def cmd_vocab(args: argparse.Namespace) -> None:
    """List the feature vocabulary columns."""
    for col, family, attr_id in DEFAULT_VOCABULARY.columns():
        logger.info(f"  {col:3d} [{family.name.lower()}] {attr_id}: {DEFAULT_VOCABULARY.label(col)}")


def main():
    parser = argparse.ArgumentParser(description="Content-based game recommendations from IGDB")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Recommend command
    recommend_parser = subparsers.add_parser("recommend", help="Recommend games from your ratings")
    recommend_parser.add_argument("ratings", nargs="*", help="Ratings as game_id:rating (e.g. 7334:2)")
    recommend_parser.add_argument("--file", "-f", help="JSON file mapping game ids to ratings")
    recommend_parser.add_argument("--limit", type=int, default=DEFAULT_RECOMMENDATION_LIMIT,
                                  help="Number of recommendations")
    recommend_parser.add_argument("--json", action="store_true", help="Print recommendations as JSON")
    recommend_parser.add_argument("--keep-rated", action="store_true", default=not EXCLUDE_RATED_GAMES,
                                  help="Allow already-rated games in the output")
    recommend_parser.set_defaults(func=cmd_recommend)

    # Profile command
    profile_parser = subparsers.add_parser("profile", help="Show the preference profile for your ratings")
    profile_parser.add_argument("ratings", nargs="*", help="Ratings as game_id:rating")
    profile_parser.add_argument("--file", "-f", help="JSON file mapping game ids to ratings")
    profile_parser.add_argument("--limit", type=int, default=10, help="Number of features to show")
    profile_parser.add_argument("--json", action="store_true", help="Print every non-zero weight as JSON")
    profile_parser.set_defaults(func=cmd_profile)

    # Search command
    search_parser = subparsers.add_parser("search", help="Search games by name")
    search_parser.add_argument("name", help="Game name")
    search_parser.set_defaults(func=cmd_search)

    # Vocabulary command
    vocab_parser = subparsers.add_parser("vocab", help="List recognized genres, themes and perspectives")
    vocab_parser.set_defaults(func=cmd_vocab)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()
