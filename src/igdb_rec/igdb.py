import httpx
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable
from tqdm import tqdm
from .config import (
    TWITCH_CLIENT_ID,
    TWITCH_CLIENT_SECRET,
    IGDB_API_URL,
    TWITCH_TOKEN_URL,
    HTTP_TIMEOUT,
    MAX_HTTP_RETRIES,
    RETRY_INITIAL_DELAY,
    RETRY_BACKOFF_FACTOR,
    AUTH_EXPIRY_MARGIN,
    QUERY_BATCH_SIZE,
    SIMILAR_GAMES_LIMIT,
    SEARCH_LIMIT,
    CANDIDATE_LIMIT,
    CANDIDATE_MIN_RATING,
)
from .utils import chunked, comma_sep, escape_search_term, retry_with_backoff

logger = logging.getLogger(__name__)

GAME_FIELDS = ("name", "genres", "themes", "player_perspectives", "first_release_date")
MAIN_GAME_CATEGORY = 0


class CatalogError(Exception):
    """Raised when the catalog answers with something we cannot use."""


def _parse_ids(raw: Any) -> frozenset[int]:
    """
    Parse an IGDB id list. Expanded references (``{"id": 12, "name": ...}``)
    are reduced to their id; anything unparseable is skipped.
    """
    if not raw:
        return frozenset()

    ids = set()
    for value in raw:
        if isinstance(value, dict):
            value = value.get("id")
        try:
            ids.add(int(value))
        except (TypeError, ValueError):
            logger.debug(f"Skipping malformed attribute id: {value!r}")
    return frozenset(ids)


@dataclass(frozen=True)
class Game:
    id: int
    name: str = ""
    genres: frozenset[int] = frozenset()
    themes: frozenset[int] = frozenset()
    player_perspectives: frozenset[int] = frozenset()
    first_release_date: int | None = None
    similar_games: tuple["Game", ...] = field(default=(), compare=False, repr=False)

    @property
    def release_year(self) -> int | None:
        if self.first_release_date is None:
            return None
        return datetime.fromtimestamp(self.first_release_date, tz=timezone.utc).year

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Game":
        """Decode an IGDB game object; missing fields fall back to defaults."""
        if "id" not in payload:
            raise CatalogError(f"Game payload without id: {payload!r}")

        release = payload.get("first_release_date")
        similar = tuple(
            cls.from_dict(g) for g in payload.get("similar_games") or []
            if isinstance(g, dict) and "id" in g
        )
        return cls(
            id=int(payload["id"]),
            name=payload.get("name") or "",
            genres=_parse_ids(payload.get("genres")),
            themes=_parse_ids(payload.get("themes")),
            player_perspectives=_parse_ids(payload.get("player_perspectives")),
            first_release_date=int(release) if release is not None else None,
            similar_games=similar,
        )


@dataclass
class TwitchAuth:
    access_token: str
    expires_in: int
    token_type: str = "bearer"
    refreshed_at: float = 0.0


class IGDBClient:
    """
    Thin IGDB v4 client authenticated through Twitch client credentials.

    The token is the only shared mutable state; refreshes are serialized so
    concurrent callers never race on it. ``find_*`` helpers never raise on
    transport or HTTP failures: they log and return an empty list.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.Client | None = None,
        api_url: str = IGDB_API_URL,
        token_url: str = TWITCH_TOKEN_URL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_url = api_url.rstrip("/")
        self.token_url = token_url
        self.client = http_client or httpx.Client(
            headers={"User-Agent": "igdb-rec/0.1", "Accept": "application/json"},
            timeout=HTTP_TIMEOUT,
        )
        self.auth: TwitchAuth | None = None
        self._clock = clock
        self._auth_lock = threading.Lock()

    @classmethod
    def from_env(cls, **kwargs) -> "IGDBClient":
        if not TWITCH_CLIENT_ID or not TWITCH_CLIENT_SECRET:
            raise ValueError("TWITCH_CLIENT_ID and TWITCH_CLIENT_SECRET must be set")
        return cls(TWITCH_CLIENT_ID, TWITCH_CLIENT_SECRET, **kwargs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        self.client.close()

    @retry_with_backoff(
        max_retries=MAX_HTTP_RETRIES,
        initial_delay=RETRY_INITIAL_DELAY,
        backoff_factor=RETRY_BACKOFF_FACTOR,
        exceptions=(httpx.TransportError,),
    )
    def _post(self, url: str, **kwargs) -> httpx.Response:
        resp = self.client.post(url, **kwargs)
        resp.raise_for_status()
        return resp

    # Authentication

    def is_auth_valid(self) -> bool:
        if self.auth is None or not self.auth.access_token:
            return False
        age = self._clock() - self.auth.refreshed_at
        return age < self.auth.expires_in - AUTH_EXPIRY_MARGIN

    def refresh_auth(self) -> TwitchAuth:
        """Request a fresh client-credentials token from Twitch."""
        params = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "client_credentials",
        }
        try:
            resp = self._post(self.token_url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Error refreshing auth: {e}")
            raise

        try:
            payload = resp.json()
            auth = TwitchAuth(
                access_token=payload["access_token"],
                expires_in=int(payload["expires_in"]),
                token_type=payload.get("token_type", "bearer"),
                refreshed_at=self._clock(),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Error refreshing auth. Failed to parse token response: {e}")
            raise CatalogError("Malformed token response") from e

        self.auth = auth
        logger.debug(f"Refreshed Twitch token (expires in {auth.expires_in}s)")
        return auth

    def ensure_auth(self) -> TwitchAuth:
        if self.is_auth_valid():
            return self.auth
        with self._auth_lock:
            # Another thread may have refreshed while we waited
            if self.is_auth_valid():
                return self.auth
            return self.refresh_auth()

    # Queries

    def query(self, endpoint: str, body: str) -> list[dict]:
        """
        POST an Apicalypse body to ``endpoint`` and return the decoded rows.

        Raises httpx.HTTPError or CatalogError on failure.
        """
        auth = self.ensure_auth()
        headers = {
            "Client-ID": self.client_id,
            "Authorization": f"Bearer {auth.access_token}",
        }
        try:
            resp = self._post(f"{self.api_url}/{endpoint}", content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Failed to query {endpoint}: {e}")
            if not self.is_auth_valid():
                logger.error("Auth is no longer valid")
            raise

        try:
            rows = resp.json()
        except ValueError as e:
            raise CatalogError(f"Invalid JSON from {endpoint}") from e
        if not isinstance(rows, list):
            raise CatalogError(f"Unexpected response shape from {endpoint}: {type(rows).__name__}")
        return rows

    def _query_games(self, body: str) -> list[Game]:
        games = []
        for row in self.query("games", body):
            try:
                games.append(Game.from_dict(row))
            except (CatalogError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed game row: {e}")
        return games

    def find_games_from_ids(self, game_ids: Iterable[int]) -> list[Game]:
        """
        Fetch games by id. Unknown ids are silently omitted.

        Ids are queried in batches of QUERY_BATCH_SIZE. A failed batch is
        logged and skipped so the games from the other batches are kept; its
        ids then look unknown to the caller.

        Raises:
            CatalogError: every batch failed, so the catalog gave no answer at all
        """
        ids = sorted(set(game_ids))
        if not ids:
            return []

        batches = list(chunked(ids, QUERY_BATCH_SIZE))
        games: list[Game] = []
        failed = 0
        last_error: Exception | None = None
        for batch in tqdm(batches, desc="Fetching games", disable=len(batches) < 2):
            body = (
                f"fields {', '.join(GAME_FIELDS)};"
                f" where id = ({comma_sep(batch)});"
                f" limit {len(batch)};"
            )
            try:
                games.extend(self._query_games(body))
            except (httpx.HTTPError, CatalogError) as e:
                logger.error(f"Failed to fetch {len(batch)} games by id: {e}")
                failed += 1
                last_error = e

        if failed == len(batches):
            raise CatalogError(f"Could not fetch games by id: {last_error}") from last_error
        return games

    def find_similar_games(self, game_ids: Iterable[int]) -> list[Game]:
        """Union of IGDB's ``similar_games`` for the given ids, first occurrence wins."""
        ids = sorted(set(game_ids))
        if not ids:
            return []

        similar_fields = ", ".join(f"similar_games.{f}" for f in GAME_FIELDS)
        seen: set[int] = set()
        games: list[Game] = []
        try:
            for batch in chunked(ids, SIMILAR_GAMES_LIMIT):
                body = (
                    f"fields {similar_fields};"
                    f" where id = ({comma_sep(batch)});"
                    f" limit {SIMILAR_GAMES_LIMIT};"
                )
                for parent in self._query_games(body):
                    for game in parent.similar_games:
                        if game.id not in seen:
                            seen.add(game.id)
                            games.append(game)
        except (httpx.HTTPError, CatalogError) as e:
            logger.error(f"Failed to fetch similar games: {e}")
            return []
        return games

    def find_candidates(
        self,
        feature_set,
        exclude_ids: Iterable[int] = (),
        min_rating: float = CANDIDATE_MIN_RATING,
        limit: int = CANDIDATE_LIMIT,
    ) -> list[Game]:
        """Games sharing any attribute with ``feature_set``, above a rating floor."""
        body = build_candidate_query(feature_set, exclude_ids, min_rating, limit)
        if body is None:
            logger.debug("Empty feature set; skipping candidate query")
            return []
        try:
            return self._query_games(body)
        except (httpx.HTTPError, CatalogError) as e:
            logger.error(f"Failed to fetch candidate games: {e}")
            return []

    def search_game(self, name: str) -> list[Game]:
        """Search main games with a known release date by name. Errors propagate."""
        body = (
            "fields name, first_release_date;"
            f' search "{escape_search_term(name)}";'
            f" where version_parent = null & category = {MAIN_GAME_CATEGORY}"
            " & first_release_date != null;"
            f" limit {SEARCH_LIMIT};"
        )
        return self._query_games(body)


def build_candidate_query(
    feature_set,
    exclude_ids: Iterable[int] = (),
    min_rating: float = CANDIDATE_MIN_RATING,
    limit: int = CANDIDATE_LIMIT,
) -> str | None:
    """
    Build the Apicalypse body for candidate retrieval, or None when the
    feature set is empty. Clauses for empty families are left out since
    ``genres = ()`` is not a valid filter.
    """
    clauses = []
    for attr, ids in (
        ("genres", feature_set.genres),
        ("themes", feature_set.themes),
        ("player_perspectives", feature_set.perspectives),
    ):
        if ids:
            clauses.append(f"{attr} = ({comma_sep(ids)})")
    if not clauses:
        return None

    excluded = set(exclude_ids)
    if excluded:
        clauses.append(f"id != ({comma_sep(excluded)})")
    clauses.append(f"rating > {min_rating:g}")

    return (
        f"fields {', '.join(GAME_FIELDS)};"
        f" where {' & '.join(clauses)};"
        f" limit {limit};"
    )
