"""
Layered fetch aggregator.

query(kind, params): run the strategy chain for the kind in order; the first non-empty
normalized result wins. Upstream failures (transport, non-2xx, bad JSON, unexpected shape)
are logged and skipped; an exhausted chain is a successful empty result. Only unexpected
internal faults populate QueryResult.error.

lookup(kind, id): one primary call plus a thumbnail enrichment call whose failure is tolerated.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum

import httpx

from rlbx_proxy.records import GameRecord, UserRecord, map_games, map_user
from rlbx_proxy.resolver import ConfigurationError, EndpointResolver, Operation
from rlbx_proxy.strategies import GAME_SEARCH_STRATEGIES, QueryParams, Strategy
from rlbx_proxy.upstream import Upstream, list_field

logger = logging.getLogger(__name__)

# Upstream misses: transport errors and HTTP status errors (httpx.HTTPError),
# undecodable bodies and MalformedResponse (ValueError)
UPSTREAM_ERRORS = (httpx.HTTPError, ValueError)


class QueryKind(str, Enum):
    GAMES_SEARCH = "games-search"


class LookupKind(str, Enum):
    GAME = "game-by-id"
    USER = "user-by-id"


@dataclass
class QueryResult:
    records: list = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return {"records": [r.to_dict() for r in self.records], "error": self.error}


class FetchAggregator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        resolver: EndpointResolver,
        *,
        timeout: float = 10.0,
        strategies: dict[QueryKind, tuple[Strategy, ...]] | None = None,
    ):
        self.upstream = Upstream(client, resolver, timeout=timeout)
        if strategies is None:
            strategies = {QueryKind.GAMES_SEARCH: GAME_SEARCH_STRATEGIES}
        self._strategies = strategies
        self._lookups = {
            LookupKind.GAME: self._lookup_game,
            LookupKind.USER: self._lookup_user,
        }

    async def query(self, kind: QueryKind, params: QueryParams | None = None) -> QueryResult:
        kind = QueryKind(kind)
        params = params or QueryParams()
        for strategy in self._strategies.get(kind, ()):
            if not strategy.applicable(params):
                logger.debug("%s: skipping %s (not applicable)", kind.value, strategy.name)
                continue
            try:
                records = await strategy.execute(self.upstream, params)
            except ConfigurationError:
                raise
            except UPSTREAM_ERRORS as e:
                logger.warning("%s: strategy %s failed: %s", kind.value, strategy.name, e)
                continue
            except Exception:
                logger.exception("%s: strategy %s raised unexpectedly", kind.value, strategy.name)
                return QueryResult(records=[], error=f"Internal error in strategy '{strategy.name}'")
            if records:
                logger.info("%s: %d record(s) from %s", kind.value, len(records), strategy.name)
                return QueryResult(records=list(records))
            logger.info("%s: strategy %s returned nothing", kind.value, strategy.name)
        logger.info("%s: all strategies exhausted for %r", kind.value, params.keyword)
        return QueryResult(records=[])

    async def lookup(self, kind: LookupKind, id: int | str) -> GameRecord | UserRecord | None:
        """Single entity by id, or None when not found or the primary call fails."""
        return await self._lookups[LookupKind(kind)](id)

    async def _lookup_game(self, id: int | str) -> GameRecord | None:
        try:
            payload = await self.upstream.get_json(Operation.GAMES_API, "/v1/games", params={"universeIds": id})
            games = map_games(list_field(payload, "data"))
        except UPSTREAM_ERRORS as e:
            logger.warning("Game %s: lookup failed: %s", id, e)
            return None
        if not games:
            return None
        game = games[0]
        game.thumbnail = await self._thumbnail(
            "/v1/games/icons",
            {"universeIds": id, "size": "256x256", "format": "Png", "isCircular": "false"},
        )
        return game

    async def _lookup_user(self, id: int | str) -> UserRecord | None:
        try:
            payload = await self.upstream.get_json(Operation.USERS_API, f"/v1/users/{id}")
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                logger.info("User %s: not found", id)
            else:
                logger.warning("User %s: lookup failed: %s", id, e)
            return None
        except UPSTREAM_ERRORS as e:
            logger.warning("User %s: lookup failed: %s", id, e)
            return None
        user = map_user(payload)
        if user is None:
            return None
        user.thumbnail = await self._thumbnail(
            "/v1/users/avatar-headshot",
            {"userIds": id, "size": "150x150", "format": "Png", "isCircular": "false"},
        )
        return user

    async def _thumbnail(self, path: str, params: dict) -> str | None:
        """First imageUrl from a thumbnails API batch response; None on any upstream miss."""
        try:
            payload = await self.upstream.get_json(Operation.THUMBNAILS_API, path, params=params)
            entries = list_field(payload, "data")
        except UPSTREAM_ERRORS as e:
            logger.warning("Thumbnail %s failed: %s", path, e)
            return None
        for entry in entries:
            if isinstance(entry, dict) and entry.get("imageUrl"):
                return entry["imageUrl"]
        return None
