"""
Fallback strategies for game search. Each one is a single upstream call pattern;
the aggregator runs them in order and keeps the first non-empty result.
"""
import logging
import re
import uuid
from dataclasses import dataclass

from rlbx_proxy.records import GameRecord, map_games
from rlbx_proxy.resolver import Operation
from rlbx_proxy.upstream import Upstream, list_field

logger = logging.getLogger(__name__)

MAX_LIMIT = 50

# Strict digits-only; decides whether the place-id strategy runs at all
NUMERIC_ID = re.compile(r"[0-9]+")


@dataclass
class QueryParams:
    keyword: str = ""
    limit: int = 20
    page: int = 1

    def __post_init__(self):
        self.keyword = self.keyword or ""
        self.limit = min(max(1, int(self.limit)), MAX_LIMIT)
        self.page = max(1, int(self.page))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def is_numeric(self) -> bool:
        return NUMERIC_ID.fullmatch(self.keyword) is not None


def paginate(records: list, params: QueryParams) -> list:
    return records[params.offset : params.offset + params.limit]


class Strategy:
    """One attempt in a fallback chain. Subclasses set name and implement execute()."""

    name = "strategy"

    def applicable(self, params: QueryParams) -> bool:
        return True

    async def execute(self, upstream: Upstream, params: QueryParams) -> list:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class KeywordListStrategy(Strategy):
    """games API list endpoint with keyword search; paginated upstream."""

    name = "keyword-list"

    async def execute(self, upstream: Upstream, params: QueryParams) -> list[GameRecord]:
        payload = await upstream.get_json(
            Operation.GAMES_API,
            "/v1/games/list",
            params={
                "model.keyword": params.keyword,
                "model.startRows": params.offset,
                "model.maxRows": params.limit,
            },
        )
        return map_games(list_field(payload, "games"))


class DiscoverySortsStrategy(Strategy):
    """
    Generic sorted listing from the explore API. Games from every sort are flattened in sort
    order, de-duplicated, filtered by keyword (case-insensitive, on name) and paginated locally.
    """

    name = "discovery-sorts"

    async def execute(self, upstream: Upstream, params: QueryParams) -> list[GameRecord]:
        payload = await upstream.get_json(
            Operation.APIS,
            "/explore-api/v1/get-sorts",
            params={"sessionId": str(uuid.uuid4())},
        )
        games: list[GameRecord] = []
        seen = set()
        for sort in list_field(payload, "sorts"):
            # Filter sorts carry no games list
            if not isinstance(sort, dict) or not isinstance(sort.get("games"), list):
                continue
            for game in map_games(sort["games"]):
                if game.id in seen:
                    continue
                seen.add(game.id)
                games.append(game)
        keyword = params.keyword.strip().lower()
        if keyword:
            games = [g for g in games if keyword in (g.name or "").lower()]
        return paginate(games, params)


class PlaceIdStrategy(Strategy):
    """Treat a numeric keyword as a place id: resolve its universe, then fetch that universe's game."""

    name = "place-id"

    def applicable(self, params: QueryParams) -> bool:
        return params.is_numeric()

    async def execute(self, upstream: Upstream, params: QueryParams) -> list[GameRecord]:
        payload = await upstream.get_json(Operation.APIS, f"/universes/v1/places/{params.keyword}/universe")
        universe_id = payload.get("universeId") if isinstance(payload, dict) else None
        if universe_id is None:
            logger.info("Place %s has no universe", params.keyword)
            return []
        payload = await upstream.get_json(Operation.GAMES_API, "/v1/games", params={"universeIds": universe_id})
        return map_games(list_field(payload, "data"))


GAME_SEARCH_STRATEGIES: tuple[Strategy, ...] = (
    KeywordListStrategy(),
    DiscoverySortsStrategy(),
    PlaceIdStrategy(),
)
