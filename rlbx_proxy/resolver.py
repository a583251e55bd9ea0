"""
Endpoint resolution: pick a reachable URL per logical operation.
Order: configured override, cached resolution, first reachable candidate, first candidate.
"""
import logging
import time
from enum import Enum

import httpx

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    AUTHORIZE = "authorize"
    TOKEN = "token"
    USERINFO = "userinfo"
    GAMES_API = "games-api"
    USERS_API = "users-api"
    THUMBNAILS_API = "thumbnails-api"
    APIS = "apis"


# Earlier entries are preferred. roproxy.com mirrors the public web APIs for hosts that block Roblox directly.
DEFAULT_CANDIDATES: dict[Operation, tuple[str, ...]] = {
    Operation.AUTHORIZE: (
        "https://apis.roblox.com/oauth/v1/authorize",
        "https://authorize.roblox.com/v1/authorize",
    ),
    Operation.TOKEN: (
        "https://apis.roblox.com/oauth/v1/token",
        "https://apis.roblox.com/oauth/token",
    ),
    Operation.USERINFO: (
        "https://apis.roblox.com/oauth/v1/userinfo",
        "https://apis.roblox.com/oauth/userinfo",
    ),
    Operation.GAMES_API: ("https://games.roblox.com", "https://games.roproxy.com"),
    Operation.USERS_API: ("https://users.roblox.com", "https://users.roproxy.com"),
    Operation.THUMBNAILS_API: ("https://thumbnails.roblox.com", "https://thumbnails.roproxy.com"),
    Operation.APIS: ("https://apis.roblox.com", "https://apis.roproxy.com"),
}

# Any response below this counts as reachable, including 4xx
SERVER_ERROR_THRESHOLD = 500


class ConfigurationError(RuntimeError):
    """No override and no candidates for an operation."""


class EndpointResolver:
    """
    Resolves operations to URLs and memoizes the result for the lifetime of the instance.
    Create one per process (app lifespan) and share it; concurrent resolutions of the same
    operation may both probe but converge on the same value, so no locking is done.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        candidates: dict[Operation, tuple[str, ...]] | None = None,
        overrides: dict[Operation, str] | None = None,
        *,
        probe_timeout: float = 3.0,
        probe_budget: float = 8.0,
    ):
        self._client = client
        self._candidates = dict(DEFAULT_CANDIDATES if candidates is None else candidates)
        self._overrides = {Operation(k): v for k, v in (overrides or {}).items() if v}
        self._probe_timeout = probe_timeout
        self._probe_budget = probe_budget
        self._cache: dict[Operation, str] = {}

    def candidates(self, operation: Operation) -> tuple[str, ...]:
        return tuple(self._candidates.get(Operation(operation), ()))

    def resolved(self) -> dict[str, str]:
        """Snapshot of the resolution cache, keyed by operation value."""
        return {op.value: url for op, url in self._cache.items()}

    def invalidate(self, operation: Operation | None = None) -> None:
        """Forget one cached resolution, or all of them, so the next resolve() probes again."""
        if operation is None:
            self._cache.clear()
        else:
            self._cache.pop(Operation(operation), None)

    async def resolve(self, operation: Operation) -> str:
        """Return the URL for an operation. Raises ConfigurationError only when nothing is configured."""
        operation = Operation(operation)

        override = self._overrides.get(operation)
        if override:
            if self._cache.get(operation) != override:
                logger.info("Endpoint %s: using configured override %s", operation.value, override)
                self._cache[operation] = override
            return override

        cached = self._cache.get(operation)
        if cached is not None:
            return cached

        candidates = self._candidates.get(operation) or ()
        if not candidates:
            raise ConfigurationError(f"No candidate URLs configured for operation '{operation.value}'")

        deadline = time.monotonic() + self._probe_budget
        for url in candidates:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Endpoint %s: probe budget exhausted before %s", operation.value, url)
                break
            if await self._probe(url, deadline):
                logger.info("Endpoint %s: %s is reachable", operation.value, url)
                self._cache[operation] = url
                return url
            logger.warning("Endpoint %s: %s is unreachable", operation.value, url)

        fallback = candidates[0]
        logger.warning("Endpoint %s: no candidate reachable; defaulting to %s", operation.value, fallback)
        self._cache[operation] = fallback
        return fallback

    async def _probe(self, url: str, deadline: float) -> bool:
        """
        HEAD the URL without following redirects; if no response arrives, retry once with GET.
        Reachable means the server answered with a status below 500. Each request's timeout is
        clipped to what is left before deadline; the GET is skipped once nothing is left.
        """
        for method in ("HEAD", "GET"):
            timeout = min(self._probe_timeout, deadline - time.monotonic())
            if timeout <= 0:
                logger.debug("Probe %s %s skipped: budget exhausted", method, url)
                return False
            try:
                r = await self._client.request(method, url, timeout=timeout, follow_redirects=False)
            except httpx.HTTPError as e:
                logger.debug("Probe %s %s failed: %s", method, url, e)
                continue
            return r.status_code < SERVER_ERROR_THRESHOLD
        return False
