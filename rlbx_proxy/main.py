"""
RLBX proxy: Roblox OAuth login and normalized game/user data for the frontend.
GET /api/games, /api/games/{id}, /api/users/{id}, /auth/login, /auth/callback. Port 3000.
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from rlbx_proxy import config
from rlbx_proxy.aggregator import FetchAggregator, LookupKind, QueryKind
from rlbx_proxy.oauth import OAuthError, build_authorize_url, exchange_code, fetch_userinfo, generate_state
from rlbx_proxy.records import map_user
from rlbx_proxy.resolver import ConfigurationError, EndpointResolver, Operation
from rlbx_proxy.strategies import MAX_LIMIT, QueryParams

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """One shared HTTP client, resolver and aggregator per process."""
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    async with httpx.AsyncClient(timeout=config.UPSTREAM_TIMEOUT) as client:
        resolver = EndpointResolver(
            client,
            overrides=config.overrides_from_env(op.value for op in Operation),
            probe_timeout=config.PROBE_TIMEOUT,
            probe_budget=config.PROBE_BUDGET,
        )
        app.state.http_client = client
        app.state.resolver = resolver
        app.state.aggregator = FetchAggregator(client, resolver, timeout=config.UPSTREAM_TIMEOUT)
        yield


app = FastAPI(title="RLBX Proxy", version="0.5.0", lifespan=lifespan)


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_resolver(request: Request) -> EndpointResolver:
    return request.app.state.resolver


def get_aggregator(request: Request) -> FetchAggregator:
    return request.app.state.aggregator


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "rlbx_proxy"}


@app.get("/api/endpoints")
def endpoints(resolver: EndpointResolver = Depends(get_resolver)):
    """Currently resolved upstream URLs (diagnostics)."""
    return resolver.resolved()


@app.get("/api/games")
async def search_games(
    keyword: str = "",
    limit: int = Query(20, ge=1, le=MAX_LIMIT),
    page: int = Query(1, ge=1),
    aggregator: FetchAggregator = Depends(get_aggregator),
):
    """Search games by keyword or place id. Empty records means no results, not a failure."""
    result = await aggregator.query(QueryKind.GAMES_SEARCH, QueryParams(keyword=keyword, limit=limit, page=page))
    return result.to_dict()


@app.get("/api/games/{universe_id}")
async def get_game(universe_id: int, aggregator: FetchAggregator = Depends(get_aggregator)):
    game = await aggregator.lookup(LookupKind.GAME, universe_id)
    if game is None:
        return JSONResponse({"error": "Game not found"}, status_code=404)
    return game.to_dict()


@app.get("/api/users/{user_id}")
async def get_user(user_id: int, aggregator: FetchAggregator = Depends(get_aggregator)):
    user = await aggregator.lookup(LookupKind.USER, user_id)
    if user is None:
        return JSONResponse({"error": "User not found"}, status_code=404)
    return user.to_dict()


@app.get("/auth/login")
async def login(resolver: EndpointResolver = Depends(get_resolver)):
    """Redirect the browser to the resolved authorize endpoint."""
    authorize_url = await resolver.resolve(Operation.AUTHORIZE)
    url = build_authorize_url(
        authorize_url,
        client_id=config.CLIENT_ID,
        redirect_uri=config.REDIRECT_URI,
        scope=config.SCOPE,
        state=generate_state(),
    )
    return RedirectResponse(url=url, status_code=302)


@app.get("/auth/callback")
async def callback(
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    resolver: EndpointResolver = Depends(get_resolver),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Exchange the code at the resolved token endpoint and return the normalized profile.
    Tokens are not stored; session handling belongs to the caller.
    """
    if error:
        return JSONResponse({"error": error_description or error}, status_code=400)
    if not code:
        return JSONResponse({"error": "Missing code parameter"}, status_code=400)

    token_url = await resolver.resolve(Operation.TOKEN)
    userinfo_url = await resolver.resolve(Operation.USERINFO)
    try:
        tokens = await exchange_code(
            client,
            token_url,
            code=code,
            redirect_uri=config.REDIRECT_URI,
            client_id=config.CLIENT_ID,
            client_secret=config.CLIENT_SECRET,
            timeout=config.UPSTREAM_TIMEOUT,
        )
        claims = await fetch_userinfo(client, userinfo_url, tokens["access_token"], timeout=config.UPSTREAM_TIMEOUT)
    except OAuthError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("OAuth callback upstream failure: %s", e)
        return JSONResponse({"error": "Identity provider unreachable"}, status_code=502)

    user = map_user(claims)
    if user is None:
        return JSONResponse({"error": "UserInfo response has no subject"}, status_code=502)
    return {"user": user.to_dict(), "scope": tokens.get("scope", "")}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "rlbx_proxy.main:app",
        host="127.0.0.1",
        port=3000,
        reload=True,
    )
