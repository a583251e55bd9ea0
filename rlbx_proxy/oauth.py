"""
OAuth2 authorization code helpers against Roblox. Endpoint URLs are passed in (resolved by the caller).
Confidential client: credentials sent in the token request body.
"""
import logging
import secrets
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """Token or userinfo call rejected by the identity provider."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def generate_state() -> str:
    """Opaque value round-tripped through the authorize redirect."""
    return secrets.token_urlsafe(32)


def build_authorize_url(
    authorize_url: str,
    *,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
) -> str:
    """Authorize URL with the required query parameters."""
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    sep = "&" if "?" in authorize_url else "?"
    return f"{authorize_url}{sep}{urlencode(params)}"


def _error_description(r: httpx.Response, default: str) -> str:
    err = {}
    if r.headers.get("content-type", "").startswith("application/json"):
        try:
            err = r.json()
        except ValueError:
            err = {}
    if not isinstance(err, dict):
        err = {}
    return err.get("error_description") or err.get("error") or r.text or default


async def exchange_code(
    client: httpx.AsyncClient,
    token_url: str,
    *,
    code: str,
    redirect_uri: str,
    client_id: str,
    client_secret: str,
    timeout: float = 10.0,
) -> dict:
    """POST the authorization code to the token endpoint. Returns the token response dict."""
    r = await client.post(
        token_url,
        data={
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "client_secret": client_secret,
        },
        headers={"Accept": "application/json"},
        timeout=timeout,
    )
    if r.status_code != 200:
        desc = _error_description(r, "Token exchange failed")
        logger.warning("Token exchange rejected (%s): %s", r.status_code, desc)
        raise OAuthError(str(desc), status_code=r.status_code)
    data = r.json()
    if not isinstance(data, dict) or not data.get("access_token"):
        raise OAuthError("Token response has no access_token", status_code=r.status_code)
    return data


async def fetch_userinfo(
    client: httpx.AsyncClient,
    userinfo_url: str,
    access_token: str,
    *,
    timeout: float = 10.0,
) -> dict:
    """GET userinfo claims with the access token."""
    r = await client.get(
        userinfo_url,
        headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
        timeout=timeout,
    )
    if r.status_code != 200:
        desc = _error_description(r, "UserInfo request failed")
        logger.warning("UserInfo rejected (%s): %s", r.status_code, desc)
        raise OAuthError(str(desc), status_code=r.status_code)
    claims = r.json()
    if not isinstance(claims, dict):
        raise OAuthError("UserInfo response is not an object", status_code=r.status_code)
    return claims
