"""
Thin JSON GET helper over a shared httpx.AsyncClient; base URLs come from the resolver.
"""
import logging
from typing import Any

import httpx

from rlbx_proxy.records import MalformedResponse
from rlbx_proxy.resolver import EndpointResolver, Operation

logger = logging.getLogger(__name__)


class Upstream:
    def __init__(self, client: httpx.AsyncClient, resolver: EndpointResolver, *, timeout: float = 10.0):
        self.client = client
        self.resolver = resolver
        self.timeout = timeout

    async def get_json(self, operation: Operation, path: str, params: dict | None = None) -> Any:
        """
        GET base(operation) + path and decode JSON.
        Raises httpx.HTTPError on transport failure or non-2xx status, ValueError on undecodable body.
        """
        base = await self.resolver.resolve(operation)
        url = f"{base}{path}"
        r = await self.client.get(url, params=params, timeout=self.timeout)
        logger.debug("GET %s -> %s", url, r.status_code)
        r.raise_for_status()
        return r.json()


def list_field(payload: Any, key: str) -> list:
    """payload[key] when payload is an object holding a list there; MalformedResponse otherwise."""
    if not isinstance(payload, dict):
        raise MalformedResponse(f"expected an object with '{key}', got {type(payload).__name__}")
    value = payload.get(key)
    if not isinstance(value, list):
        raise MalformedResponse(f"'{key}' is missing or not a list")
    return value
