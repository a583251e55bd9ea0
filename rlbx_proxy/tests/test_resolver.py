"""Tests for endpoint resolution: overrides, memoization, probing order, fallback."""
import asyncio
import time

import httpx
import pytest

from rlbx_proxy.resolver import DEFAULT_CANDIDATES, ConfigurationError, EndpointResolver, Operation


class Hosts:
    """MockTransport handler: per-host behaviour, records every request."""

    def __init__(self, hosts: dict):
        self.hosts = hosts
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        behaviour = self.hosts.get(request.url.host, "down")
        if behaviour == "down":
            raise httpx.ConnectError("connection refused", request=request)
        if behaviour == "no-head" and request.method == "HEAD":
            raise httpx.RemoteProtocolError("server disconnected", request=request)
        if behaviour == "no-head":
            return httpx.Response(200)
        return httpx.Response(behaviour)

    def hits(self, host: str) -> int:
        return sum(1 for r in self.requests if r.url.host == host)


def _resolver(mock_client, hosts, candidates=None, overrides=None, **kwargs):
    client = mock_client(hosts)
    return EndpointResolver(client, candidates=candidates, overrides=overrides, **kwargs)


CANDIDATES = {
    Operation.TOKEN: ("https://a.test/token", "https://b.test/token", "https://c.test/token"),
}


@pytest.mark.asyncio
async def test_override_used_without_requests(mock_client):
    upstream = Hosts({})
    resolver = _resolver(mock_client, upstream, CANDIDATES, overrides={Operation.TOKEN: "https://override.test/token"})
    assert await resolver.resolve(Operation.TOKEN) == "https://override.test/token"
    assert await resolver.resolve("token") == "https://override.test/token"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_override_for_operation_without_candidates(mock_client):
    upstream = Hosts({})
    resolver = _resolver(mock_client, upstream, {}, overrides={Operation.USERINFO: "https://idp.test/userinfo"})
    assert await resolver.resolve(Operation.USERINFO) == "https://idp.test/userinfo"


@pytest.mark.asyncio
async def test_resolution_is_memoized(mock_client):
    upstream = Hosts({"a.test": 200})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    first = await resolver.resolve(Operation.TOKEN)
    sent = len(upstream.requests)
    second = await resolver.resolve(Operation.TOKEN)
    assert first == second == "https://a.test/token"
    assert len(upstream.requests) == sent == 1
    assert resolver.resolved() == {"token": "https://a.test/token"}


@pytest.mark.asyncio
async def test_second_candidate_reachable_third_not_requested(mock_client):
    upstream = Hosts({"a.test": "down", "b.test": 405, "c.test": 200})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://b.test/token"
    # HEAD then one GET retry for the dead host
    assert [r.method for r in upstream.requests if r.url.host == "a.test"] == ["HEAD", "GET"]
    assert upstream.hits("b.test") == 1
    assert upstream.hits("c.test") == 0


@pytest.mark.asyncio
async def test_client_error_counts_as_reachable(mock_client):
    upstream = Hosts({"a.test": 404})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"


@pytest.mark.asyncio
async def test_redirect_not_followed_and_reachable(mock_client):
    upstream = Hosts({"a.test": 302})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_head_rejected_retries_with_get(mock_client):
    upstream = Hosts({"a.test": "no-head"})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    assert [r.method for r in upstream.requests] == ["HEAD", "GET"]


@pytest.mark.asyncio
async def test_server_error_is_unreachable_without_get_retry(mock_client):
    upstream = Hosts({"a.test": 503, "b.test": 200})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://b.test/token"
    assert [r.method for r in upstream.requests if r.url.host == "a.test"] == ["HEAD"]


@pytest.mark.asyncio
async def test_nothing_reachable_falls_back_to_first_candidate(mock_client):
    upstream = Hosts({"a.test": "down", "b.test": 500, "c.test": 502})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    sent = len(upstream.requests)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    assert len(upstream.requests) == sent


@pytest.mark.asyncio
async def test_exhausted_budget_falls_back_without_requests(mock_client):
    upstream = Hosts({"a.test": 200})
    resolver = _resolver(mock_client, upstream, CANDIDATES, probe_budget=0)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_empty_candidates_raise_configuration_error(mock_client):
    resolver = _resolver(mock_client, Hosts({}), {Operation.TOKEN: ()})
    with pytest.raises(ConfigurationError):
        await resolver.resolve(Operation.TOKEN)
    with pytest.raises(ConfigurationError):
        await resolver.resolve(Operation.AUTHORIZE)


@pytest.mark.asyncio
async def test_invalidate_forces_new_resolution(mock_client):
    upstream = Hosts({"a.test": "down", "b.test": 200})
    resolver = _resolver(mock_client, upstream, CANDIDATES)
    assert await resolver.resolve(Operation.TOKEN) == "https://b.test/token"
    upstream.hosts["a.test"] = 200
    resolver.invalidate(Operation.TOKEN)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    resolver.invalidate()
    assert resolver.resolved() == {}


def test_default_candidates_cover_every_operation():
    for op in Operation:
        assert DEFAULT_CANDIDATES[op], op


class SlowHead:
    """Async handler: HEAD hangs for `delay` seconds then times out; GET answers 200."""

    def __init__(self, delay: float):
        self.delay = delay
        self.timeouts: list[tuple[str, float]] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.timeouts.append((request.method, request.extensions["timeout"]["read"]))
        if request.method == "HEAD":
            await asyncio.sleep(self.delay)
            raise httpx.ReadTimeout("timed out", request=request)
        return httpx.Response(200)


@pytest.mark.asyncio
async def test_get_retry_timeout_clipped_to_remaining_budget(mock_client):
    handler = SlowHead(delay=0.4)
    resolver = _resolver(mock_client, handler, CANDIDATES, probe_timeout=3.0, probe_budget=0.6)
    start = time.monotonic()
    await resolver.resolve(Operation.TOKEN)
    elapsed = time.monotonic() - start
    (head_method, head_timeout), (get_method, get_timeout) = handler.timeouts[:2]
    assert (head_method, get_method) == ("HEAD", "GET")
    assert head_timeout <= 0.6
    assert get_timeout <= 0.6 - 0.4 + 0.05
    assert elapsed < 0.6 + 0.2


@pytest.mark.asyncio
async def test_get_retry_skipped_when_budget_spent(mock_client):
    handler = SlowHead(delay=0.5)
    resolver = _resolver(mock_client, handler, CANDIDATES, probe_timeout=3.0, probe_budget=0.3)
    assert await resolver.resolve(Operation.TOKEN) == "https://a.test/token"
    assert [m for m, _ in handler.timeouts] == ["HEAD"]
