"""
Pytest configuration for rlbx_proxy. Fixed OAuth client and no URL overrides from the shell.
"""
import os

import httpx
import pytest_asyncio

os.environ["ROBLOX_CLIENT_ID"] = "test-client"
os.environ["ROBLOX_CLIENT_SECRET"] = "test-secret"
os.environ["ROBLOX_REDIRECT_URI"] = "http://127.0.0.1:3000/auth/callback"
for name in list(os.environ):
    if name.startswith("RLBX_") and name.endswith("_URL"):
        del os.environ[name]


@pytest_asyncio.fixture
async def mock_client():
    """Factory for AsyncClients backed by httpx.MockTransport; all are closed after the test."""
    clients = []

    def _make(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()
