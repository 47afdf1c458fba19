"""
Tests for the request surface, mounted in a small FastAPI app.
"""

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, RedirectResponse
from httpx import ASGITransport, AsyncClient

from ipfirewall.guard import FirewallGuard, Verdict
from ipfirewall.lists.models import ListType
from ipfirewall.middleware import guard_request
from ipfirewall.repository import DataRepository
from ipfirewall.storage.memory import MemoryEntryStore


def _build_app(guard: FirewallGuard) -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def firewall(request: Request, call_next):
        result = await guard_request(request, guard)
        denial = guard.denial_for(result)
        if denial is not None:
            if denial.redirect_to:
                return RedirectResponse(denial.redirect_to)
            return PlainTextResponse(denial.message, status_code=denial.status_code)
        return await call_next(request)

    @app.get("/")
    async def index(request: Request):
        return {"verdict": request.state.firewall.verdict.value}

    return app


@pytest.fixture
def guard():
    return FirewallGuard(DataRepository(MemoryEntryStore()), trust_forwarded_for=True)


@pytest.fixture
async def client(guard):
    transport = ASGITransport(app=_build_app(guard))
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_allowed_request_passes(client):
    resp = await client.get("/", headers={"x-forwarded-for": "8.8.8.8"})
    assert resp.status_code == 200
    assert resp.json() == {"verdict": Verdict.ALLOWED.value}


@pytest.mark.asyncio
async def test_blacklisted_request_blocked(client, guard):
    await guard.repository.add("6.6.6.0/24", ListType.BLACKLIST)
    resp = await client.get("/", headers={"x-forwarded-for": "6.6.6.6, 10.0.0.1"})
    assert resp.status_code == 403
    assert resp.text == "403 Forbidden"


@pytest.mark.asyncio
async def test_non_whitelisted_redirected(client, guard):
    guard.enforce_whitelist = True
    guard.redirect_non_whitelisted_to = "/denied"
    resp = await client.get("/", headers={"x-forwarded-for": "8.8.8.8"})
    assert resp.status_code == 307
    assert resp.headers["location"] == "/denied"


@pytest.mark.asyncio
async def test_forwarded_for_ignored_when_untrusted(client, guard):
    """Without trust, the socket peer address is checked, not the header."""
    guard.trust_forwarded_for = False
    await guard.repository.add("6.6.6.6", ListType.BLACKLIST)
    resp = await client.get("/", headers={"x-forwarded-for": "6.6.6.6"})
    assert resp.status_code == 200
