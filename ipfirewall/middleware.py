"""
IP Firewall - Request surface for FastAPI / Starlette apps.

The hosting app calls ``guard_request`` from its own middleware or
dependency and decides how to answer a blocked verdict, e.g.:

    @app.middleware("http")
    async def firewall(request, call_next):
        result = await guard_request(request, guard)
        denial = guard.denial_for(result)
        if denial is not None:
            return Response(denial.message, status_code=denial.status_code)
        return await call_next(request)
"""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from ipfirewall.guard import FirewallGuard, GuardResult


def get_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Extract the client IP, optionally respecting X-Forwarded-For."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "0.0.0.0"


async def guard_request(
    request: Request,
    guard: FirewallGuard,
    trust_forwarded_for: Optional[bool] = None,
) -> GuardResult:
    """Check the request's client address; the result is also kept on ``request.state.firewall``."""
    if trust_forwarded_for is None:
        trust_forwarded_for = guard.trust_forwarded_for
    result = await guard.check(get_client_ip(request, trust_forwarded_for))
    request.state.firewall = result
    return result
