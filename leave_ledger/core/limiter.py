from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from leave_ledger.core.config import settings


def actor_or_address(request: Request) -> str:
    """Rate-limit per gateway identity, falling back to the client address."""
    actor_id = (request.headers.get("X-Actor-Id") or "").strip()
    if actor_id:
        tenant_id = request.headers.get(settings.tenant_header) or settings.default_tenant_id
        return f"{tenant_id}:{actor_id}"
    return get_remote_address(request)


def write_limit() -> str:
    return f"{settings.rate_limit_per_minute}/minute"


limiter = Limiter(key_func=actor_or_address, enabled=settings.rate_limit_enabled)
