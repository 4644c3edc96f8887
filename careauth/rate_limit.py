"""
Global slowapi rate limiter.

Requests are keyed by the proxy-aware client IP, the same address that is
written to the audit logs.  Storage is Redis when REDIS_URL is set, memory
otherwise.  RATE_LIMIT_ENABLED=false turns every limit off.
"""
import os

from slowapi import Limiter
from starlette.requests import Request

from careauth.auth.utils import client_ip


def rate_limit_key(request: Request) -> str:
    return client_ip(request) or "unknown"


limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri=os.getenv("REDIS_URL") or "memory://",
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").lower() not in {"0", "false", "no"},
)
