"""Rate limiting singleton using slowapi, keyed by client IP."""

from fastapi import Request
from slowapi import Limiter

from .config import settings


def client_ip(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For from the reverse proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=client_ip)

# Applied to sign-in, sign-up and forgot-password submissions
auth_limit = settings.rate_limit_auth
