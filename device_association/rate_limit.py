"""Rate limiting global / Global rate limiter.

Cle = utilisateur de la passerelle (header user-id), sinon IP.
Key = gateway user (user-id header), falling back to the client IP.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request


def user_or_address(request: Request) -> str:
    user_id = request.headers.get("user-id", "").strip()
    return f"user:{user_id}" if user_id else get_remote_address(request)


limiter = Limiter(key_func=user_or_address)
