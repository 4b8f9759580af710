from __future__ import annotations
from functools import wraps
from flask import request, g

from services.auth_service import AuthService
from services.errors import Unauthorized


def bearer_token() -> str:
    """Return the bearer credential from the Authorization header."""
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing or invalid Authorization header")
    return token.strip()


def jwt_required():
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            g.current_user, _ = AuthService().authenticate(bearer_token())
            return fn(*args, **kwargs)

        return wrapper

    return decorator
