"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Access token creation/verification via PyJWT
- Opaque refresh token generation
"""
from __future__ import annotations

import base64
import secrets
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Tuple

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from flask import current_app

REFRESH_TOKEN_BYTES = 64

ph = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _now() -> datetime:
    # JWT numeric dates have second precision; keep expiresAt in step with "exp"
    return datetime.now(timezone.utc).replace(microsecond=0)


def access_token_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or _now()) + current_app.config["ACCESS_TOKEN_EXPIRES"]


def refresh_token_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or _now()) + current_app.config["REFRESH_TOKEN_EXPIRES"]


def create_access_token(user, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """
    Sign a short-lived access token for `user`.
    Returns the encoded token and its expiry.
    """
    issued = (now or _now()).replace(microsecond=0)
    exp = access_token_expiry(issued)
    payload = {
        "iss": current_app.config["JWT_ISSUER"],
        "aud": current_app.config["JWT_AUDIENCE"],
        "sub": str(user.id),
        "email": user.email,
        "jti": generate_jti(),
        "iat": int(issued.timestamp()),
        "nbf": int(issued.timestamp()),
        "exp": int(exp.timestamp()),
    }
    token = jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])
    return token, exp


def generate_refresh_token() -> str:
    """64 random bytes, base64 encoded. Carries no user information."""
    return base64.b64encode(secrets.token_bytes(REFRESH_TOKEN_BYTES)).decode("ascii")


def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate an access token: signature, issuer, audience and the
    exp/nbf window with no leeway. Returns the claims, or None when the token
    is malformed, forged or outside its window.
    """
    if not token:
        return None
    try:
        return jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            audience=current_app.config["JWT_AUDIENCE"],
            issuer=current_app.config["JWT_ISSUER"],
            leeway=0,
            options={"require": ["exp", "iat", "nbf", "sub", "jti"]},
        )
    except jwt.InvalidTokenError:
        return None
