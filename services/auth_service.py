"""
Authentication service: register, login, refresh, logout, current user.

Token policy:
- access tokens are short-lived JWTs, nothing about them is stored
- each user has at most one refresh token; login replaces it
- refresh extends the refresh token's expiry but keeps its value, so
  duplicate or racing refresh calls with the same token all succeed
- logout clears the refresh token
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from marshmallow import ValidationError

import models
from models import StoreError, StoreErrorKind
from models.schemas.user import LoginSchema, RefreshSchema, RegisterSchema
from models.user import User
from services.errors import AuthValidationError, Conflict, InternalError, NotFound, Unauthorized
from utils.security import (
    create_access_token,
    generate_refresh_token,
    hash_password,
    refresh_token_expiry,
    verify_access_token,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."
EMAIL_TAKEN = "User with this email already exists."

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()


@dataclass(frozen=True)
class AuthResult:
    token: str
    refresh_token: str
    email: str
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _preview(token: str) -> str:
    return (token or "")[:10] + "..."


class AuthService:
    def __init__(self, store=None, clock: Optional[Callable[[], datetime]] = None):
        self.store = store if store is not None else models.storage
        self.clock = clock or _utcnow

    @contextmanager
    def _store_guard(self, action: str, duplicate: Optional[Exception] = None):
        """Turn store failures into service errors without leaking details."""
        try:
            yield
        except StoreError as err:
            if duplicate is not None and err.kind is StoreErrorKind.DUPLICATE:
                raise duplicate from err
            logger.exception("Store failure during %s", action)
            raise InternalError(f"An error occurred during {action}.") from err

    def _issue(self, user: User, now: datetime, rotate: bool) -> AuthResult:
        token, expires_at = create_access_token(user, now)
        value = generate_refresh_token() if rotate else user.refresh_token
        user.set_refresh_token(value, refresh_token_expiry(now))
        return AuthResult(
            token=token,
            refresh_token=user.refresh_token,
            email=user.email,
            expires_at=expires_at,
        )

    def register(self, email: str, password: str, confirm_password: str) -> AuthResult:
        try:
            data = register_schema.load(
                {"email": email, "password": password, "confirmPassword": confirm_password}
            )
        except ValidationError as err:
            raise AuthValidationError("Invalid registration data.", details=err.messages) from err

        with self._store_guard("registration"):
            existing = self.store.get_user_by_email(data["email"])
        if existing is not None:
            logger.info("Registration rejected: email already registered")
            raise Conflict(EMAIL_TAKEN)

        now = self.clock()
        user = User(email=data["email"], password_hash=hash_password(data["password"]), created_at=now)
        result = self._issue(user, now, rotate=True)
        with self._store_guard("registration", duplicate=Conflict(EMAIL_TAKEN)):
            self.store.new(user)
            self.store.save()
        logger.info("Registered user %s", user.id)
        return result

    def login(self, email: str, password: str) -> AuthResult:
        try:
            data = login_schema.load({"email": email, "password": password})
        except ValidationError as err:
            raise AuthValidationError("Email and password are required.", details=err.messages) from err

        with self._store_guard("login"):
            user = self.store.get_user_by_email(data["email"])
        # same answer for unknown email and wrong password
        if user is None or not verify_password(data["password"], user.password_hash):
            logger.warning("Failed login attempt")
            raise Unauthorized(INVALID_CREDENTIALS)

        now = self.clock()
        user.last_login_at = now
        result = self._issue(user, now, rotate=True)
        with self._store_guard("login"):
            self.store.new(user)
            self.store.save()
        logger.info("User %s logged in", user.id)
        return result

    def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        try:
            refresh_token = refresh_schema.load({"refreshToken": refresh_token})["refresh_token"]
        except ValidationError as err:
            raise AuthValidationError("Refresh token is required.", details=err.messages) from err

        with self._store_guard("token refresh"):
            user = self.store.get_user_by_refresh_token(refresh_token)
        if user is None:
            logger.warning("No user found with refresh token %s", _preview(refresh_token))
            raise Unauthorized("Invalid refresh token.")

        now = self.clock()
        if user.refresh_token_expired(now):
            logger.warning("Refresh token expired for user %s", user.id)
            raise Unauthorized("Refresh token expired.")

        result = self._issue(user, now, rotate=False)
        with self._store_guard("token refresh"):
            self.store.new(user)
            self.store.save()
        logger.info("Refreshed access token for user %s", user.id)
        return result

    def logout(self, user_id: str) -> None:
        with self._store_guard("logout"):
            user = self.store.get(User, user_id)
            if user is None or user.refresh_token is None:
                return
            user.clear_refresh_token()
            self.store.new(user)
            self.store.save()
        logger.info("User %s logged out", user_id)

    def current_user(self, claims: Optional[Dict[str, Any]]) -> User:
        if not claims or not claims.get("sub"):
            raise Unauthorized("Invalid token.")
        with self._store_guard("user lookup"):
            user = self.store.get(User, claims["sub"])
        if user is None:
            raise NotFound("User not found.")
        return user

    def authenticate(self, token: Optional[str]) -> Tuple[User, Dict[str, Any]]:
        """Verify a bearer access token and load its subject."""
        claims = verify_access_token(token)
        if claims is None:
            raise Unauthorized("Invalid or expired token.")
        return self.current_user(claims), claims
