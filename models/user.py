"""
User model: identity record plus the single active refresh token.

refresh_token and refresh_token_expiry are either both set or both null;
change them only through set_refresh_token() / clear_refresh_token().
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, String, DateTime

from models.base_model import Base, BaseModel, as_utc


class User(BaseModel, Base):
    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    # plaintext opaque value; indexed as a lookup key, not unique
    refresh_token = Column(String(255), nullable=True, index=True)
    refresh_token_expiry = Column(DateTime(timezone=True), nullable=True)

    @property
    def password(self):
        raise AttributeError("Password: Write-only field")

    def set_refresh_token(self, token: str, expiry: datetime) -> None:
        self.refresh_token = token
        self.refresh_token_expiry = expiry

    def clear_refresh_token(self) -> None:
        self.refresh_token = None
        self.refresh_token_expiry = None

    def refresh_token_expired(self, now: datetime) -> bool:
        expiry = as_utc(self.refresh_token_expiry)
        return expiry is None or expiry <= now

    def __repr__(self):
        return f"<User {self.email}>"
