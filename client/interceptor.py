"""
Request interceptor: keeps token renewal invisible to callers.

For every request that is not itself an auth call the interceptor
1. refreshes first when the access token is about to expire,
2. otherwise attaches the stored access token while it is valid,
3. on a 401 refreshes once and replays the request with the new token.

Every refresh goes through one SingleFlight, so a burst of requests racing on
an expired token produces a single call to the refresh endpoint. A refresh
that fails clears the session and calls on_session_expired, the client's way
back to the login entry point.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from client.errors import RefreshFailedError
from client.session import ClientSession, SessionStore, utcnow
from client.single_flight import SingleFlight

logger = logging.getLogger(__name__)

AUTH_PATHS = ("/auth/login", "/auth/register", "/auth/refresh")

# Tokens with less than this left are "short": refresh them with a wider margin
SHORT_TOKEN = timedelta(minutes=2)
SHORT_TOKEN_MARGIN = timedelta(seconds=10)
LONG_TOKEN_MARGIN = timedelta(seconds=5)


def preemptive_margin(remaining: timedelta) -> timedelta:
    return SHORT_TOKEN_MARGIN if remaining < SHORT_TOKEN else LONG_TOKEN_MARGIN


def is_auth_endpoint(url: httpx.URL) -> bool:
    path = url.path.rstrip("/")
    return any(path.endswith(suffix) for suffix in AUTH_PATHS)


def error_body(response: httpx.Response) -> dict:
    """The JSON error envelope of a response, or {} when there is none."""
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def error_message(response: httpx.Response) -> str:
    return str(error_body(response).get("message") or response.reason_phrase)


class AuthInterceptor:
    def __init__(
        self,
        http: httpx.AsyncClient,
        sessions: SessionStore,
        refresh_url: str = "/api/auth/refresh",
        on_session_expired: Optional[Callable[[], None]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.http = http
        self.sessions = sessions
        self.refresh_url = refresh_url
        self.on_session_expired = on_session_expired
        self.clock = clock or utcnow
        self._flight: SingleFlight[ClientSession] = SingleFlight()

    @property
    def refreshing(self) -> bool:
        return self._flight.pending

    async def send(self, request: httpx.Request, **kwargs) -> httpx.Response:
        if is_auth_endpoint(request.url):
            return await self.http.send(request, **kwargs)

        session = self.sessions.get()
        token = None
        if session is not None:
            now = self.clock()
            remaining = session.expires_at - now
            if timedelta(0) < remaining < preemptive_margin(remaining):
                logger.info(
                    "Token expires in %ds, triggering preemptive refresh", remaining.total_seconds()
                )
                token = (await self.refresh()).access_token
            elif self.sessions.is_access_token_valid(now):
                token = session.access_token

        response = await self.http.send(self._prepare(request, token), **kwargs)

        # a stored token, attached or expired, means the session is worth renewing
        if response.status_code != 401 or session is None:
            return response

        current = self.sessions.access_token
        if current and current != token and self.sessions.is_access_token_valid():
            logger.debug("Token was renewed while the request was in flight, replaying")
            new_token = current
        else:
            logger.info("Received 401, attempting token refresh")
            try:
                new_token = (await self.refresh()).access_token
            except RefreshFailedError:
                return response

        await response.aclose()
        return await self.http.send(self._prepare(request, new_token), **kwargs)

    async def close(self) -> None:
        """Cancel a refresh still in flight."""
        await self._flight.cancel()

    async def refresh(self) -> ClientSession:
        """Renew the session, joining a refresh already in flight if there is one."""
        return await self._flight.do(self._refresh)

    async def _refresh(self) -> ClientSession:
        refresh_token = self.sessions.refresh_token
        if not refresh_token:
            self._expire("No refresh token available")
            raise RefreshFailedError("No refresh token available")

        try:
            response = await self.http.post(self.refresh_url, json={"refreshToken": refresh_token})
        except httpx.HTTPError as exc:
            self._expire(f"refresh request failed: {exc}")
            raise RefreshFailedError("Token refresh request failed") from exc

        if response.status_code != 200:
            message = error_message(response)
            self._expire(message)
            raise RefreshFailedError(message, status=response.status_code)

        try:
            session = ClientSession.from_response(response.json())
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            self._expire("malformed refresh response")
            raise RefreshFailedError("Token refresh failed") from exc

        self.sessions.save(session)
        logger.info("Token refresh successful")
        return session

    def _expire(self, reason: str) -> None:
        logger.warning("Clearing session after failed refresh: %s", reason)
        self.sessions.clear()
        if self.on_session_expired is not None:
            self.on_session_expired()

    @staticmethod
    def _prepare(request: httpx.Request, token: Optional[str]) -> httpx.Request:
        """A copy of the caller's request, carrying the bearer token when there is one."""
        headers = request.headers.copy()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )
