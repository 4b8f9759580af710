"""
Async client for the Movie Library API.

AuthClient signs in, keeps the session in a SessionStore and sends every
other call through an AuthInterceptor. While a session with a refresh token
is stored, a timer task renews it ahead of expiry; the timer is rescheduled
whenever the session is replaced and cancelled when it is cleared. Entering
the client as a context manager picks up a session saved by an earlier run.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from client.errors import AuthRequestError, RefreshFailedError
from client.interceptor import AuthInterceptor, error_body, error_message
from client.session import ClientSession, SessionStore, utcnow

logger = logging.getLogger(__name__)

SHORT_TOKEN_SECONDS = 120.0
SHORT_TOKEN_FRACTION = 0.7
LONG_TOKEN_LEAD_SECONDS = 60.0
MIN_REFRESH_DELAY_SECONDS = 2.0


def refresh_delay(remaining: timedelta) -> float:
    """
    Seconds to wait before renewing a token with `remaining` lifetime left.
    Short tokens renew at 70% of what is left, longer ones a minute before
    expiry, never sooner than two seconds. Expired tokens renew right away.
    """
    seconds = remaining.total_seconds()
    if seconds <= 0:
        return 0.0
    if seconds < SHORT_TOKEN_SECONDS:
        return max(seconds * SHORT_TOKEN_FRACTION, MIN_REFRESH_DELAY_SECONDS)
    return max(seconds - LONG_TOKEN_LEAD_SECONDS, MIN_REFRESH_DELAY_SECONDS)


class AuthClient:
    def __init__(
        self,
        base_url: str = "http://localhost:5176",
        sessions: Optional[SessionStore] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_session_expired: Optional[Callable[[], None]] = None,
        timeout: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
        auto_refresh: bool = True,
    ):
        self.clock = clock or utcnow
        self.sessions = sessions if sessions is not None else SessionStore(clock=self.clock)
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.interceptor = AuthInterceptor(
            self.http,
            self.sessions,
            refresh_url="/api/auth/refresh",
            on_session_expired=on_session_expired,
            clock=self.clock,
        )
        self.auto_refresh = auto_refresh
        self._timer: Optional[asyncio.Task] = None
        self.sessions.subscribe(self._on_session_changed)

    async def __aenter__(self) -> "AuthClient":
        self.restore()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        self.sessions.unsubscribe(self._on_session_changed)
        self._cancel_timer()
        await self.interceptor.close()
        await self.http.aclose()

    def restore(self) -> Optional[ClientSession]:
        """
        Pick up a session left in storage by an earlier run. An expired one
        that cannot be renewed is cleared; anything else gets its refresh
        timer, which renews an expired session right away.
        """
        session = self.sessions.get()
        if session is None:
            return None
        if session.expires_at <= self.clock() and not session.refresh_token:
            logger.info("Stored session expired and cannot be renewed, clearing it")
            self.sessions.clear()
            return None
        self._on_session_changed(session)
        return session

    # -------------------------------
    # Auth calls
    # -------------------------------
    async def _authenticate(self, path: str, payload: dict) -> ClientSession:
        response = await self.http.post(path, json=payload)
        if response.status_code != 200:
            raise AuthRequestError(
                response.status_code, error_message(response), error_body(response).get("details")
            )
        session = ClientSession.from_response(response.json())
        self.sessions.save(session)
        return session

    async def register(self, email: str, password: str, confirm_password: str) -> ClientSession:
        return await self._authenticate(
            "/api/auth/register",
            {"email": email, "password": password, "confirmPassword": confirm_password},
        )

    async def login(self, email: str, password: str) -> ClientSession:
        return await self._authenticate("/api/auth/login", {"email": email, "password": password})

    async def refresh(self) -> ClientSession:
        return await self.interceptor.refresh()

    async def logout(self) -> httpx.Response:
        """Tell the server, then drop the local session whatever it answered."""
        try:
            return await self.request("POST", "/api/auth/logout")
        finally:
            self.sessions.clear()

    async def me(self) -> dict:
        response = await self.request("GET", "/api/auth/me")
        if response.status_code == 401:
            self.sessions.clear()
        if response.status_code != 200:
            raise AuthRequestError(response.status_code, error_message(response))
        return response.json()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send an ordinary API call through the interceptor."""
        request = self.http.build_request(method, url, **kwargs)
        return await self.interceptor.send(request)

    # -------------------------------
    # Proactive refresh timer
    # -------------------------------
    @property
    def refresh_scheduled(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done():
            timer.cancel()

    def _on_session_changed(self, session: Optional[ClientSession]) -> None:
        self._cancel_timer()
        if session is None or not session.refresh_token or not self.auto_refresh:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, automatic refresh not scheduled")
            return
        delay = refresh_delay(session.expires_at - self.clock())
        logger.debug("Scheduling token refresh in %.1fs", delay)
        self._timer = loop.create_task(self._refresh_later(delay))

    async def _refresh_later(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # no longer pending: the session change this refresh causes schedules
        # the next timer instead of cancelling this one
        self._timer = None
        logger.info("Automatic token refresh triggered")
        try:
            await self.interceptor.refresh()
        except RefreshFailedError as exc:
            # the interceptor already cleared the session
            logger.warning("Automatic token refresh failed: %s", exc)
