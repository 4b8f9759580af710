import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from client.errors import RefreshFailedError
from client.interceptor import AuthInterceptor, preemptive_margin
from client.session import ClientSession, MemoryStorage, SessionStore

pytestmark = pytest.mark.client

BASE_URL = "http://movies.test"


class FakeServer:
    """MockTransport handler: /api/movies accepts only the current access token."""

    def __init__(self, refresh_status=200, movies_status=None):
        self.valid_token = "access-2"
        self.refresh_status = refresh_status
        self.movies_status = movies_status
        self.refresh_calls = 0
        self.requests = []
        # (path, Authorization header) as each request arrived
        self.seen = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.record(request)
        await asyncio.sleep(0)
        if request.url.path == "/api/auth/refresh":
            self.refresh_calls += 1
            assert "Authorization" not in request.headers
            await asyncio.sleep(0.01)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"message": "Invalid refresh token."})
            return httpx.Response(
                200,
                json={
                    "token": self.valid_token,
                    "refreshToken": "refresh-1",
                    "email": "alice@example.com",
                    "expiresAt": (datetime.now(timezone.utc) + timedelta(minutes=5)).isoformat(),
                },
            )
        if request.url.path.startswith("/api/auth/"):
            return httpx.Response(200, json={"seen_auth": request.headers.get("Authorization")})
        if self.movies_status is not None:
            return httpx.Response(self.movies_status, json={"message": "boom"})
        if request.headers.get("Authorization") == f"Bearer {self.valid_token}":
            return httpx.Response(200, json={"data": []})
        return httpx.Response(401, json={"message": "Unauthorized"})

    def record(self, request):
        self.requests.append(request)
        self.seen.append((request.url.path, request.headers.get("Authorization")))

    def protected_calls(self):
        """Authorization header of each /api/movies call, as received."""
        return [auth for path, auth in self.seen if path == "/api/movies"]


def stored_session(expires_in=timedelta(minutes=5), token="access-1", refresh_token="refresh-1"):
    store = SessionStore(MemoryStorage())
    store.save(
        ClientSession(
            access_token=token,
            refresh_token=refresh_token,
            expires_at=datetime.now(timezone.utc) + expires_in,
            email="alice@example.com",
        )
    )
    return store


def run(server, sessions, scenario, expired_calls=None):
    async def main():
        async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(server)) as http:
            on_expired = (lambda: expired_calls.append(1)) if expired_calls is not None else None
            interceptor = AuthInterceptor(http, sessions, on_session_expired=on_expired)
            return await scenario(http, interceptor)

    return asyncio.run(main())


def get_movies(http, interceptor):
    return interceptor.send(http.build_request("GET", "/api/movies"))


def test_preemptive_margin_depends_on_remaining_lifetime():
    assert preemptive_margin(timedelta(seconds=90)) == timedelta(seconds=10)
    assert preemptive_margin(timedelta(minutes=5)) == timedelta(seconds=5)


def test_auth_endpoints_pass_through_untouched():
    server = FakeServer()
    sessions = stored_session()

    async def scenario(http, interceptor):
        return await interceptor.send(http.build_request("POST", "/api/auth/login", json={}))

    response = run(server, sessions, scenario)
    assert response.json() == {"seen_auth": None}


def test_valid_token_is_attached():
    server = FakeServer()
    server.valid_token = "access-1"
    response = run(server, stored_session(), get_movies)

    assert response.status_code == 200
    assert server.protected_calls()[0] == "Bearer access-1"
    assert server.refresh_calls == 0


def test_expired_token_is_not_attached_and_401_triggers_refresh():
    server = FakeServer()
    sessions = stored_session(expires_in=timedelta(seconds=-30))

    response = run(server, sessions, get_movies)

    assert server.protected_calls() == [None, "Bearer access-2"]
    assert response.status_code == 200
    assert server.refresh_calls == 1


def test_no_session_sends_anonymously_without_refresh():
    server = FakeServer()
    response = run(server, SessionStore(MemoryStorage()), get_movies)

    assert response.status_code == 401
    assert server.refresh_calls == 0
    assert len(server.protected_calls()) == 1


def test_token_about_to_expire_is_refreshed_before_sending():
    server = FakeServer()
    sessions = stored_session(expires_in=timedelta(seconds=3))

    response = run(server, sessions, get_movies)

    assert response.status_code == 200
    assert server.refresh_calls == 1
    assert len(server.protected_calls()) == 1
    assert server.protected_calls()[0] == "Bearer access-2"
    assert sessions.access_token == "access-2"
    assert sessions.refresh_token == "refresh-1"


def test_concurrent_401s_share_one_refresh():
    server = FakeServer()
    sessions = stored_session()

    async def scenario(http, interceptor):
        return await asyncio.gather(get_movies(http, interceptor), get_movies(http, interceptor))

    first, second = run(server, sessions, scenario)

    assert first.status_code == second.status_code == 200
    assert server.refresh_calls == 1
    assert len(server.protected_calls()) == 4


def test_burst_of_requests_near_expiry_refreshes_once():
    server = FakeServer()
    sessions = stored_session(expires_in=timedelta(seconds=4))

    async def scenario(http, interceptor):
        return await asyncio.gather(*(get_movies(http, interceptor) for _ in range(5)))

    responses = run(server, sessions, scenario)

    assert [r.status_code for r in responses] == [200] * 5
    assert server.refresh_calls == 1


def test_retry_happens_only_once():
    server = FakeServer()
    server.valid_token = "never-accepted"

    async def scenario(http, interceptor):
        return await get_movies(http, interceptor)

    original_handler = server.__call__

    async def always_401(request):
        if request.url.path == "/api/movies":
            server.record(request)
            return httpx.Response(401, json={"message": "Unauthorized"})
        return await original_handler(request)

    async def main():
        transport = httpx.MockTransport(always_401)
        async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http:
            interceptor = AuthInterceptor(http, stored_session())
            return await scenario(http, interceptor)

    response = asyncio.run(main())
    assert response.status_code == 401
    assert server.refresh_calls == 1
    assert len(server.protected_calls()) == 2


def test_failed_refresh_clears_session_and_returns_original_401():
    server = FakeServer(refresh_status=401)
    sessions = stored_session()
    expired = []

    response = run(server, sessions, get_movies, expired_calls=expired)

    assert response.status_code == 401
    assert response.json() == {"message": "Unauthorized"}
    assert sessions.get() is None
    assert sessions.refresh_token is None
    assert expired == [1]
    assert len(server.protected_calls()) == 1


def test_failed_refresh_fails_every_waiter():
    server = FakeServer(refresh_status=401)
    sessions = stored_session(expires_in=timedelta(seconds=4))
    expired = []

    async def scenario(http, interceptor):
        return await asyncio.gather(
            get_movies(http, interceptor), get_movies(http, interceptor), return_exceptions=True
        )

    outcomes = run(server, sessions, scenario, expired_calls=expired)

    assert all(isinstance(o, RefreshFailedError) for o in outcomes)
    assert server.refresh_calls == 1
    assert expired == [1]
    assert server.protected_calls() == []


def test_preemptive_refresh_without_refresh_token_signs_out():
    server = FakeServer()
    sessions = stored_session(expires_in=timedelta(seconds=4), refresh_token=None)
    expired = []

    with pytest.raises(RefreshFailedError):
        run(server, sessions, get_movies, expired_calls=expired)

    assert server.refresh_calls == 0
    assert expired == [1]
    assert sessions.get() is None


def test_other_errors_pass_through():
    server = FakeServer(movies_status=500)
    response = run(server, stored_session(), get_movies)

    assert response.status_code == 500
    assert server.refresh_calls == 0


def test_cancelled_request_leaves_the_refresh_running():
    server = FakeServer()
    sessions = stored_session(expires_in=timedelta(seconds=4))

    async def scenario(http, interceptor):
        doomed = asyncio.ensure_future(get_movies(http, interceptor))
        survivor = asyncio.ensure_future(get_movies(http, interceptor))
        await asyncio.sleep(0)
        assert interceptor.refreshing
        doomed.cancel()
        response = await survivor
        return doomed, response

    doomed, response = run(server, sessions, scenario)

    assert doomed.cancelled()
    assert response.status_code == 200
    assert server.refresh_calls == 1
    assert len(server.protected_calls()) == 1
    assert sessions.access_token == "access-2"


def test_callers_request_is_left_untouched():
    server = FakeServer()
    sessions = stored_session(expires_in=timedelta(seconds=-30))

    async def scenario(http, interceptor):
        request = http.build_request("POST", "/api/movies", json={"name": "Heat"})
        response = await interceptor.send(request)
        return request, response

    request, response = run(server, sessions, scenario)

    assert response.status_code == 200
    assert "Authorization" not in request.headers
    assert server.protected_calls() == [None, "Bearer access-2"]
    assert all(sent is not request for sent in server.requests)
    assert [sent.content for sent in server.requests if sent.url.path == "/api/movies"] == [
        request.content,
        request.content,
    ]
