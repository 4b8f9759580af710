"""
Async client for the Movie Library API: session storage, transparent token
refresh and the auth calls.
"""
from client.auth_client import AuthClient, refresh_delay
from client.errors import AuthRequestError, RefreshFailedError
from client.interceptor import AuthInterceptor
from client.session import ClientSession, FileStorage, MemoryStorage, SessionStore
from client.single_flight import SingleFlight

__all__ = [
    "AuthClient",
    "AuthInterceptor",
    "AuthRequestError",
    "ClientSession",
    "FileStorage",
    "MemoryStorage",
    "RefreshFailedError",
    "SessionStore",
    "SingleFlight",
    "refresh_delay",
]
