import pytest
from sqlalchemy.exc import OperationalError

from models import storage, StoreError, StoreErrorKind
from models.movie import Movie
from models.seed import STARTER_MOVIES, seed_movies
from models.user import User


def database_down(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("database is locked"))


@pytest.fixture()
def rollbacks(app, monkeypatch):
    calls = []
    # the thread's Session behind the scoped_session proxy
    session = storage.get_session()()
    monkeypatch.setattr(session, "rollback", lambda: calls.append(1))
    return calls


@pytest.mark.parametrize(
    "method,lookup",
    [
        ("query", lambda: storage.get_user_by_email("alice@example.com")),
        ("query", lambda: storage.get_user_by_refresh_token("some-token")),
        ("get", lambda: storage.get(User, "some-id")),
    ],
)
def test_failed_read_rolls_back(monkeypatch, rollbacks, method, lookup):
    monkeypatch.setattr(storage.get_session()(), method, database_down)

    with pytest.raises(StoreError) as excinfo:
        lookup()

    assert excinfo.value.kind is StoreErrorKind.UNAVAILABLE
    assert rollbacks == [1]


def test_seed_fills_an_empty_catalogue_once(app):
    assert seed_movies(storage) == len(STARTER_MOVIES)
    assert seed_movies(storage) == 0

    assert storage.count(Movie) == 8
    names = {movie.name for movie in storage.get_session().query(Movie)}
    assert {"Inception", "The Matrix", "Goodfellas"} <= names


def test_testing_config_starts_with_no_movies(client):
    assert client.get("/api/movies").get_json()["meta"]["total"] == 0
