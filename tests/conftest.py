import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from movielog.database import Base
from movielog.exceptions import ProviderError
from movielog.models.user import User
from movielog.services.tmdb_service import TMDBService
from movielog.utils.cache import MemoryCacheStore, get_cache_store, set_cache_store

SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Stand-in TMDB catalogue keyed by tmdb_id
MOVIES = {
    550: {"title": "Fight Club", "year": 1999, "release_date": "1999-10-15", "rating": 8.4},
    603: {"title": "The Matrix", "year": 1999, "release_date": "1999-03-30", "rating": 8.2},
    680: {"title": "Pulp Fiction", "year": 1994, "release_date": "1994-09-10", "rating": 8.5},
    13: {"title": "Forrest Gump", "year": 1994, "release_date": "1994-06-23", "rating": 8.5},
    999001: {"title": "Unreleased Sequel", "year": 2999, "release_date": "2999-01-01", "rating": 0.0},
}

PEOPLE = {
    "Tom Hanks": 31,
    "Brad Pitt": 287,
    "Christopher Nolan": 525,
}


def fake_movie_details(tmdb_id):
    if tmdb_id not in MOVIES:
        raise ProviderError(f"TMDB resource not found: /movie/{tmdb_id}", status_code=404)
    movie = MOVIES[tmdb_id]
    return {
        "tmdb_id": tmdb_id,
        "title": movie["title"],
        "year": movie["year"],
        "release_date": movie["release_date"],
        "overview": f"Overview of {movie['title']}",
        "poster_url": f"https://image.tmdb.org/t/p/w500/{tmdb_id}.jpg",
        "backdrop_url": None,
        "rating": movie["rating"],
        "genres": [],
        "director": None,
        "cast": [],
    }


def fake_search_people(name):
    if name not in PEOPLE:
        raise ProviderError("TMDB API error: timed out")
    person_id = PEOPLE[name]
    return [{
        "id": person_id,
        "name": name,
        "known_for": "Acting",
        "profile_url": f"https://image.tmdb.org/t/p/w185/{person_id}.jpg",
    }]


@pytest.fixture
def db_session():
    """Provide a clean database session for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def memory_cache():
    """Fresh in-process cache per test so results never leak between tests."""
    previous = get_cache_store()
    store = MemoryCacheStore(max_size=100)
    set_cache_store(store)
    yield store
    set_cache_store(previous)


@pytest.fixture
def fake_tmdb(monkeypatch):
    """Replace every TMDB lookup with the local catalogue; records calls."""
    calls = {"details": [], "people": []}

    def get_movie_details(cls, tmdb_id):
        calls["details"].append(tmdb_id)
        return fake_movie_details(tmdb_id)

    def search_people(cls, name):
        calls["people"].append(name)
        return fake_search_people(name)

    monkeypatch.setattr(TMDBService, "get_movie_details", classmethod(get_movie_details))
    monkeypatch.setattr(TMDBService, "search_people", classmethod(search_people))
    return calls


@pytest.fixture
def test_user(db_session):
    """Create a test user"""
    user = User(email="testuser@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_user(db_session):
    user = User(email="other@example.com")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test database (shares db_session's schema)."""
    return TestingSessionLocal


@pytest.fixture
def second_session(db_session):
    """A second, independent session, standing in for a concurrent request."""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
