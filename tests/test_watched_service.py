"""
Watched Service Tests
=====================
The watch transition, re-rating, the release gate and the history read.
"""
from datetime import date

import pytest

from movielog.exceptions import BusinessRuleError
from movielog.models.movie import Movie
from movielog.models.watched import Watched
from movielog.models.watchlist import Watchlist
from movielog.schemas.watched import MarkAsWatchedInput
from movielog.services.watched_service import WatchedService
from movielog.services.watchlist_service import WatchlistService


def _watch(db, user_id, tmdb_id, rating, notes=None):
    return WatchedService.mark_as_watched(db, user_id, MarkAsWatchedInput(tmdb_id=tmdb_id, rating=rating, notes=notes))


def _pair_counts(db, user_id, tmdb_id):
    movie_id = db.query(Movie.id).filter(Movie.tmdb_id == tmdb_id).scalar()
    in_watchlist = db.query(Watchlist).filter(Watchlist.user_id == user_id, Watchlist.movie_id == movie_id).count()
    watched = db.query(Watched).filter(Watched.user_id == user_id, Watched.movie_id == movie_id).count()
    return in_watchlist, watched


def test_watch_transition_clears_watchlist(db_session, fake_tmdb, test_user):
    user_id = test_user.id
    WatchlistService.add_to_watchlist(db_session, user_id, 550)

    result = _watch(db_session, user_id, 550, 4)

    assert result["previously_in_watchlist"] is True
    assert result["updated"] is False
    assert WatchlistService.get_watchlist(db_session, user_id) == []
    history = WatchedService.get_watched_movies(db_session, user_id)
    assert [(item.tmdb_id, item.user_rating) for item in history] == [(550, 4)]


def test_mark_as_watched_without_watchlist_entry(db_session, fake_tmdb, test_user):
    result = _watch(db_session, test_user.id, 603, 5)

    assert result["previously_in_watchlist"] is False
    assert result["message"] == "Movie marked as watched."


def test_re_rating_updates_in_place(db_session, fake_tmdb, test_user):
    user_id = test_user.id
    _watch(db_session, user_id, 680, 2, "meh")

    result = _watch(db_session, user_id, 680, 5, "grew on me")

    assert result["updated"] is True
    rows = db_session.query(Watched).filter(Watched.user_id == user_id).all()
    assert len(rows) == 1
    assert rows[0].rating == 5
    assert rows[0].notes == "grew on me"


def test_unreleased_movie_is_rejected_and_rolled_back(db_session, fake_tmdb, test_user):
    user_id = test_user.id
    WatchlistService.add_to_watchlist(db_session, user_id, 999001)

    with pytest.raises(BusinessRuleError) as exc_info:
        _watch(db_session, user_id, 999001, 5)

    assert "hasn't been released yet" in exc_info.value.message
    assert _pair_counts(db_session, user_id, 999001) == (1, 0)


def test_check_released_accepts_missing_or_past_dates():
    today = date(2024, 6, 1)
    WatchedService.check_released({"title": "Old", "release_date": "1999-10-15"}, today=today)
    WatchedService.check_released({"title": "Today", "release_date": "2024-06-01"}, today=today)
    WatchedService.check_released({"title": "Unknown", "release_date": None}, today=today)
    WatchedService.check_released({"title": "Garbage", "release_date": "soon"}, today=today)

    with pytest.raises(BusinessRuleError):
        WatchedService.check_released({"title": "Tomorrow", "release_date": "2024-06-02"}, today=today)


def test_get_watched_movies_min_rating(db_session, fake_tmdb, test_user, other_user):
    user_id = test_user.id
    _watch(db_session, user_id, 550, 5)
    _watch(db_session, user_id, 603, 3)
    _watch(db_session, user_id, 680, 4)
    _watch(db_session, other_user.id, 13, 5)

    all_movies = WatchedService.get_watched_movies(db_session, user_id)
    favourites = WatchedService.get_watched_movies(db_session, user_id, min_rating=4)

    assert {item.tmdb_id for item in all_movies} == {550, 603, 680}
    assert {item.tmdb_id for item in favourites} == {550, 680}
    assert all(item.user_rating >= 4 for item in favourites)


def test_mutual_exclusion_over_a_sequence(db_session, fake_tmdb, test_user):
    user_id = test_user.id

    WatchlistService.add_to_watchlist(db_session, user_id, 550)
    assert _pair_counts(db_session, user_id, 550) == (1, 0)

    _watch(db_session, user_id, 550, 4)
    assert _pair_counts(db_session, user_id, 550) == (0, 1)

    with pytest.raises(BusinessRuleError):
        WatchlistService.add_to_watchlist(db_session, user_id, 550)
    assert _pair_counts(db_session, user_id, 550) == (0, 1)

    WatchlistService.remove_from_watchlist(db_session, user_id, 550)
    _watch(db_session, user_id, 550, 2)
    assert _pair_counts(db_session, user_id, 550) == (0, 1)


def test_re_rating_clears_stray_watchlist_row(db_session, fake_tmdb, test_user):
    """Even a pre-existing inconsistent pair is repaired by the next watch"""
    user_id = test_user.id
    _watch(db_session, user_id, 603, 3)
    movie_id = db_session.query(Movie.id).filter(Movie.tmdb_id == 603).scalar()
    db_session.add(Watchlist(user_id=user_id, movie_id=movie_id))
    db_session.commit()

    result = _watch(db_session, user_id, 603, 4)

    assert result["updated"] is True
    assert result["previously_in_watchlist"] is True
    assert _pair_counts(db_session, user_id, 603) == (0, 1)


def test_concurrent_first_watch_refreshes_instead_of_failing(db_session, second_session, fake_tmdb, test_user, monkeypatch):
    """Another request records the same watch between our lookup and our write"""
    user_id = test_user.id
    db_session.add(Movie(tmdb_id=550, title="Fight Club"))
    db_session.commit()

    original_find = WatchedService._find_watched_id
    raced = []

    def find_then_race(db, uid, movie_id):
        result = original_find(db, uid, movie_id)
        if not raced:
            raced.append(True)
            _watch(second_session, uid, 550, 2, "other request")
        return result

    monkeypatch.setattr(WatchedService, "_find_watched_id", staticmethod(find_then_race))

    result = _watch(db_session, user_id, 550, 5, "this request")

    assert raced == [True]
    assert result["rating"] == 5
    rows = db_session.query(Watched.rating, Watched.notes).filter(Watched.user_id == user_id).all()
    assert [(row.rating, row.notes) for row in rows] == [(5, "this request")]
