from movielog import database
from movielog.migrations.cleanup_preferences import cleanup_preferences, main
from movielog.models.user_pref import UserPref


def test_legacy_keys_are_folded_into_list_keys(db_session, fake_tmdb, test_user, other_user):
    user_id = test_user.id
    db_session.add_all([
        UserPref(user_id=user_id, key="favorite_actors", value=["Brad Pitt"]),
        UserPref(user_id=user_id, key="favorite_actor", value={"name": "Tom Hanks"}),
        UserPref(user_id=user_id, key="favorite_genre", value="Drama"),
        UserPref(user_id=other_user.id, key="language", value="en"),
    ])
    db_session.commit()

    migrated = cleanup_preferences(db_session)

    assert migrated == {user_id: 2}
    rows = dict(db_session.query(UserPref.key, UserPref.value).filter(UserPref.user_id == user_id).all())
    assert rows == {"favorite_actors": ["Brad Pitt", "Tom Hanks"], "favorite_genres": ["Drama"]}
    assert db_session.query(UserPref).filter(UserPref.user_id == other_user.id).count() == 1


def test_nothing_to_migrate(db_session, fake_tmdb, test_user):
    assert cleanup_preferences(db_session) == {}


def test_main_runs_in_its_own_session(db_session, session_factory, fake_tmdb, test_user, monkeypatch):
    monkeypatch.setattr(database, "SessionLocal", session_factory)
    user_id = test_user.id
    db_session.add(UserPref(user_id=user_id, key="favorite_director", value="Christopher Nolan"))
    db_session.commit()

    assert main() == {user_id: 1}
    rows = dict(db_session.query(UserPref.key, UserPref.value).filter(UserPref.user_id == user_id).all())
    assert rows == {"favorite_directors": ["Christopher Nolan"]}
