"""
Preference Service - store, merge and read user preferences.

Keys come in three flavours:
- person lists (favorite_actors, favorite_directors): merged, deduplicated
  by canonical name, stored as plain strings
- plain lists (favorite_genres): merged, deduplicated, stored as strings
- everything else: last write wins

A list preference never stores an empty list; the row is deleted instead.
The per-user read is cached and invalidated after every committed write.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Any, Dict, Iterable, List
from datetime import datetime, timezone
import logging
import os

from movielog.database import transaction, dialect_insert
from movielog.exceptions import BusinessRuleError
from movielog.models.user_pref import UserPref
from movielog.schemas.preferences import PreferenceItem
from movielog.services.person_enrichment import normalize_entity, normalize_person_names, enrich_person_names
from movielog.utils.cache import cache_get, cache_set, cache_delete

logger = logging.getLogger(__name__)

PERSON_KEYS = ("favorite_actors", "favorite_directors")
LIST_KEYS = PERSON_KEYS + ("favorite_genres",)

PREFERENCES_CACHE_TTL = int(os.getenv("PREFERENCES_CACHE_TTL", 300))


def preferences_cache_key(user_id: int) -> str:
    return f"user:{user_id}:preferences"


def merge_values(existing: Iterable[Any], incoming: Iterable[Any]) -> List[str]:
    """
    Union of two lists by canonical string: existing order first, then
    unseen incoming values in the order given.
    """
    merged: List[str] = []
    seen = set()
    for value in list(existing) + list(incoming):
        name = normalize_entity(value)
        if name in seen:
            continue
        seen.add(name)
        merged.append(name)
    return merged


class PreferenceService:
    """Service for user preference operations"""

    @staticmethod
    def _read_value_for_update(db: Session, user_id: int, key: str):
        # Column query: bypasses the identity map so earlier writes in this
        # transaction are always visible
        return db.query(UserPref.value).filter(
            UserPref.user_id == user_id,
            UserPref.key == key
        ).with_for_update().first()

    @staticmethod
    def _lock_list_value(db: Session, user_id: int, key: str, now: datetime) -> List[Any]:
        """
        Lock the row for a list key and return its stored list.

        A missing row is created first as an empty placeholder, so the lock
        always has a row to hold and a concurrent first write waits for it.
        The caller must replace or delete the placeholder before commit.
        """
        insert = dialect_insert(db)
        if insert is not None:
            db.execute(
                insert(UserPref)
                .values(user_id=user_id, key=key, value=[], updated_at=now)
                .on_conflict_do_nothing(index_elements=["user_id", "key"])
            )
        else:
            try:
                with db.begin_nested():
                    db.add(UserPref(user_id=user_id, key=key, value=[], updated_at=now))
            except IntegrityError:
                logger.debug(f"Preference {key} for user {user_id} already exists")

        row = PreferenceService._read_value_for_update(db, user_id, key)
        return row.value if isinstance(row.value, list) else []

    @staticmethod
    def _upsert(db: Session, user_id: int, key: str, value: Any, now: datetime) -> None:
        insert = dialect_insert(db)
        if insert is not None:
            stmt = insert(UserPref).values(user_id=user_id, key=key, value=value, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "key"],
                set_={"value": stmt.excluded["value"], "updated_at": stmt.excluded["updated_at"]},
            )
            db.execute(stmt)
            return

        if not PreferenceService._update(db, user_id, key, value, now):
            db.add(UserPref(user_id=user_id, key=key, value=value, updated_at=now))
            db.flush()

    @staticmethod
    def _update(db: Session, user_id: int, key: str, value: Any, now: datetime) -> int:
        return db.query(UserPref).filter(
            UserPref.user_id == user_id,
            UserPref.key == key
        ).update({"value": value, "updated_at": now}, synchronize_session=False)

    @staticmethod
    def _delete(db: Session, user_id: int, key: str) -> bool:
        deleted = db.query(UserPref).filter(
            UserPref.user_id == user_id,
            UserPref.key == key
        ).delete(synchronize_session=False)
        return deleted > 0

    @staticmethod
    def set_preferences(db: Session, user_id: int, items: List[PreferenceItem]) -> List[Dict]:
        """
        Store every key/value pair in one transaction.

        List keys are merged into what is already stored; the read of the
        stored list locks the row so concurrent writers cannot lose updates.

        Returns:
            [{key, value}] as stored; value is None when a list key ended empty
        """
        stored = []
        with transaction(db):
            for item in items:
                now = datetime.now(timezone.utc)
                value = item.value

                if item.key in LIST_KEYS:
                    incoming = value if isinstance(value, list) else [value]
                    incoming = [entry for entry in incoming if entry is not None]
                    existing = PreferenceService._lock_list_value(db, user_id, item.key, now)
                    value = merge_values(existing, incoming)

                    if not value:
                        PreferenceService._delete(db, user_id, item.key)
                        stored.append({"key": item.key, "value": None})
                        continue

                    PreferenceService._update(db, user_id, item.key, value, now)
                else:
                    PreferenceService._upsert(db, user_id, item.key, value, now)
                stored.append({"key": item.key, "value": value})

        cache_delete(preferences_cache_key(user_id))
        logger.info(f"[Cache INVALIDATE] User preferences: {user_id}")
        return stored

    @staticmethod
    def remove_preference_item(db: Session, user_id: int, key: str, item: Any) -> Dict:
        """
        Remove one item from a list preference.

        Person lists match by canonical name, other lists by value. When the
        list ends up empty the preference row is deleted.

        Raises:
            BusinessRuleError: If the key is missing, not a list, or lacks the item
        """
        target = normalize_entity(item)
        with transaction(db):
            row = PreferenceService._read_value_for_update(db, user_id, key)
            if row is None:
                raise BusinessRuleError(f"Preference \"{key}\" not found")

            current = row.value
            if not isinstance(current, list):
                raise BusinessRuleError(f"Preference \"{key}\" is not a list")

            if key in PERSON_KEYS:
                remaining = [value for value in current if normalize_entity(value) != target]
            else:
                remaining = [value for value in current if str(value) != target]

            if len(remaining) == len(current):
                raise BusinessRuleError(f"\"{item}\" is not in {key}")

            if remaining:
                PreferenceService._upsert(db, user_id, key, remaining, datetime.now(timezone.utc))
                deleted = False
            else:
                PreferenceService._delete(db, user_id, key)
                deleted = True

        cache_delete(preferences_cache_key(user_id))
        logger.info(f"[Cache INVALIDATE] User preferences: {user_id}")

        if deleted:
            message = f"Removed \"{item}\" from {key}. Preference deleted because it's now empty."
        else:
            message = f"Removed \"{item}\" from {key}"
        return {"key": key, "deleted": deleted, "remaining": remaining, "message": message}

    @staticmethod
    def get_preferences(db: Session, user_id: int) -> List[Dict]:
        """
        All preferences for a user, most recently updated first.

        Actor/director names come back as {name, profile_url, id}. The result
        is cached for PREFERENCES_CACHE_TTL seconds.
        """
        cache_key = preferences_cache_key(user_id)
        cached = cache_get(cache_key)
        if cached is not None:
            logger.debug(f"[Cache HIT] User preferences: {user_id}")
            return cached

        logger.debug(f"[Cache MISS] User preferences: {user_id}")
        rows = db.query(UserPref.key, UserPref.value).filter(
            UserPref.user_id == user_id
        ).order_by(UserPref.updated_at.desc(), UserPref.id.desc()).all()

        preferences = []
        for row in rows:
            value = row.value
            if row.key in PERSON_KEYS and isinstance(value, list):
                value = enrich_person_names(normalize_person_names(value))
            preferences.append({"key": row.key, "value": value})

        cache_set(cache_key, preferences, PREFERENCES_CACHE_TTL)
        return preferences
