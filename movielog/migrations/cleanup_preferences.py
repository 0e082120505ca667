"""
Fold legacy singular preference keys into their list keys.

Older clients wrote favorite_actor / favorite_director / favorite_genre.
Their values are merged into favorite_actors / favorite_directors /
favorite_genres through the normal merge rules, then the singular rows are
deleted. Each user is migrated in its own transaction.

Usage:
    python -m movielog.migrations.cleanup_preferences
"""

import logging
from typing import Dict

from sqlalchemy.orm import Session

from movielog.database import get_db, transaction
from movielog.models.user_pref import UserPref
from movielog.schemas.preferences import PreferenceItem
from movielog.services.preference_service import PreferenceService

logger = logging.getLogger(__name__)

LEGACY_KEYS = {
    "favorite_actor": "favorite_actors",
    "favorite_director": "favorite_directors",
    "favorite_genre": "favorite_genres",
}


def cleanup_preferences(db: Session) -> Dict[int, int]:
    """
    Migrate every legacy key.

    Returns:
        {user_id: number of legacy keys folded}
    """
    rows = db.query(UserPref.user_id, UserPref.key, UserPref.value).filter(
        UserPref.key.in_(list(LEGACY_KEYS))
    ).order_by(UserPref.user_id).all()
    db.rollback()  # end the read transaction before per-user writes

    by_user: Dict[int, list] = {}
    for row in rows:
        by_user.setdefault(row.user_id, []).append(row)

    migrated = {}
    for user_id, legacy_rows in by_user.items():
        items = [PreferenceItem(key=LEGACY_KEYS[row.key], value=row.value) for row in legacy_rows]
        PreferenceService.set_preferences(db, user_id, items)
        with transaction(db):
            db.query(UserPref).filter(
                UserPref.user_id == user_id,
                UserPref.key.in_([row.key for row in legacy_rows])
            ).delete(synchronize_session=False)
        migrated[user_id] = len(legacy_rows)
        logger.info(f"User {user_id}: folded {len(legacy_rows)} legacy key(s)")

    return migrated


def main() -> Dict[int, int]:
    """Run the migration in a fresh session."""
    migrated: Dict[int, int] = {}
    for db in get_db():
        migrated = cleanup_preferences(db)
    logger.info(f"Migrated {sum(migrated.values())} legacy key(s) for {len(migrated)} user(s)")
    return migrated


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    main()
