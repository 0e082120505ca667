"""
Watched Service - Mark movies as watched and read the watch history.

Marking a movie as watched and removing it from the watchlist happen in
the same transaction, so a Watchlist row and a Watched row never coexist
for the same user and movie.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional
from datetime import date, datetime, timezone
import logging

from movielog.database import transaction, dialect_insert
from movielog.exceptions import BusinessRuleError
from movielog.models.movie import Movie
from movielog.models.watched import Watched
from movielog.models.watchlist import Watchlist
from movielog.schemas.watched import MarkAsWatchedInput, WatchedItemResponse
from movielog.services.media_service import MediaService

logger = logging.getLogger(__name__)


def _parse_release_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        logger.warning(f"Ignoring unparseable release date: {value!r}")
        return None


class WatchedService:
    """Service for watch history operations"""

    @staticmethod
    def _find_watched_id(db: Session, user_id: int, movie_id: int) -> Optional[int]:
        return db.query(Watched.id).filter(
            Watched.user_id == user_id,
            Watched.movie_id == movie_id
        ).with_for_update().scalar()

    @staticmethod
    def _upsert_watched(db: Session, user_id: int, movie_id: int, entry: MarkAsWatchedInput, now: datetime) -> None:
        """
        Create the watched row or refresh rating, notes and watched_at.
        A row inserted concurrently by another request is refreshed, not duplicated.
        """
        values = {"rating": entry.rating, "notes": entry.notes, "watched_at": now}
        insert = dialect_insert(db)
        if insert is not None:
            stmt = insert(Watched).values(user_id=user_id, movie_id=movie_id, **values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "movie_id"],
                set_={column: stmt.excluded[column] for column in values},
            )
            db.execute(stmt)
            return

        existing = db.query(Watched).filter(Watched.user_id == user_id, Watched.movie_id == movie_id)
        if existing.update(values, synchronize_session=False):
            return
        try:
            with db.begin_nested():
                db.add(Watched(user_id=user_id, movie_id=movie_id, **values))
        except IntegrityError:
            existing.update(values, synchronize_session=False)

    @staticmethod
    def check_released(details: Dict, today: Optional[date] = None) -> None:
        """
        Reject movies whose release date is still in the future.

        Raises:
            BusinessRuleError: If the movie has not been released yet
        """
        release_date = _parse_release_date(details.get("release_date"))
        today = today or datetime.now(timezone.utc).date()
        if release_date and release_date > today:
            raise BusinessRuleError(
                f"\"{details.get('title')}\" hasn't been released yet "
                f"(releases on {release_date.strftime('%B %d, %Y')}). "
                "You can add it to your watchlist instead."
            )

    @staticmethod
    def apply_mark_as_watched(db: Session, user_id: int, entry: MarkAsWatchedInput) -> Dict:
        """
        Record one watch inside the caller's transaction. Never commits.

        Creates or refreshes the Watched row, then deletes any Watchlist row
        for the same movie.
        """
        movie_id, details = MediaService.ensure_media_with_details(db, entry.tmdb_id)
        WatchedService.check_released(details)

        updated = WatchedService._find_watched_id(db, user_id, movie_id) is not None
        WatchedService._upsert_watched(db, user_id, movie_id, entry, datetime.now(timezone.utc))

        removed = db.query(Watchlist).filter(
            Watchlist.user_id == user_id,
            Watchlist.movie_id == movie_id
        ).delete(synchronize_session=False)
        previously_in_watchlist = removed > 0

        if updated:
            message = "Updated watch record with new rating."
        elif previously_in_watchlist:
            message = "Movie marked as watched and removed from watchlist."
        else:
            message = "Movie marked as watched."

        return {
            "tmdb_id": entry.tmdb_id,
            "title": details.get("title"),
            "rating": entry.rating,
            "updated": updated,
            "previously_in_watchlist": previously_in_watchlist,
            "message": message,
        }

    @staticmethod
    def mark_as_watched(db: Session, user_id: int, entry: MarkAsWatchedInput) -> Dict:
        """
        Mark a movie as watched with a 1-5 rating in its own transaction.

        Raises:
            BusinessRuleError: If the movie is not released yet
            ProviderError: If TMDB cannot resolve the movie
        """
        with transaction(db):
            result = WatchedService.apply_mark_as_watched(db, user_id, entry)
        logger.info(f"User {user_id} watched {entry.tmdb_id} rated {entry.rating}")
        return result

    @staticmethod
    def get_watched_movies(db: Session, user_id: int, min_rating: Optional[int] = None) -> List[WatchedItemResponse]:
        """Get the watch history, newest first, optionally filtered by rating"""
        query = db.query(
            Movie.tmdb_id,
            Movie.title,
            Movie.year,
            Movie.overview,
            Movie.poster_url,
            Movie.rating,
            Watched.rating.label("user_rating"),
            Watched.notes,
            Watched.watched_at,
        ).join(Movie, Watched.movie_id == Movie.id).filter(Watched.user_id == user_id)

        if min_rating is not None:
            query = query.filter(Watched.rating >= min_rating)

        rows = query.order_by(Watched.watched_at.desc(), Watched.id.desc()).all()
        return [WatchedItemResponse.model_validate(row) for row in rows]
