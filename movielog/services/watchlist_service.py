from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Dict, List, Optional
import logging

from movielog.database import transaction, dialect_insert
from movielog.exceptions import BusinessRuleError
from movielog.models.movie import Movie
from movielog.models.watchlist import Watchlist
from movielog.schemas.watchlist import WatchlistItemResponse, LibraryStatus
from movielog.services.media_service import MediaService

logger = logging.getLogger(__name__)


class WatchlistService:
    """Service for watchlist operations"""

    @staticmethod
    def _insert_entry(db: Session, user_id: int, movie_id: int, notes: Optional[str]) -> bool:
        """
        Insert the watchlist row unless it already exists.
        Returns False when the row was already there, including when a
        concurrent request inserted it first.
        """
        insert = dialect_insert(db)
        if insert is not None:
            result = db.execute(
                insert(Watchlist)
                .values(user_id=user_id, movie_id=movie_id, notes=notes)
                .on_conflict_do_nothing(index_elements=["user_id", "movie_id"])
            )
            return result.rowcount > 0

        if MediaService.is_in_watchlist(db, user_id, movie_id):
            return False
        try:
            with db.begin_nested():
                db.add(Watchlist(user_id=user_id, movie_id=movie_id, notes=notes))
        except IntegrityError:
            logger.debug(f"Watchlist entry {user_id}/{movie_id} inserted concurrently")
            return False
        return True

    @staticmethod
    def add_to_watchlist(db: Session, user_id: int, tmdb_id: int, notes: Optional[str] = None) -> Dict:
        """
        Add a movie to user's watchlist.

        Idempotent: a second add reports already_present=True instead of failing.

        Raises:
            BusinessRuleError: If the movie is already in the watch history
            ProviderError: If TMDB cannot resolve a movie seen for the first time
        """
        with transaction(db):
            movie_id = MediaService.ensure_media(db, tmdb_id)

            if MediaService.is_watched(db, user_id, movie_id):
                raise BusinessRuleError("Movie is already in your watch history")

            already_present = not WatchlistService._insert_entry(db, user_id, movie_id, notes)

        logger.info(f"User {user_id} watchlist add {tmdb_id}: already_present={already_present}")
        return {"tmdb_id": tmdb_id, "already_present": already_present}

    @staticmethod
    def remove_from_watchlist(db: Session, user_id: int, tmdb_id: int) -> Dict:
        """Remove a movie from watchlist; absent movies are not an error"""
        with transaction(db):
            movie = db.query(Movie.id, Movie.title).filter(Movie.tmdb_id == tmdb_id).first()
            deleted = 0
            if movie is not None:
                deleted = db.query(Watchlist).filter(
                    Watchlist.user_id == user_id,
                    Watchlist.movie_id == movie.id
                ).delete(synchronize_session=False)

        return {
            "tmdb_id": tmdb_id,
            "title": movie.title if movie else None,
            "was_present": deleted > 0,
        }

    @staticmethod
    def get_watchlist(db: Session, user_id: int) -> List[WatchlistItemResponse]:
        """Get user's watchlist, newest first"""
        rows = db.query(
            Movie.tmdb_id,
            Movie.title,
            Movie.year,
            Movie.overview,
            Movie.poster_url,
            Movie.rating,
            Watchlist.notes,
            Watchlist.added_at,
        ).join(Movie, Watchlist.movie_id == Movie.id).filter(
            Watchlist.user_id == user_id
        ).order_by(Watchlist.added_at.desc(), Watchlist.id.desc()).all()

        return [WatchlistItemResponse.model_validate(row) for row in rows]

    @staticmethod
    def get_library_status(db: Session, user_id: int, tmdb_ids: List[int]) -> List[LibraryStatus]:
        """
        Watchlist/watched status for several movies at once.
        Movies never referenced locally are reported as neither.
        """
        movies = db.query(Movie.id, Movie.tmdb_id).filter(Movie.tmdb_id.in_(tmdb_ids)).all()
        movie_ids = {row.tmdb_id: row.id for row in movies}

        in_watchlist = MediaService.bulk_check_watchlist(db, user_id, movie_ids.values())
        watched = MediaService.bulk_check_watched(db, user_id, movie_ids.values())

        statuses = []
        for tmdb_id in dict.fromkeys(tmdb_ids):
            movie_id = movie_ids.get(tmdb_id)
            watched_entry = watched.get(movie_id) if movie_id is not None else None
            statuses.append(LibraryStatus(
                tmdb_id=tmdb_id,
                in_watchlist=movie_id in in_watchlist,
                watched=watched_entry is not None,
                user_rating=watched_entry["rating"] if watched_entry else None,
                notes=watched_entry["notes"] if watched_entry else None,
            ))
        return statuses
