"""
Media Service - canonical local movie rows.

Every watchlist/watched row points at a Movie. The first reference to a
tmdb_id fetches its details from TMDB and inserts the row; later references
reuse it. Runs inside the caller's transaction and never commits.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Dict, Iterable, Optional, Set, Tuple
import logging

from movielog.database import dialect_insert
from movielog.models.movie import Movie
from movielog.models.watchlist import Watchlist
from movielog.models.watched import Watched
from movielog.services.tmdb_service import TMDBService

logger = logging.getLogger(__name__)


def _movie_values(details: Dict) -> Dict:
    return {
        "title": details.get("title") or "Unknown",
        "year": details.get("year"),
        "overview": details.get("overview"),
        "poster_url": details.get("poster_url"),
        "rating": details.get("rating"),
    }


class MediaService:
    """Service for the shared movies table"""

    @staticmethod
    def get_movie_id_by_tmdb_id(db: Session, tmdb_id: int) -> Optional[int]:
        """Internal movie.id for a TMDB id, or None if never referenced"""
        return db.query(Movie.id).filter(Movie.tmdb_id == tmdb_id).scalar()

    @staticmethod
    def _insert_or_fetch(db: Session, tmdb_id: int, details: Dict) -> int:
        """
        Insert the movie row unless another transaction already did, then
        re-read it. Concurrent first references converge on a single row.
        """
        insert = dialect_insert(db)
        if insert is not None:
            stmt = (
                insert(Movie)
                .values(tmdb_id=tmdb_id, **_movie_values(details))
                .on_conflict_do_nothing(index_elements=["tmdb_id"])
            )
            db.execute(stmt)
        else:
            # No ON CONFLICT support: isolate the insert in a savepoint instead
            try:
                with db.begin_nested():
                    db.add(Movie(tmdb_id=tmdb_id, **_movie_values(details)))
            except IntegrityError:
                logger.debug(f"Movie {tmdb_id} inserted concurrently, re-reading")

        movie_id = MediaService.get_movie_id_by_tmdb_id(db, tmdb_id)
        if movie_id is None:
            raise RuntimeError(f"Movie {tmdb_id} missing after insert-or-fetch")
        return movie_id

    @staticmethod
    def ensure_media(db: Session, tmdb_id: int) -> int:
        """
        Ensure movie exists in DB, fetch from TMDB if not.
        Returns the internal movie.id (not tmdb_id).

        Raises:
            ProviderError: If TMDB cannot resolve the id
        """
        movie_id = MediaService.get_movie_id_by_tmdb_id(db, tmdb_id)
        if movie_id is not None:
            return movie_id

        details = TMDBService.get_movie_details(tmdb_id)
        movie_id = MediaService._insert_or_fetch(db, tmdb_id, details)
        logger.info(f"Cached movie {tmdb_id} ({details.get('title')}) as movie {movie_id}")
        return movie_id

    @staticmethod
    def ensure_media_with_details(db: Session, tmdb_id: int) -> Tuple[int, Dict]:
        """
        Same as ensure_media but also returns the TMDB details, for callers
        that validate against them (e.g. the release date).
        """
        details = TMDBService.get_movie_details(tmdb_id)
        movie_id = MediaService.get_movie_id_by_tmdb_id(db, tmdb_id)
        if movie_id is None:
            movie_id = MediaService._insert_or_fetch(db, tmdb_id, details)
            logger.info(f"Cached movie {tmdb_id} ({details.get('title')}) as movie {movie_id}")
        return movie_id, details

    @staticmethod
    def backfill_media(db: Session, tmdb_id: int) -> Optional[Movie]:
        """
        Refresh the canonical fields of an existing movie from TMDB.
        This is the only path that updates a movie row after creation.
        Returns None if the movie was never referenced.
        """
        movie = db.query(Movie).filter(Movie.tmdb_id == tmdb_id).with_for_update().first()
        if movie is None:
            return None

        details = TMDBService.get_movie_details(tmdb_id)
        for field, value in _movie_values(details).items():
            setattr(movie, field, value)
        db.flush()
        return movie

    @staticmethod
    def is_in_watchlist(db: Session, user_id: int, movie_id: int) -> bool:
        return db.query(Watchlist.id).filter(
            Watchlist.user_id == user_id,
            Watchlist.movie_id == movie_id
        ).first() is not None

    @staticmethod
    def is_watched(db: Session, user_id: int, movie_id: int) -> bool:
        return db.query(Watched.id).filter(
            Watched.user_id == user_id,
            Watched.movie_id == movie_id
        ).first() is not None

    @staticmethod
    def bulk_check_watchlist(db: Session, user_id: int, movie_ids: Iterable[int]) -> Set[int]:
        """Subset of movie_ids that are on the user's watchlist"""
        movie_ids = list(movie_ids)
        if not movie_ids:
            return set()
        rows = db.query(Watchlist.movie_id).filter(
            Watchlist.user_id == user_id,
            Watchlist.movie_id.in_(movie_ids)
        ).all()
        return {row.movie_id for row in rows}

    @staticmethod
    def bulk_check_watched(db: Session, user_id: int, movie_ids: Iterable[int]) -> Dict[int, Dict]:
        """Map of movie_id -> {rating, notes} for the movies the user has watched"""
        movie_ids = list(movie_ids)
        if not movie_ids:
            return {}
        rows = db.query(Watched.movie_id, Watched.rating, Watched.notes).filter(
            Watched.user_id == user_id,
            Watched.movie_id.in_(movie_ids)
        ).all()
        return {row.movie_id: {"rating": row.rating, "notes": row.notes} for row in rows}
