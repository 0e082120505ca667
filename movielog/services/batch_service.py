"""
Batch Service - mark many movies as watched in one call.

Two modes:
- transactional: every entry shares one transaction; the first failure
  rolls back the whole batch and is raised to the caller.
- best effort: each entry gets its own transaction; failures are recorded
  in the per-entry report and the call itself does not raise.

Entries are always processed sequentially, in the order given.
"""

from sqlalchemy.orm import Session
from pydantic import ValidationError
from typing import Any, Dict, List
import logging

from movielog.database import transaction
from movielog.exceptions import InvalidInputError, MovieLogError
from movielog.schemas.watched import MarkAsWatchedInput, BatchItemResult
from movielog.services.watched_service import WatchedService

logger = logging.getLogger(__name__)


def _validate_entry(position: int, raw: Dict[str, Any]) -> MarkAsWatchedInput:
    try:
        return MarkAsWatchedInput.model_validate(raw)
    except ValidationError as e:
        raise InvalidInputError(
            f"Entry {position} is invalid: {e.errors()[0]['msg']}",
            details=e.errors(include_url=False, include_context=False),
        ) from e


class BatchService:
    """Service for bulk watch history updates"""

    @staticmethod
    def mark_as_watched_batch(
        db: Session,
        user_id: int,
        entries: List[Dict[str, Any]],
        transactional: bool = True,
    ) -> List[BatchItemResult]:
        """
        Mark every entry as watched.

        Args:
            entries: Raw entries ({tmdb_id, rating, notes?}); each is validated
                     when it is reached
            transactional: All-or-nothing when True, best effort when False

        Raises:
            MovieLogError / any store error: transactional mode only
        """
        if transactional:
            return BatchService._run_transactional(db, user_id, entries)
        return BatchService._run_best_effort(db, user_id, entries)

    @staticmethod
    def _run_transactional(db: Session, user_id: int, entries: List[Dict[str, Any]]) -> List[BatchItemResult]:
        results = []
        with transaction(db):
            for position, raw in enumerate(entries, start=1):
                entry = _validate_entry(position, raw)
                outcome = WatchedService.apply_mark_as_watched(db, user_id, entry)
                results.append(BatchItemResult(tmdb_id=entry.tmdb_id, success=True, message=outcome["message"]))
        logger.info(f"User {user_id} batch (transactional): {len(results)} movie(s) marked as watched")
        return results

    @staticmethod
    def _run_best_effort(db: Session, user_id: int, entries: List[Dict[str, Any]]) -> List[BatchItemResult]:
        results = []
        for position, raw in enumerate(entries, start=1):
            tmdb_id = raw.get("tmdb_id") if isinstance(raw, dict) else None
            try:
                entry = _validate_entry(position, raw)
                with transaction(db):
                    outcome = WatchedService.apply_mark_as_watched(db, user_id, entry)
                results.append(BatchItemResult(tmdb_id=entry.tmdb_id, success=True, message=outcome["message"]))
            except MovieLogError as e:
                results.append(BatchItemResult(tmdb_id=tmdb_id, success=False, message=e.message))
            except Exception as e:
                logger.error(f"Batch entry {position} ({tmdb_id}) failed unexpectedly: {e}", exc_info=True)
                results.append(BatchItemResult(tmdb_id=tmdb_id, success=False, message=str(e) or type(e).__name__))

        failed = sum(1 for result in results if not result.success)
        logger.info(f"User {user_id} batch (best effort): {len(results) - failed} succeeded, {failed} failed")
        return results
