"""
Public operations.

Each operation takes a database session, the authenticated user id and the
raw request payload, and always returns an OperationResult:

- invalid payloads fail with error_type="validation" before any
  transaction is opened
- MovieLogError subclasses fail with their own error_type
- anything unexpected is logged with its traceback and reported as
  error_type="internal"

Usage:
    for db in get_db():
        result = handlers.add_to_watchlist(db, user_id, {"tmdb_id": 550})
"""

from functools import wraps
from typing import Any, Callable, Dict, Optional, Type
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session
import logging

from movielog.exceptions import MovieLogError
from movielog.schemas.result import OperationResult
from movielog.schemas.watchlist import (
    AddToWatchlistInput,
    RemoveFromWatchlistInput,
    GetWatchlistInput,
    LibraryStatusInput,
)
from movielog.schemas.watched import (
    MarkAsWatchedInput,
    MarkAsWatchedBatchInput,
    GetWatchedMoviesInput,
)
from movielog.schemas.preferences import (
    SetPreferencesInput,
    GetPreferencesInput,
    RemovePreferenceItemInput,
)
from movielog.services.watchlist_service import WatchlistService
from movielog.services.watched_service import WatchedService
from movielog.services.batch_service import BatchService
from movielog.services.preference_service import PreferenceService

logger = logging.getLogger(__name__)


def operation(schema: Type[BaseModel], failure_prefix: str):
    """
    Wrap an operation with payload validation and error-to-result conversion.

    Args:
        schema: pydantic model the raw payload is validated against
        failure_prefix: Human readable prefix for failure messages
    """
    def decorator(func: Callable[[Session, int, Any], OperationResult]):
        @wraps(func)
        def wrapper(db: Session, user_id: int, payload: Optional[Dict[str, Any]] = None) -> OperationResult:
            if user_id is None:
                return OperationResult.fail(f"{failure_prefix}: User ID is required",
                                            "User ID is required", "validation")
            try:
                validated = schema.model_validate(payload or {})
            except ValidationError as e:
                logger.info(f"Invalid input for {func.__name__} (user {user_id}): {e.error_count()} error(s)")
                return OperationResult.fail(
                    f"{failure_prefix}: Invalid input",
                    "Invalid input",
                    "validation",
                    details=e.errors(include_url=False, include_context=False),
                )

            try:
                return func(db, user_id, validated)
            except MovieLogError as e:
                logger.info(f"{func.__name__} failed for user {user_id}: {e.message}")
                return OperationResult.fail(f"{failure_prefix}: {e.message}", e.message, e.error_type, e.details)
            except Exception as e:
                logger.error(f"Unhandled exception in {func.__name__}: {str(e)}", exc_info=True)
                return OperationResult.fail(f"{failure_prefix}: Internal error", "Internal error", "internal")

        return wrapper

    return decorator


# ==================== WATCHLIST ====================

@operation(AddToWatchlistInput, "Failed to add to watchlist")
def add_to_watchlist(db: Session, user_id: int, data: AddToWatchlistInput) -> OperationResult:
    result = WatchlistService.add_to_watchlist(db, user_id, data.tmdb_id, data.notes)
    if result["already_present"]:
        return OperationResult.ok("Movie is already in your watchlist", result)
    return OperationResult.ok("Movie added to watchlist successfully", result)


@operation(RemoveFromWatchlistInput, "Failed to remove from watchlist")
def remove_from_watchlist(db: Session, user_id: int, data: RemoveFromWatchlistInput) -> OperationResult:
    result = WatchlistService.remove_from_watchlist(db, user_id, data.tmdb_id)
    label = f"\"{result['title']}\"" if result["title"] else "Movie"
    if result["was_present"]:
        return OperationResult.ok(f"Removed {label} from your watchlist.", result)
    return OperationResult.ok(f"{label} was not in your watchlist.", result)


@operation(GetWatchlistInput, "Failed to load watchlist")
def get_watchlist(db: Session, user_id: int, data: GetWatchlistInput) -> OperationResult:
    movies = [item.model_dump(mode="json") for item in WatchlistService.get_watchlist(db, user_id)]
    message = (
        f"Found {len(movies)} movie(s) in your watchlist."
        if movies else "Your watchlist is currently empty."
    )
    return OperationResult.ok(message, {"movies": movies, "count": len(movies)})


@operation(LibraryStatusInput, "Failed to check library status")
def get_library_status(db: Session, user_id: int, data: LibraryStatusInput) -> OperationResult:
    statuses = [status.model_dump() for status in WatchlistService.get_library_status(db, user_id, data.tmdb_ids)]
    return OperationResult.ok(f"Checked {len(statuses)} movie(s).", {"statuses": statuses})


# ==================== WATCHED ====================

@operation(MarkAsWatchedInput, "Failed to mark movie as watched")
def mark_as_watched(db: Session, user_id: int, data: MarkAsWatchedInput) -> OperationResult:
    result = WatchedService.mark_as_watched(db, user_id, data)
    return OperationResult.ok(result.pop("message"), result)


@operation(MarkAsWatchedBatchInput, "Failed to mark movies as watched")
def mark_as_watched_batch(db: Session, user_id: int, data: MarkAsWatchedBatchInput) -> OperationResult:
    results = BatchService.mark_as_watched_batch(db, user_id, data.entries, data.transactional)

    mode = "transactional" if data.transactional else "best effort"
    summary = "\n".join(
        f"• {result.tmdb_id}: {'✅' if result.success else '❌'} {result.message}" for result in results
    )
    return OperationResult.ok(
        f"Batch mark as watched ({mode}):\n{summary}",
        {
            "transactional": data.transactional,
            "all_succeeded": all(result.success for result in results),
            "results": [result.model_dump() for result in results],
        },
    )


@operation(GetWatchedMoviesInput, "Failed to fetch watched movies")
def get_watched_movies(db: Session, user_id: int, data: GetWatchedMoviesInput) -> OperationResult:
    movies = [
        item.model_dump(mode="json")
        for item in WatchedService.get_watched_movies(db, user_id, data.min_rating)
    ]
    if data.min_rating is not None:
        message = f"Found {len(movies)} movie(s) with rating >= {data.min_rating}."
    else:
        message = f"Found {len(movies)} watched movie(s)."
    return OperationResult.ok(message, {"movies": movies, "count": len(movies)})


# ==================== PREFERENCES ====================

@operation(SetPreferencesInput, "Failed to save preferences")
def set_preferences(db: Session, user_id: int, data: SetPreferencesInput) -> OperationResult:
    stored = PreferenceService.set_preferences(db, user_id, data.preferences)
    preferences = PreferenceService.get_preferences(db, user_id)

    count = len(data.preferences)
    return OperationResult.ok(
        f"Successfully set {count} preference{'s' if count != 1 else ''}",
        {"stored": stored, "preferences": preferences, "count": len(preferences)},
    )


@operation(GetPreferencesInput, "Failed to load preferences")
def get_preferences(db: Session, user_id: int, data: GetPreferencesInput) -> OperationResult:
    preferences = PreferenceService.get_preferences(db, user_id)
    message = (
        f"Retrieved {len(preferences)} preference(s)."
        if preferences else "No preferences saved yet. Use set_preferences to add some."
    )
    return OperationResult.ok(message, {"preferences": preferences, "count": len(preferences)})


@operation(RemovePreferenceItemInput, "Failed to remove item")
def remove_preference_item(db: Session, user_id: int, data: RemovePreferenceItemInput) -> OperationResult:
    result = PreferenceService.remove_preference_item(db, user_id, data.key, data.item)
    preferences = PreferenceService.get_preferences(db, user_id)
    return OperationResult.ok(
        result.pop("message"),
        {**result, "preferences": preferences, "count": len(preferences)},
    )
