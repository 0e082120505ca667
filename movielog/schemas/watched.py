from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Optional

from movielog.schemas.validation import SafeStringMixin, NOTES_MAX_LENGTH


class MarkAsWatchedInput(BaseModel, SafeStringMixin):
    """Schema for marking a movie as watched"""
    tmdb_id: int = Field(..., gt=0, description="TMDB movie ID")
    rating: int = Field(..., ge=1, le=5, description="Your rating (1-5 stars, where 5 is best)")
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH, description="Optional notes or review")

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v):
        return cls.clean_notes(v)


class MarkAsWatchedBatchInput(BaseModel):
    """
    Schema for the batch call.
    Entries stay raw here: each one is validated when it is processed so an
    invalid entry fails like any other entry.
    """
    entries: List[Dict[str, Any]] = Field(..., min_length=1, description="Movies to mark as watched")
    transactional: bool = Field(
        True,
        alias="transaction",
        description="True: all-or-nothing in one transaction. False: each entry on its own.",
    )

    model_config = ConfigDict(populate_by_name=True)


class GetWatchedMoviesInput(BaseModel):
    """Schema for reading the watch history"""
    min_rating: Optional[int] = Field(None, ge=1, le=5, description="Only movies rated at least this")


class WatchedItemResponse(BaseModel):
    """Watched entry joined with its movie"""
    tmdb_id: int
    title: str
    year: Optional[int] = None
    overview: Optional[str] = None
    poster_url: Optional[str] = None
    rating: Optional[float] = Field(None, description="TMDB rating")
    user_rating: int = Field(..., description="User's 1-5 rating")
    notes: Optional[str] = None
    watched_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BatchItemResult(BaseModel):
    """Outcome of one batch entry"""
    tmdb_id: Optional[Any] = None
    success: bool
    message: str
