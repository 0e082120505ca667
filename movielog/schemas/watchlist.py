from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Optional

from movielog.schemas.validation import SafeStringMixin, NOTES_MAX_LENGTH


class AddToWatchlistInput(BaseModel, SafeStringMixin):
    """Schema for adding a movie to the watchlist"""
    tmdb_id: int = Field(..., gt=0, description="TMDB movie ID (from search results)")
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH, description="Why you want to watch it")

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, v):
        return cls.clean_notes(v)


class RemoveFromWatchlistInput(BaseModel):
    """Schema for removing a movie from the watchlist"""
    tmdb_id: int = Field(..., gt=0, description="TMDB movie ID of the movie to remove")


class GetWatchlistInput(BaseModel):
    """The watchlist read takes no arguments"""


class LibraryStatusInput(BaseModel):
    """Schema for checking watchlist/watched status of several movies"""
    tmdb_ids: list[int] = Field(..., min_length=1, max_length=100)


class WatchlistItemResponse(BaseModel):
    """Watchlist entry joined with its movie"""
    tmdb_id: int
    title: str
    year: Optional[int] = None
    overview: Optional[str] = None
    poster_url: Optional[str] = None
    rating: Optional[float] = Field(None, description="TMDB rating")
    notes: Optional[str] = None
    added_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LibraryStatus(BaseModel):
    """Where one movie sits for a user: none, watchlisted, or watched"""
    tmdb_id: int
    in_watchlist: bool = False
    watched: bool = False
    user_rating: Optional[int] = None
    notes: Optional[str] = None
