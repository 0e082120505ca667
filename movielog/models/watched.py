from sqlalchemy import Column, Integer, DateTime, ForeignKey, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from typing import Optional
from movielog.database import Base


class Watched(Base):
    """
    Watch history - one row per movie a user has watched, with a 1-5 rating.
    Re-watching refreshes rating, notes and watched_at in place.
    """
    __tablename__ = "watched"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    movie_id = Column(Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False, index=True)
    notes = Column(Text, nullable=True)
    watched_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="watched_items")
    movie = relationship("Movie")

    __table_args__ = (
        UniqueConstraint('user_id', 'movie_id', name='unique_user_movie_watched'),
        CheckConstraint('rating BETWEEN 1 AND 5', name='watched_rating_range'),
    )

    @property
    def tmdb_id(self) -> Optional[int]:
        """Get TMDB ID from related movie"""
        return self.movie.tmdb_id if self.movie else None

    def __repr__(self):
        return f"<Watched(user_id={self.user_id}, movie_id={self.movie_id}, rating={self.rating})>"
