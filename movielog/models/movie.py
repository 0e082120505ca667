from sqlalchemy import Column, Integer, String, Float, Text, DateTime
from sqlalchemy.sql import func
from movielog.database import Base


class Movie(Base):
    """
    Canonical local record for a TMDB movie.

    Created lazily the first time any operation references a tmdb_id.
    tmdb_id is unique and never changes once set.
    """
    __tablename__ = "movies"

    id = Column(Integer, primary_key=True, index=True)
    tmdb_id = Column(Integer, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    year = Column(Integer, nullable=True)
    overview = Column(Text)
    poster_url = Column(String)
    rating = Column(Float)  # TMDB vote average, 1 decimal
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Movie(tmdb_id={self.tmdb_id}, title='{self.title}')>"
