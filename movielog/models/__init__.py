"""
Import all models to ensure they are registered with SQLAlchemy
"""
from movielog.models.user import User
from movielog.models.movie import Movie
from movielog.models.watchlist import Watchlist
from movielog.models.watched import Watched
from movielog.models.user_pref import UserPref

__all__ = [
    "User",
    "Movie",
    "Watchlist",
    "Watched",
    "UserPref"
]
