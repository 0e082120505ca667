"""movielog - per-user watchlist, watch history and preferences for TMDB movies."""

__version__ = "1.0.0"
