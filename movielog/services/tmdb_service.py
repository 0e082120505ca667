import requests
import os
import random
import time
from typing import Dict, List, Optional
from dotenv import load_dotenv
from movielog.exceptions import ProviderError
from movielog.utils.cache import cache
import logging

load_dotenv()
logger = logging.getLogger(__name__)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"
BACKDROP_BASE_URL = "https://image.tmdb.org/t/p/w780"
PROFILE_BASE_URL = "https://image.tmdb.org/t/p/w185"

MOVIE_DETAILS_TTL = 60 * 60 * 24 * 30  # Movie details are effectively immutable
PERSON_SEARCH_TTL = 60 * 60 * 24


def build_image_url(path: Optional[str], base_url: str = POSTER_BASE_URL) -> Optional[str]:
    if not path:
        return None
    return f"{base_url}{path}"


def _parse_year(release_date: Optional[str]) -> Optional[int]:
    if not release_date:
        return None
    try:
        return int(release_date.split("-")[0])
    except ValueError:
        return None


def _to_movie_result(movie: Dict) -> Dict:
    """Flatten a TMDB movie payload into the fields movielog stores and displays"""
    release_date = movie.get("release_date") or None
    return {
        "tmdb_id": movie["id"],
        "title": movie.get("title") or "Unknown",
        "year": _parse_year(release_date),
        "release_date": release_date,
        "overview": movie.get("overview") or "",
        "poster_url": build_image_url(movie.get("poster_path")),
        "backdrop_url": build_image_url(movie.get("backdrop_path"), BACKDROP_BASE_URL),
        "rating": round(float(movie.get("vote_average") or 0.0), 1),
    }


# TMDB Service to interact with The Movie Database API
class TMDBService:
    BASE_URL = "https://api.themoviedb.org/3"
    API_KEY = os.getenv("TMDB_API_KEY")
    TIMEOUT = float(os.getenv("TMDB_REQUEST_TIMEOUT", 7.5))
    MAX_RETRIES = int(os.getenv("TMDB_MAX_RETRIES", 2))
    BACKOFF_BASE = float(os.getenv("TMDB_BACKOFF_BASE", 0.5))
    BACKOFF_MAX = 4.0

    @classmethod
    def _retry_delay(cls, attempt: int) -> float:
        delay = min(cls.BACKOFF_MAX, cls.BACKOFF_BASE * (2 ** attempt))
        return delay + random.uniform(0.0, 0.1)

    # Internal method to make GET requests to TMDB API
    @classmethod
    def _make_request(cls, endpoint: str, params: Dict = None) -> Dict:
        """
        Make HTTP request to TMDB API with timeout and retries.

        Connection errors, timeouts, 429 and 5xx responses are retried with
        exponential backoff up to MAX_RETRIES times. Other 4xx responses
        fail immediately.

        Args:
            endpoint: API endpoint (e.g., "/movie/550")
            params: Query parameters

        Returns:
            JSON response from TMDB

        Raises:
            ProviderError: If API key is missing, the resource does not exist,
                           or retries are exhausted
        """
        if not cls.API_KEY:
            raise ProviderError("TMDB API key not configured")
        params = dict(params or {})
        params['api_key'] = cls.API_KEY
        url = f"{cls.BASE_URL}{endpoint}"

        attempt = 0
        while True:
            try:
                response = requests.get(url, params=params, timeout=cls.TIMEOUT)
                if response.status_code == 429 or response.status_code >= 500:
                    response.raise_for_status()
            except requests.exceptions.RequestException as e:
                if attempt >= cls.MAX_RETRIES:
                    logger.error(f"TMDB API error for {endpoint} after {attempt + 1} attempt(s): {str(e)}")
                    status = getattr(getattr(e, "response", None), "status_code", None)
                    raise ProviderError(f"TMDB API error: {str(e)}", status_code=status) from e
                delay = cls._retry_delay(attempt)
                logger.warning(
                    f"TMDB attempt {attempt + 1} for {endpoint} failed ({str(e)}); "
                    f"retrying in {delay:.2f}s ({cls.MAX_RETRIES - attempt} retries left)"
                )
                time.sleep(delay)
                attempt += 1
                continue

            status = response.status_code
            if status == 404:
                raise ProviderError(f"TMDB resource not found: {endpoint}", status_code=404)
            if status >= 400:
                raise ProviderError(f"TMDB API error {status} for {endpoint}", status_code=status)

            try:
                data = response.json()
            except ValueError as e:
                raise ProviderError(f"TMDB returned an invalid payload for {endpoint}") from e

            logger.debug(f"TMDB API request successful: {endpoint}")
            return data

    @classmethod
    @cache(ttl=MOVIE_DETAILS_TTL, key=lambda cls, tmdb_id: f"tmdb:movie:{tmdb_id}")
    def get_movie_details(cls, tmdb_id: int) -> Dict:
        """
        Get the canonical fields for one movie, plus genres, director and top cast.
        Cached for 30 days.
        """
        movie = cls._make_request(f"/movie/{tmdb_id}", {'language': 'en-US', 'append_to_response': 'credits'})
        if "id" not in movie:
            raise ProviderError(f"TMDB returned no movie for id {tmdb_id}")

        credits = movie.get("credits") or {}
        cast = [
            {
                "id": member["id"],
                "name": member.get("name"),
                "character": member.get("character"),
                "profile_url": build_image_url(member.get("profile_path"), PROFILE_BASE_URL),
                "order": member.get("order"),
            }
            for member in (credits.get("cast") or [])[:10]
        ]
        director = next(
            (member.get("name") for member in credits.get("crew") or [] if member.get("job") == "Director"),
            None,
        )

        details = _to_movie_result(movie)
        details.update({
            "runtime": movie.get("runtime"),
            "tagline": movie.get("tagline"),
            "status": movie.get("status"),
            "genres": movie.get("genres") or [],
            "director": director,
            "cast": cast,
        })
        return details

    @classmethod
    def search_movies(cls, title: str, year: Optional[int] = None) -> List[Dict]:
        """
        Search movies by title, optionally restricted to a release year.
        """
        params = {'query': title, 'include_adult': 'false', 'language': 'en-US', 'page': 1}
        if year:
            params['year'] = year
        data = cls._make_request("/search/movie", params)
        return [_to_movie_result(movie) for movie in data.get("results", [])]

    @classmethod
    @cache(ttl=PERSON_SEARCH_TTL, key=lambda cls, name: f"tmdb:person:{name.lower()}")
    def search_people(cls, name: str) -> List[Dict]:
        """
        Search people (actors, directors) by name, most popular first.
        Cached for 1 day.
        """
        data = cls._make_request("/search/person", {'query': name, 'include_adult': 'false', 'page': 1})
        people = sorted(data.get("results", []), key=lambda p: p.get("popularity") or 0, reverse=True)
        return [
            {
                "id": person["id"],
                "name": person.get("name"),
                "known_for": person.get("known_for_department"),
                "profile_url": build_image_url(person.get("profile_path"), PROFILE_BASE_URL),
            }
            for person in people
        ]
