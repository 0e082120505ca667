"""
Person enrichment for the preference read path.

Decorates stored actor/director names with a TMDB profile picture. Lookups
run in parallel; a failed lookup falls back to a bare entry for that name
only. Results are never written back to storage.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List
import logging
import os

from movielog.schemas.preferences import EnrichedPerson
from movielog.services.tmdb_service import TMDBService

logger = logging.getLogger(__name__)

ENRICHMENT_MAX_WORKERS = int(os.getenv("ENRICHMENT_MAX_WORKERS", 8))


def normalize_entity(value: Any) -> str:
    """
    Canonical display name for a stored person value.

    Handles a bare string, {"name": "X"} and {"name": {"name": "X"}};
    anything else is stringified.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and "name" in value:
        name = value["name"]
        if isinstance(name, dict) and "name" in name:
            name = name["name"]
        return str(name)
    return str(value)


def normalize_person_names(people: Iterable[Any]) -> List[str]:
    return [normalize_entity(person) for person in people]


def _enrich_one(name: str) -> Dict:
    try:
        people = TMDBService.search_people(name)
        if people:
            person = people[0]  # Most popular match
            return EnrichedPerson(name=name, profile_url=person.get("profile_url"), id=person.get("id") or 0).model_dump()
    except Exception as e:
        logger.warning(f"Failed to enrich person {name!r}: {e}")

    return EnrichedPerson(name=name).model_dump()


def enrich_person_names(names: List[str]) -> List[Dict]:
    """
    Look up every name on TMDB and attach profile_url and id.
    Output order matches input order.
    """
    if not names:
        return []
    workers = max(1, min(ENRICHMENT_MAX_WORKERS, len(names)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        return list(executor.map(_enrich_one, names))
