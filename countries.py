"""Country names for the address variant of the form."""
from __future__ import annotations

import logging
import time
import unicodedata
from typing import Any, Dict, List

import requests

from settings import COUNTRIES_API_URL, COUNTRIES_CACHE_SECONDS, HTTP_TIMEOUT

log = logging.getLogger(__name__)

FALLBACK_COUNTRIES = (
    "France", "Belgique", "Suisse", "Canada", "Luxembourg",
    "Maroc", "Algérie", "Tunisie", "Sénégal", "Côte d'Ivoire",
    "Cameroun", "Allemagne", "Espagne", "Italie", "Royaume-Uni",
)

_COUNTRIES_CACHE: Dict[str, Any] = {"value": None, "expires_at": None}


def _collation_key(name: str) -> tuple[str, str]:
    folded = unicodedata.normalize("NFKD", name)
    base = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return base.casefold(), name


def sort_countries(names) -> List[str]:
    """Sort the way a French reader expects: accents and case do not reorder."""
    return sorted({n.strip() for n in names if n and n.strip()}, key=_collation_key)


def _country_name(entry: Dict[str, Any]) -> str | None:
    translations = entry.get("translations") or {}
    fra = translations.get("fra") if isinstance(translations, dict) else None
    if isinstance(fra, dict) and fra.get("common"):
        return fra["common"]
    name = entry.get("name")
    if isinstance(name, dict):
        return name.get("common")
    return name if isinstance(name, str) else None


def fetch_countries() -> List[str]:
    response = requests.get(COUNTRIES_API_URL, timeout=HTTP_TIMEOUT)
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, list):
        raise ValueError("Unexpected countries payload")
    names = [n for n in (_country_name(e) for e in payload if isinstance(e, dict)) if n]
    if not names:
        raise ValueError("Empty countries payload")
    return sort_countries(names)


def get_countries() -> List[str]:
    now = time.monotonic()
    cached = _COUNTRIES_CACHE.get("value")
    expires_at = _COUNTRIES_CACHE.get("expires_at")
    if cached and expires_at and expires_at > now:
        return list(cached)

    try:
        countries = fetch_countries()
    except (requests.exceptions.RequestException, ValueError):
        log.warning("Country lookup failed; using fallback list", exc_info=True)
        return sort_countries(FALLBACK_COUNTRIES)

    _COUNTRIES_CACHE["value"] = countries
    _COUNTRIES_CACHE["expires_at"] = now + COUNTRIES_CACHE_SECONDS
    return list(countries)
