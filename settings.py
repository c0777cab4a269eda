"""Shared event configuration pulled from environment variables."""
import os

def _float_env(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default

def _list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    items = tuple(x.strip() for x in raw.split("|") if x.strip())
    return items or default

EVENT_NAME = os.getenv("EVENT_NAME", "Ateliers dédiés aux startups")
EVENT_TAGLINE = os.getenv(
    "EVENT_TAGLINE",
    "Accélérez le développement de votre startup grâce à deux ateliers stratégiques.",
)
# no bundled artwork; images are shown only when a URL is configured
BRAND_LOGO_URL = (os.getenv("BRAND_LOGO_URL") or "").strip()
PARTNERS_LOGO_URL = (os.getenv("PARTNERS_LOGO_URL") or "").strip()

WORKSHOPS = _list_env("WORKSHOPS", (
    "Réussir son appel à projet Européen",
    "Go to market : vendre à ses premiers clients",
))
WORKSHOPS_SEPARATOR = ", "

# Field set collected on step 2; picked per deployment.
VARIANT_FIELDS = {
    "startup": ("nom", "prenom", "email", "telephone", "poste", "startup"),
    "address": ("nom", "prenom", "email", "telephone", "startup", "pays", "adresse"),
}
REGISTRATION_VARIANT = (os.getenv("REGISTRATION_VARIANT", "startup").strip().lower() or "startup")
if REGISTRATION_VARIANT not in VARIANT_FIELDS:
    REGISTRATION_VARIANT = "startup"

NOTIFY_PROVIDER = os.getenv("NOTIFY_PROVIDER", "none").strip().lower() or "none"
NOTIFY_SUBJECT = os.getenv("NOTIFY_SUBJECT", "Confirmation inscription")

REGISTRATION_API_URL = (os.getenv("REGISTRATION_API_URL") or "").strip() or None
MAIL_RELAY_ENDPOINT = (os.getenv("MAIL_RELAY_ENDPOINT") or "").strip() or None
MAIL_RELAY_SUBJECT = os.getenv("MAIL_RELAY_SUBJECT", "Nouvelle inscription - Ateliers Startups")

COUNTRIES_API_URL = os.getenv("COUNTRIES_API_URL", "https://restcountries.com/v3.1/all?fields=name,translations")
COUNTRIES_CACHE_SECONDS = int(os.getenv("COUNTRIES_CACHE_SECONDS", "3600"))

HTTP_TIMEOUT = _float_env("HTTP_TIMEOUT", 10.0)
