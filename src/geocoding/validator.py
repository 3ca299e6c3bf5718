"""
Village geocoding with Pune Zilla Panchayat boundary validation.
Resolve → score candidates across query templates → boundary check → cache (24h).
"""

import logging
import os
from datetime import datetime, timezone

from src.geocoding import provider
from src.geocoding.provider import GeocodeCandidate, GeocodingProviderError
from src.registry.store import cache_geocode, get_cached_geocode
from src.schemas import AdministrativeLabels, Coordinates, GeocodeFailureReason, GeocodeOutcome

logger = logging.getLogger(__name__)

# Query templates, most specific context first
QUERY_TEMPLATES = [
    "{village}, Pune District, Maharashtra, India",
    "{village}, Pune, Maharashtra, India",
    "{village} village, Pune District, Maharashtra",
    "{village}, Maharashtra, India",
]

LOCATION_TYPE_BONUS = {
    "ROOFTOP": 20,
    "RANGE_INTERPOLATED": 15,
    "GEOMETRIC_CENTER": 10,
    "APPROXIMATE": 5,
}

# Address component type → administrative label; first component per label wins
COMPONENT_LABELS = [
    (("locality", "sublocality"), "village"),
    (("administrative_area_level_3",), "taluka"),
    (("administrative_area_level_2",), "district"),
    (("administrative_area_level_1",), "region"),
    (("country",), "country"),
    (("postal_code",), "postal_code"),
]

FAILURE_MESSAGES = {
    GeocodeFailureReason.NOT_FOUND: {
        "en": "Village not found. Please provide a valid village name.",
        "mr": "हे गाव सापडले नाही. कृपया योग्य गाव नाव लिहा.",
    },
    GeocodeFailureReason.OUT_OF_BOUNDARY: {
        "en": "This village is not within Pune Zilla Panchayat boundaries. Please provide a village name from Pune district.",
        "mr": "हे गाव पुणे जिल्हा परिषदेच्या हद्दीत नाही. कृपया पुणे जिल्ह्यातील गाव नाव द्या.",
    },
    GeocodeFailureReason.SERVICE_ERROR: {
        "en": "Technical issue while searching village. Please try again.",
        "mr": "गाव शोधण्यात तांत्रिक समस्या आली. कृपया पुन्हा प्रयत्न करा.",
    },
}


def get_bounds() -> tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) of the service area."""
    return (
        float(os.environ.get("ZP_BOUNDS_MIN_LAT", "18.0")),
        float(os.environ.get("ZP_BOUNDS_MAX_LAT", "19.5")),
        float(os.environ.get("ZP_BOUNDS_MIN_LNG", "73.5")),
        float(os.environ.get("ZP_BOUNDS_MAX_LNG", "75.0")),
    )


def is_within_boundary(lat: float, lng: float) -> bool:
    min_lat, max_lat, min_lng, max_lng = get_bounds()
    return min_lat <= lat <= max_lat and min_lng <= lng <= max_lng


def relevance_score(candidate: GeocodeCandidate, search_term: str) -> int:
    district = os.environ.get("ZP_TARGET_DISTRICT", "pune").lower()
    region = os.environ.get("ZP_TARGET_REGION", "maharashtra").lower()
    term = search_term.strip().lower()
    score = 0
    for comp in candidate.address_components:
        long_name = comp.long_name.lower()
        short_name = comp.short_name.lower()
        if term in (long_name, short_name):
            score += 100
        elif term and (term in long_name or term in short_name):
            score += 50
        if "administrative_area_level_2" in comp.types and district in long_name:
            score += 30
        if "administrative_area_level_1" in comp.types and region in long_name:
            score += 20
    if term and term in candidate.formatted_address.lower():
        score += 25
    score += LOCATION_TYPE_BONUS.get(candidate.location_type or "", 0)
    return score


def extract_administrative_labels(candidate: GeocodeCandidate) -> AdministrativeLabels:
    labels: dict[str, str] = {}
    for comp in candidate.address_components:
        for types, label in COMPONENT_LABELS:
            if label not in labels and any(t in comp.types for t in types):
                labels[label] = comp.long_name
                break
    return AdministrativeLabels(**labels)


def _failure(village_name: str, reason: GeocodeFailureReason, language: str, **extra) -> GeocodeOutcome:
    messages = FAILURE_MESSAGES[reason]
    return GeocodeOutcome(
        success=False,
        query=village_name,
        reason=reason,
        message=messages.get(language, messages["en"]),
        **extra,
    )


def resolve(village_name: str, language: str = "en") -> GeocodeOutcome:
    """
    Resolve a free-text village name to a validated location inside the service area.
    Never raises: provider trouble comes back as a service_error outcome.
    """
    if not (village_name or "").strip():
        return _failure(village_name or "", GeocodeFailureReason.NOT_FOUND, language)
    village_name = village_name.strip()
    logger.info("Geocoding village: %s", village_name)

    cached = get_cached_geocode(village_name)
    if cached:
        logger.info("Using cached geocode for %s", village_name)
        return cached

    provider_language = "hi" if language == "mr" else "en"
    best: GeocodeCandidate | None = None
    best_score = 0
    errors = 0
    for template in QUERY_TEMPLATES:
        query = template.format(village=village_name)
        try:
            candidates = provider.lookup(query, region_hint="in", language=provider_language)
        except GeocodingProviderError as exc:
            logger.warning("Geocoding query failed for %r: %s", query, exc)
            errors += 1
            continue
        if not candidates:
            continue
        candidate = candidates[0]
        score = relevance_score(candidate, village_name)
        if best is None or score > best_score:
            best, best_score = candidate, score

    if best is None:
        if errors == len(QUERY_TEMPLATES):
            logger.error("Geocoding service unavailable for %s", village_name)
            return _failure(village_name, GeocodeFailureReason.SERVICE_ERROR, language)
        return _failure(village_name, GeocodeFailureReason.NOT_FOUND, language)

    if not is_within_boundary(best.lat, best.lng):
        logger.info("Village %s resolved outside boundary at %s,%s", village_name, best.lat, best.lng)
        return _failure(
            village_name,
            GeocodeFailureReason.OUT_OF_BOUNDARY,
            language,
            coordinates=Coordinates(latitude=best.lat, longitude=best.lng),
            formatted_address=best.formatted_address,
        )

    outcome = GeocodeOutcome(
        success=True,
        query=village_name,
        coordinates=Coordinates(latitude=best.lat, longitude=best.lng),
        administrative=extract_administrative_labels(best),
        formatted_address=best.formatted_address,
        place_id=best.place_id,
        location_type=best.location_type,
        confidence=float(min(best_score, 100)),
        cached_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    )
    cache_geocode(village_name, outcome)
    logger.info("Successfully geocoded %s: %s, %s", village_name, best.lat, best.lng)
    return outcome
