"""Google Geocoding API lookup. One HTTP call per query, bounded timeout, no retry."""

import logging
import os
from typing import Any

import requests
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class AddressComponent(BaseModel):
    long_name: str = ""
    short_name: str = ""
    types: list[str] = Field(default_factory=list)


class GeocodeCandidate(BaseModel):
    formatted_address: str = ""
    address_components: list[AddressComponent] = Field(default_factory=list)
    lat: float
    lng: float
    location_type: str | None = None
    place_id: str | None = None


class GeocodingProviderError(Exception):
    """HTTP failure or a non-OK, non-empty provider status."""


def _timeout() -> float:
    return float(os.environ.get("GEOCODING_TIMEOUT_S", "10"))


def _candidate_from_result(result: dict[str, Any]) -> GeocodeCandidate:
    geometry = result.get("geometry") or {}
    location = geometry.get("location") or {}
    return GeocodeCandidate(
        formatted_address=result.get("formatted_address") or "",
        address_components=[AddressComponent(**c) for c in result.get("address_components") or []],
        lat=location["lat"],
        lng=location["lng"],
        location_type=geometry.get("location_type"),
        place_id=result.get("place_id"),
    )


def lookup(address_query: str, region_hint: str = "in", language: str = "en") -> list[GeocodeCandidate]:
    """
    Candidates for `address_query`, best provider match first.
    ZERO_RESULTS → []. Anything else that is not OK raises GeocodingProviderError.
    """
    api_key = os.environ.get("GOOGLE_MAPS_API_KEY")
    if not api_key:
        raise GeocodingProviderError("GOOGLE_MAPS_API_KEY not set")
    try:
        r = requests.get(
            GEOCODE_URL,
            params={"address": address_query, "key": api_key, "region": region_hint, "language": language},
            timeout=_timeout(),
        )
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as exc:
        raise GeocodingProviderError(f"Geocoding request failed for {address_query!r}: {exc}") from exc

    status = data.get("status")
    if status == "ZERO_RESULTS":
        return []
    if status != "OK":
        raise GeocodingProviderError(f"Geocoding status {status}: {data.get('error_message', '')}".strip())
    try:
        return [_candidate_from_result(res) for res in data.get("results") or []]
    except (KeyError, TypeError, ValueError) as exc:
        raise GeocodingProviderError(f"Malformed geocoding result for {address_query!r}") from exc
