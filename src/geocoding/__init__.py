from src.geocoding.provider import GeocodeCandidate, GeocodingProviderError, lookup
from src.geocoding.validator import extract_administrative_labels, is_within_boundary, relevance_score, resolve

__all__ = [
    "GeocodeCandidate",
    "GeocodingProviderError",
    "lookup",
    "extract_administrative_labels",
    "is_within_boundary",
    "relevance_score",
    "resolve",
]
