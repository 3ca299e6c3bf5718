from .entities import extract_name, extract_village
from .intent import IntentSignal, detect_user_intent
from .preprocessing import PreprocessResult, detect_language, normalize_language, preprocess

__all__ = [
    "extract_name",
    "extract_village",
    "IntentSignal",
    "detect_user_intent",
    "PreprocessResult",
    "detect_language",
    "normalize_language",
    "preprocess",
]
