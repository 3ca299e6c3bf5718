"""
Preprocessing layer. Re-runnable on clean text.
Whitespace cleanup and language detection (English / Marathi).
"""

import logging
import re
from dataclasses import dataclass

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from src.schemas import Language

logger = logging.getLogger(__name__)

# langdetect is probabilistic; pin the seed so the same text always maps the same way
DetectorFactory.seed = 0

SUPPORTED_LANGUAGES = tuple(lang.value for lang in Language)
DEVANAGARI_PATTERN = re.compile(r"[\u0900-\u097F]")
# langdetect confuses Marathi and Hindi; both are served in Marathi
MARATHI_CODES = {"mr", "hi"}


@dataclass
class PreprocessResult:
    text: str
    language: str = "en"


def normalize_whitespace(text: str) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def normalize_language(code: str | None) -> str:
    """Map any language code onto a supported one. Unknown → 'en'."""
    code = (code or "").strip().lower()
    if code in MARATHI_CODES:
        return Language.MARATHI.value
    if code in SUPPORTED_LANGUAGES:
        return code
    return Language.ENGLISH.value


def detect_language(text: str) -> str:
    """'mr' for Devanagari or Marathi/Hindi text, otherwise 'en'. Never raises."""
    if not text or not text.strip():
        return "en"
    if DEVANAGARI_PATTERN.search(text):
        return "mr"
    try:
        return normalize_language(detect(text))
    except LangDetectException as exc:
        logger.warning("Language detection failed, defaulting to en: %s", exc)
        return "en"


def preprocess(text: str) -> PreprocessResult:
    """Clean whitespace → detect language. Idempotent."""
    t = normalize_whitespace(text)
    if not t:
        return PreprocessResult("", "en")
    return PreprocessResult(t, detect_language(t))
