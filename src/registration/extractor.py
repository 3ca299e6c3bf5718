"""
Field extractor: pull the current state's field out of the message.
Dispatch goes through the state graph; states without a field return None.
"""

import logging

from pydantic import BaseModel, Field

from src.nlp.entities import extract_name, extract_village
from src.nlp.llm_chat import get_structured_chat
from src.registration.errors import ProviderError
from src.state.models import ExtractionResult, NameExtraction, RegistrationStateId, VillageExtraction
from src.state.state_registry import get_extraction_model

logger = logging.getLogger(__name__)

EXTRACTOR_TEMPERATURE = 0.1


class ExtractUserName(BaseModel):
    """Extract the user's full name from their message during registration."""

    full_name: str = Field(description="The complete name of the user (first name + last name)")
    confidence: float = Field(description="Confidence level of extraction (0.0 to 1.0)")


class ExtractVillageInfo(BaseModel):
    """Extract village information from the user's message during registration."""

    village_name: str = Field(description="Name of the village mentioned by the user, without district or state")
    confidence: float = Field(description="Confidence level of extraction (0.0 to 1.0)")
    needs_geocoding: bool = Field(description="Whether this village name needs to be validated with geocoding")


EXTRACTION_SCHEMAS = {
    NameExtraction: (ExtractUserName, "Extract the citizen's full name from this message. Language: {language}."),
    VillageExtraction: (
        ExtractVillageInfo,
        "Extract the village name (within Pune district) from this message. Language: {language}.",
    ),
}


def _extract_with_rules(message: str, model: type) -> ExtractionResult | None:
    if model is NameExtraction:
        name, confidence = extract_name(message)
        return NameExtraction(full_name=name, confidence=confidence) if name else None
    village, confidence = extract_village(message)
    return VillageExtraction(village_name=village, confidence=confidence) if village else None


def extract(message: str, current_state: RegistrationStateId, language: str = "en") -> ExtractionResult | None:
    """
    Extraction for `current_state`, or None when the state has no field or nothing
    usable was found. Raises ProviderError if the LLM call fails.
    """
    model = get_extraction_model(current_state)
    if model is None:
        return None
    schema, instruction = EXTRACTION_SCHEMAS[model]
    runnable = get_structured_chat(schema, temperature=EXTRACTOR_TEMPERATURE)
    if runnable is None:
        result = _extract_with_rules(message, model)
    else:
        try:
            raw = runnable.invoke([("system", instruction.format(language=language)), ("human", message)])
        except Exception as exc:
            raise ProviderError(f"Extraction failed for {current_state.value}: {exc}") from exc
        if raw is None:
            raise ProviderError(f"Extraction for {current_state.value} returned no result")
        result = model.model_validate(raw.model_dump())
        # An empty value is no extraction at all
        if not (getattr(result, "full_name", None) or getattr(result, "village_name", None) or "").strip():
            result = None
    logger.info("Extracted data for %s: %s", current_state.value, result.model_dump(mode="json") if result else None)
    return result
