"""
Post-registration Q&A. LLM with the citizen's recent chat history and the FAQ
snippet as knowledge; FAQ or a canned pointer to the office when the LLM is unavailable.
"""

import logging

from src.nlp.llm_chat import get_llm_reply
from src.qa.faq import get_faq_reply
from src.registration.messages import helpline
from src.schemas import ChatMessage, ChatRole, CitizenRecord

logger = logging.getLogger(__name__)

HISTORY_TURNS = 8

SYSTEM_PROMPT = """You are the official WhatsApp assistant of Pune Zilla Panchayat (ZP), Maharashtra.
You are talking to {name} from {village} village, {district} district. They are already registered.

- Be polite, warm and brief: at most four short sentences.
- Reply ONLY in {language_name}.
- Answer questions about ZP services, rural schemes, certificates and offices. If you are not sure,
  say so and point them to the office: {helpline}
- Do not invent scheme amounts, deadlines or eligibility rules. Do not say you are an AI.
{knowledge}"""

LANGUAGE_NAMES = {"en": "English", "mr": "Marathi (Devanagari script)"}

NO_ANSWER = {
    "en": "Thank you for your question. I could not find an answer right now. Please contact our office: {helpline}",
    "mr": "आपल्या प्रश्नाबद्दल धन्यवाद. सध्या मला उत्तर सापडले नाही. कृपया कार्यालयाशी संपर्क साधा: {helpline}",
}


def _history_dicts(history: list[ChatMessage]) -> list[dict[str, str]]:
    return [
        {"role": "user" if m.role == ChatRole.USER else "assistant", "text": m.content}
        for m in history[-HISTORY_TURNS:]
    ]


def answer_question(
    citizen: CitizenRecord,
    question: str,
    language: str = "en",
    history: list[ChatMessage] | None = None,
) -> str:
    """Reply to a registered citizen's message. Always returns text."""
    knowledge = get_faq_reply(question, language)
    prompt = SYSTEM_PROMPT.format(
        name=citizen.name or "the citizen",
        village=citizen.village or "their",
        district=citizen.district or "Pune",
        language_name=LANGUAGE_NAMES.get(language, "English"),
        helpline=helpline(),
        knowledge=f"\nRelevant information:\n{knowledge}" if knowledge else "",
    )
    reply = get_llm_reply(prompt, _history_dicts(history or []), question)
    if reply:
        return reply
    if knowledge:
        return knowledge
    logger.info("No answer for %s; pointing to office", citizen.whatsapp_number)
    template = NO_ANSWER.get(language) or NO_ANSWER["en"]
    return template.format(helpline=helpline())
