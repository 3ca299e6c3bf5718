"""
Human-contact escalation for citizens stuck in a registration step.
Repeated failed attempts or visible frustration → reprompts carry the office helpline.
"""

import os
import re

# Frustration signals, English and Marathi
FRUSTRATION_PATTERN = re.compile(
    r"\b(frustrated|angry|terrible|worst|useless|ridiculous|not\s+working|again\?|still\s+not)\b"
    r"|त्रास|वैताग|काम\s+करत\s+नाही",
    re.I,
)


def max_attempts() -> int:
    return int(os.environ.get("ZP_MAX_REGISTRATION_ATTEMPTS", "5"))


def needs_human_contact(attempts: int, validation_failures: int, text: str) -> tuple[bool, list[str]]:
    """
    Returns (needs_contact, list of trigger reasons).
    `attempts` and `validation_failures` include the turn being answered.
    """
    reasons: list[str] = []
    if attempts + validation_failures >= max_attempts():
        reasons.append("attempt_limit")
    if text and FRUSTRATION_PATTERN.search(text):
        reasons.append("frustration_detected")
    return (len(reasons) > 0, reasons)
