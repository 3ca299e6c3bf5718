"""FAQ for registered citizens: Zilla Panchayat services, schemes, certificates, contact."""

from src.registration.messages import helpline

SCHEMES_ANSWER = {
    "en": (
        "Pune Zilla Panchayat runs rural schemes for housing (PM Awas Yojana - Gramin), "
        "sanitation (Swachh Bharat Mission), drinking water (Jal Jeevan Mission) and employment (MGNREGA). "
        "Your Gram Panchayat office can tell you which ones you are eligible for."
    ),
    "mr": (
        "पुणे जिल्हा परिषद ग्रामीण भागासाठी घरकुल (प्रधानमंत्री आवास योजना - ग्रामीण), स्वच्छता (स्वच्छ भारत मिशन), "
        "पिण्याचे पाणी (जल जीवन मिशन) आणि रोजगार (मनरेगा) योजना राबवते. आपण कोणत्या योजनांसाठी पात्र आहात हे "
        "आपल्या ग्रामपंचायत कार्यालयात समजेल."
    ),
}
CERTIFICATES_ANSWER = {
    "en": (
        "Birth, death, residence and no-dues certificates are issued by your Gram Panchayat. "
        "Many can also be applied for online on the Aaple Sarkar portal."
    ),
    "mr": (
        "जन्म, मृत्यू, रहिवासी आणि थकबाकी नसल्याचे दाखले आपल्या ग्रामपंचायतीकडून दिले जातात. "
        "बरेच दाखले आपले सरकार पोर्टलवर ऑनलाइनही मागवता येतात."
    ),
}
GRIEVANCE_ANSWER = {
    "en": (
        "You can describe your complaint here and it will be noted. For urgent issues about water, roads "
        "or sanitation please also inform your Gram Sevak."
    ),
    "mr": (
        "आपली तक्रार येथे लिहा, ती नोंदवली जाईल. पाणी, रस्ते किंवा स्वच्छतेबाबत तातडीच्या अडचणी असल्यास "
        "कृपया आपल्या ग्रामसेवकांनाही कळवा."
    ),
}
OFFICE_ANSWER = {
    "en": "Zilla Parishad Bhavan, Pune is open Monday to Saturday, 10am to 6pm (closed on 2nd and 4th Saturdays).",
    "mr": "जिल्हा परिषद भवन, पुणे सोमवार ते शनिवार सकाळी 10 ते संध्याकाळी 6 पर्यंत सुरू असते (दुसरा व चौथा शनिवार बंद).",
}

SCHEMES_KEYWORDS = ["scheme", "yojana", "awas", "house", "gharkul", "subsidy", "योजना", "घरकुल", "अनुदान"]
CERTIFICATES_KEYWORDS = ["certificate", "dakhla", "birth", "death", "residence", "दाखला", "प्रमाणपत्र"]
GRIEVANCE_KEYWORDS = ["complaint", "problem", "issue", "grievance", "तक्रार", "समस्या", "अडचण"]
OFFICE_KEYWORDS = ["office", "timing", "hours", "address", "open", "कार्यालय", "वेळ", "पत्ता"]
CONTACT_KEYWORDS = ["contact", "phone", "helpline", "number", "call", "संपर्क", "फोन", "हेल्पलाइन"]


def _pick(answer: dict[str, str], language: str) -> str:
    return answer.get(language) or answer["en"]


def get_faq_reply(user_message: str, language: str = "en") -> str | None:
    """Static answer for a known topic, or None."""
    msg = (user_message or "").strip().lower()
    if not msg:
        return None
    if any(k in msg for k in CONTACT_KEYWORDS):
        return helpline()
    if any(k in msg for k in SCHEMES_KEYWORDS):
        return _pick(SCHEMES_ANSWER, language)
    if any(k in msg for k in CERTIFICATES_KEYWORDS):
        return _pick(CERTIFICATES_ANSWER, language)
    if any(k in msg for k in GRIEVANCE_KEYWORDS):
        return _pick(GRIEVANCE_ANSWER, language)
    if any(k in msg for k in OFFICE_KEYWORDS):
        return _pick(OFFICE_ANSWER, language)
    return None
