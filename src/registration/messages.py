"""Localized (English / Marathi) replies for the registration flow."""

import os

DEFAULT_HELPLINE = "Pune Zilla Panchayat helpline: 020-26134806 (Mon-Sat, 10am-6pm)"


def helpline() -> str:
    return os.environ.get("ZP_HELPLINE", DEFAULT_HELPLINE)


def _lang(language: str | None) -> str:
    return "mr" if language == "mr" else "en"


def welcome_message(language: str, display_name: str | None = None) -> str:
    if _lang(language) == "mr":
        greeting = f"{display_name} जी" if display_name else "मित्रा"
        ask = (
            f'WhatsApp वर आपले नाव "{display_name}" दिसते आहे, पण पुष्टीसाठी आपले पूर्ण नाव सांगाल का?'
            if display_name
            else "कृपया आपले पूर्ण नाव सांगाल का?"
        )
        return (
            f"🙏 नमस्कार {greeting}!\n\n"
            "मी पुणे जिल्हा परिषदेचा अधिकृत सहाय्यक आहे.\n\n"
            "आपली सेवा करण्यापूर्वी मला फक्त 2 माहिती हवी आहे:\n"
            "1️⃣ आपले पूर्ण नाव\n"
            "2️⃣ आपले गाव (पुणे जिल्ह्यातील)\n\n"
            f"{ask}\n\n"
            "(उदाहरण: राम शंकर पाटील)"
        )
    greeting = f"{display_name} Sir/Madam" if display_name else "Dear Friend"
    ask = (
        f'I can see your name as "{display_name}" on WhatsApp, but to confirm, could you tell me your full name?'
        if display_name
        else "Could you please tell me your full name?"
    )
    return (
        f"🙏 Hello {greeting}!\n\n"
        "I am the official assistant of Pune Zilla Panchayat.\n\n"
        "Before I can help you, I need just 2 pieces of information:\n"
        "1️⃣ Your full name\n"
        "2️⃣ Your village (within Pune district)\n\n"
        f"{ask}\n\n"
        "(Example: Ram Shankar Patil)"
    )


def completion_message(language: str, name: str, village: str) -> str:
    if _lang(language) == "mr":
        return (
            f"🎉 अभिनंदन {name} जी! आपली नोंदणी यशस्वीरित्या पूर्ण झाली आहे.\n\n"
            "📍 नोंदणीकृत माहिती:\n"
            f"• नाव: {name}\n"
            f"• गाव: {village}\n"
            "• जिल्हा: पुणे\n\n"
            "आता आपण पुणे जिल्हा परिषदेच्या सेवा, योजना किंवा माहितीबद्दल प्रश्न विचारू शकता.\n\n"
            "काय मदत करू?"
        )
    return (
        f"🎉 Congratulations {name}! Your registration has been completed successfully.\n\n"
        "📍 Registered information:\n"
        f"• Name: {name}\n"
        f"• Village: {village}\n"
        "• District: Pune\n\n"
        "You can now ask me about Pune Zilla Panchayat services, schemes or information.\n\n"
        "How can I help you?"
    )


def technical_issue_message(language: str) -> str:
    if _lang(language) == "mr":
        return "क्षमस्व, तांत्रिक समस्या आहे. कृपया पुन्हा प्रयत्न करा."
    return "Sorry, technical issue. Please try again."


def escalation_note(language: str) -> str:
    """Appended to reprompts once a citizen keeps failing a step."""
    if _lang(language) == "mr":
        return f"\n\nअडचण येत असल्यास कृपया कार्यालयाशी संपर्क साधा: {helpline()}"
    return f"\n\nIf you are having trouble, please contact our office: {helpline()}"


def unsupported_message_notice(display_name: str | None = None) -> str:
    if display_name:
        return (
            f"Dear {display_name}, I can only process text messages. Please send your query as text. / "
            f"प्रिय {display_name}, मी फक्त मजकूर संदेश समजू शकतो. कृपया आपला प्रश्न मजकूर स्वरूपात पाठवा."
        )
    return (
        "I can only process text messages. Please send your query as text. / "
        "मी फक्त मजकूर संदेश समजू शकतो. कृपया आपला प्रश्न मजकूर स्वरूपात पाठवा."
    )


def fallback_message(kind: str, display_name: str | None = None) -> str:
    """Bilingual apology for failures outside the registration flow. kind: rate_limit | connectivity | generic."""
    name = f" {display_name}" if display_name else ""
    if kind == "rate_limit":
        return (
            f"🙏 Dear{name}, we are receiving a lot of messages right now. Please try again in a few minutes. / "
            f"प्रिय{name}, सध्या जास्त गर्दी आहे. कृपया काही मिनिटांनी पुन्हा प्रयत्न करा."
        )
    if kind == "connectivity":
        return (
            f"🙏 Dear{name}, I'm having connectivity issues. Please try again shortly. / "
            f"प्रिय{name}, मला कनेक्टिव्हिटी समस्या आहे. कृपया लवकरच पुन्हा प्रयत्न करा."
        )
    return (
        f"🙏 Dear{name}, I'm sorry, I'm having some technical difficulties. Please try again in a moment. / "
        f"प्रिय{name}, क्षमस्व, मला काही तांत्रिक अडचणी येत आहेत. कृपया थोड्या वेळाने पुन्हा प्रयत्न करा."
    )
