import pytest

from src.registry.store import get_citizen, get_chat_history
from src.schemas import ChatRole
from src.whatsapp import pipeline
from src.whatsapp.payloads import WebhookPayload, first_inbound_message

NUMBER = "919800000003"


def _delivery(message: dict, name: str | None = "Ramesh") -> dict:
    value = {
        "messaging_product": "whatsapp",
        "metadata": {"display_phone_number": "15550000000", "phone_number_id": "phone-id"},
        "messages": [{"from": NUMBER, "id": f"wamid.{message.get('type')}", "timestamp": "1714550000", **message}],
    }
    if name:
        value["contacts"] = [{"wa_id": NUMBER, "profile": {"name": name}}]
    return {"object": "whatsapp_business_account", "entry": [{"id": "waba", "changes": [{"field": "messages", "value": value}]}]}


def _text(body: str) -> dict:
    return _delivery({"type": "text", "text": {"body": body}})


@pytest.fixture
def outbox(monkeypatch):
    sent: list[tuple[str, str, str]] = []

    def fake_send(phone_number_id, recipient, text, limiter=None, reply_to=None):
        sent.append((phone_number_id, recipient, text))
        return []

    monkeypatch.setattr(pipeline, "send_text", fake_send)
    monkeypatch.setattr("src.nlp.preprocessing.detect", lambda text: "en")
    return sent


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_verification_handshake(client, monkeypatch):
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "secret")
    params = {"hub.mode": "subscribe", "hub.verify_token": "secret", "hub.challenge": "1158201444"}
    r = client.get("/webhook", params=params)
    assert r.status_code == 200
    assert r.text == "1158201444"


def test_verification_rejects_wrong_token(client, monkeypatch):
    monkeypatch.setenv("WHATSAPP_VERIFY_TOKEN", "secret")
    params = {"hub.mode": "subscribe", "hub.verify_token": "guess", "hub.challenge": "1"}
    assert client.get("/webhook", params=params).status_code == 403


def test_status_only_delivery_is_ignored(client, outbox):
    body = {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.x", "status": "read"}]}}]}],
    }
    r = client.post("/webhook", json=body)
    assert r.json()["status"] == "ignored"
    assert outbox == []


def test_registration_over_webhook(client, outbox, geocoder):
    for body in ("Hi", "Ramesh Patil", "Saswad"):
        r = client.post("/webhook", json=_text(body))
        assert r.status_code == 200
        assert r.json()["status"] == "accepted"

    replies = [text for _, _, text in outbox]
    assert len(replies) == 3
    assert "Ramesh Sir/Madam" in replies[0]
    assert "village" in replies[1].lower()
    assert "Congratulations Ramesh Patil" in replies[2]
    assert all(phone == "phone-id" and to == NUMBER for phone, to, _ in outbox)

    citizen = get_citizen(NUMBER)
    assert citizen.is_registered
    assert citizen.display_name == "Ramesh"
    history = get_chat_history(NUMBER, limit=10)
    assert [m.role for m in history] == [ChatRole.USER, ChatRole.ASSISTANT] * 3
    assert history[-1].state_snapshot["outcome"] == "completed"
    assert history[-1].extraction_snapshot["village_name"] == "Saswad"

    r = client.get(f"/citizens/{NUMBER}")
    assert r.json()["current_state"] == "completed"
    states = client.get(f"/citizens/{NUMBER}/states").json()["states"]
    assert [s["state_id"] for s in states] == ["completed", "awaiting_village", "awaiting_name", "initial"]


def test_registered_citizen_gets_faq_answer(client, outbox, geocoder):
    for body in ("Hi", "Ramesh Patil", "Saswad", "Tell me about housing scheme"):
        client.post("/webhook", json=_text(body))
    assert "Awas" in outbox[-1][2]


def test_interactive_reply_is_read_as_text(client, outbox):
    client.post("/webhook", json=_text("Hi"))
    body = _delivery(
        {"type": "interactive", "interactive": {"type": "button_reply", "button_reply": {"id": "b1", "title": "Ramesh Patil"}}}
    )
    client.post("/webhook", json=body)
    assert get_citizen(NUMBER).user_provided_name == "Ramesh Patil"


def test_image_message_gets_text_only_notice(client, outbox):
    client.post("/webhook", json=_delivery({"type": "image", "image": {"id": "media-1"}}))
    assert len(outbox) == 1
    assert "only process text messages" in outbox[0][2]
    assert get_chat_history(NUMBER) == []


def test_pipeline_failure_sends_fallback(client, outbox, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(pipeline, "get_or_create_citizen", broken)
    r = client.post("/webhook", json=_text("Hi"))
    assert r.status_code == 200
    assert "technical difficulties" in outbox[-1][2]


def test_citizen_not_found(client):
    assert client.get("/citizens/910000000000").status_code == 404


def test_button_message_text():
    payload = WebhookPayload.model_validate(_delivery({"type": "button", "button": {"payload": "START", "text": ""}}))
    message = first_inbound_message(payload)
    assert message.text == "START"
    assert message.contact_name == "Ramesh"
    assert message.phone_number_id == "phone-id"
