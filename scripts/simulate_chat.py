"""
Drive one registration through a running server by posting WhatsApp webhook payloads.
Outgoing replies fail without WHATSAPP_ACCESS_TOKEN; the state machine still advances.
Run with: from project root, server must be running (uvicorn src.main:app).
  python scripts/simulate_chat.py
"""
import os
import time

import requests

BASE = os.environ.get("ZP_BASE_URL", "http://127.0.0.1:8000")
NUMBER = os.environ.get("ZP_TEST_NUMBER", "919800000001")
TIMEOUT = 15

MESSAGES = ["Hello", "Ramesh Patil", "Saswad"]


def _webhook(text: str, i: int) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "sim",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {"display_phone_number": "0000", "phone_number_id": "sim-phone"},
                            "contacts": [{"wa_id": NUMBER, "profile": {"name": "Ramesh"}}],
                            "messages": [
                                {
                                    "from": NUMBER,
                                    "id": f"wamid.sim.{int(time.time())}.{i}",
                                    "timestamp": str(int(time.time())),
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                    }
                ],
            }
        ],
    }


def main():
    r = requests.get(f"{BASE}/health", timeout=TIMEOUT)
    assert r.status_code == 200, f"Health failed: {r.status_code}"
    print("OK /health")

    for i, text in enumerate(MESSAGES):
        r = requests.post(f"{BASE}/webhook", json=_webhook(text, i), timeout=TIMEOUT)
        assert r.status_code == 200, f"Webhook failed: {r.status_code} {r.text}"
        # processing runs in the background after the ack
        time.sleep(3)
        state = requests.get(f"{BASE}/citizens/{NUMBER}", timeout=TIMEOUT).json()
        print(f"OK POST /webhook {text!r} -> state {state.get('current_state')}")

    r = requests.get(f"{BASE}/citizens/{NUMBER}", timeout=TIMEOUT)
    citizen = r.json()["citizen"]
    print(f"  name: {citizen['user_provided_name']}, village: {citizen['village']}, registered: {citizen['is_registered']}")

    r = requests.get(f"{BASE}/citizens/{NUMBER}/chats", timeout=TIMEOUT)
    for m in r.json()["messages"]:
        print(f"  [{m['role']}] {m['content'][:80]}")


if __name__ == "__main__":
    main()
