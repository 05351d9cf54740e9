import time

import pytest
from fastapi.testclient import TestClient

from agent.main import build_services
from agent.prompts import REGISTRATION_RESPONSE_PROMPT
from agent.registration import messages
from apps.bot import create_app
from dedupe.cache import IdempotencyCache
from shared.keyed_lock import KeyedLock

PHONE = "5521987654321"


def _payload(text, message_id):
    return {
        "event": "MESSAGES_UPSERT",
        "data": {
            "key": {"remoteJid": f"{PHONE}@s.whatsapp.net", "fromMe": False, "id": message_id},
            "message": {"conversation": text},
        },
    }


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def client(settings, stores, inference, embeddings, embedding_jobs, messenger):
    services = build_services(
        settings,
        stores=stores,
        inference=inference,
        embeddings=embeddings,
        embedding_jobs=embedding_jobs,
        dedupe=IdempotencyCache(),
        locks=KeyedLock(),
    )
    with TestClient(create_app(services=services, adapter=messenger)) as c:
        yield c


def test_health(client):
    assert client.get("/").json() == {"status": "ok"}
    assert client.head("/").status_code == 200


def test_webhook_queues_and_replies(client, inference, messenger):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError())

    response = client.post("/webhook", json=_payload("oi", "MSG1"))

    assert response.status_code == 200
    assert response.json() == {"status": "queued"}
    assert _wait_for(lambda: messenger.sent)
    assert messenger.sent == [(PHONE, messages.WELCOME)]


def test_redelivered_message_is_answered_once(client, inference, messenger):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError())

    client.post("/webhook", json=_payload("oi", "MSG1"))
    client.post("/webhook", json=_payload("oi", "MSG1"))
    client.post("/webhook", json=_payload("alguém aí?", "MSG2"))

    assert _wait_for(lambda: len(messenger.sent) >= 2)
    time.sleep(0.2)
    assert [reply for _, reply in messenger.sent] == [messages.WELCOME, messages.ASK_NAME]


def test_webhook_ignores_other_events(client, messenger):
    response = client.post("/webhook", json={"event": "connection.update", "data": {"state": "open"}})

    assert response.json() == {"status": "ignored"}
    assert messenger.sent == []


def test_webhook_bad_json(client):
    response = client.post("/webhook", content=b"not json", headers={"content-type": "application/json"})
    assert response.status_code == 200


def test_network_endpoint(client, owner, contact_store):
    contact_store.create_contact(owner.user_id, {"name": "João Silva"})

    body = client.get(f"/network/{owner.user_id}").json()

    assert {n["type"] for n in body["nodes"]} == {"user", "contact"}
    assert len(body["edges"]) == 1


def test_network_endpoint_unknown_user(client):
    assert client.get("/network/nobody").status_code == 404


def test_embedding_backfill_endpoint(client, owner, contact_store):
    contact_store.create_contact(owner.user_id, {"name": "Carlos Lima", "position": "advogado"})
    contact_store.create_contact(owner.user_id, {"name": "Bruna Dias"})

    assert client.post(f"/contacts/{owner.user_id}/embeddings").json() == {"scheduled": 2}
    assert len(contact_store.embeddings) == 2
