import asyncio
import threading
import time

import pytest

from adapters.whatsapp.evolution_adapter import EvolutionAdapter, message_text, normalize_event, sender_phone
from agent.main import build_services, handle_inbound
from agent.prompts import REGISTRATION_RESPONSE_PROMPT
from agent.registration import messages
from contacts import formatting
from dedupe.cache import IdempotencyCache
from models.decision import DecisionOutcome, TargetAgent
from models.input import InboundMessage
from route.route_input import route_input
from shared.keyed_lock import KeyedLock
from shared.message_worker import _queue_worker, message_queue, process_message

UNKNOWN_PHONE = "5521987654321"


def evolution_payload(text="Oi", *, event="messages.upsert", message_id="MSG1", **key):
    return {
        "event": event,
        "instance": "netloop",
        "data": {
            "key": {"remoteJid": f"{UNKNOWN_PHONE}@s.whatsapp.net", "fromMe": False, "id": message_id, **key},
            "pushName": "Maria",
            "message": {"conversation": text},
        },
    }


@pytest.fixture
def services(settings, stores, inference, embeddings, embedding_jobs):
    return build_services(
        settings,
        stores=stores,
        inference=inference,
        embeddings=embeddings,
        embedding_jobs=embedding_jobs,
        dedupe=IdempotencyCache(),
        locks=KeyedLock(),
    )


# --- route_input --------------------------------------------------------------

def test_unknown_number_goes_to_registration(user_store):
    decision = route_input(InboundMessage(message_id="m1", phone=UNKNOWN_PHONE, text="oi"), user_store, IdempotencyCache())

    assert decision.outcome == DecisionOutcome.ROUTE
    assert decision.target_agent == TargetAgent.REGISTRATION
    assert decision.user is None


def test_known_number_by_phone_variant(user_store, owner):
    # owner is stored as 5521911112222; the 8-digit form still identifies them
    msg = InboundMessage(message_id="m1", phone="552111112222", text="quem é o João?")
    decision = route_input(msg, user_store, IdempotencyCache())

    assert decision.target_agent == TargetAgent.CONTACTS
    assert decision.user.user_id == owner.user_id


def test_duplicate_message_is_ignored(user_store):
    cache = IdempotencyCache()
    msg = InboundMessage(message_id="m1", phone=UNKNOWN_PHONE, text="oi")

    assert route_input(msg, user_store, cache).outcome == DecisionOutcome.ROUTE
    second = route_input(msg, user_store, cache)
    assert second.outcome == DecisionOutcome.IGNORE
    assert second.reason == "duplicate"


def test_empty_text_is_ignored(user_store):
    decision = route_input(InboundMessage(phone=UNKNOWN_PHONE, text="   "), user_store, IdempotencyCache())
    assert decision.outcome == DecisionOutcome.IGNORE


def test_inactive_user_is_ignored(user_store, make_user):
    make_user("u-inactive", "Inativo", "5511988887777", status="inactive")
    decision = route_input(InboundMessage(phone="5511988887777", text="quem é o João?"), user_store, IdempotencyCache())
    assert decision.outcome == DecisionOutcome.IGNORE


def test_idempotency_cache_expires(clock):
    cache = IdempotencyCache(ttl_seconds=60)
    assert cache.check_and_mark("m1") is False
    assert cache.check_and_mark("m1") is True
    clock.advance(seconds=61)
    assert cache.check_and_mark("m1") is False
    assert cache.check_and_mark("m1") is True


# --- evolution webhook parsing ------------------------------------------------

def test_parse_text_message():
    msg = EvolutionAdapter(None, None, None).parse_incoming(evolution_payload("  quem é o João?  "))

    assert msg.message_id == "MSG1"
    assert msg.phone == UNKNOWN_PHONE
    assert msg.text == "quem é o João?"
    assert msg.push_name == "Maria"


@pytest.mark.parametrize("event", ["MESSAGES_UPSERT", "messages.upsert", "messages_upsert"])
def test_event_name_variants(event):
    assert normalize_event(event) == "messages.upsert"
    assert EvolutionAdapter(None, None, None).parse_incoming(evolution_payload(event=event)) is not None


@pytest.mark.parametrize(
    "payload",
    [
        evolution_payload(event="connection.update"),
        evolution_payload(fromMe=True),
        {"event": "messages.upsert", "data": {}},
        {"event": "messages.upsert", "data": {"key": {"remoteJid": "x@s.whatsapp.net"}, "message": {}}},
        {},
    ],
)
def test_ignored_payloads(payload):
    assert EvolutionAdapter(None, None, None).parse_incoming(payload) is None


def test_sender_phone_priority():
    key = {"remoteJid": "123@lid", "participant": "5511911112222@s.whatsapp.net", "senderPn": "5521933334444@s.whatsapp.net"}
    assert sender_phone(key) == "5521933334444"
    del key["senderPn"]
    assert sender_phone(key) == "5511911112222"
    del key["participant"]
    assert sender_phone(key) == "123"


def test_message_text_sources():
    assert message_text({"extendedTextMessage": {"text": "link aqui"}}) == "link aqui"
    assert message_text({"imageMessage": {"caption": "cartão do João"}}) == "cartão do João"
    assert message_text({"audioMessage": {}}) is None


def test_send_without_configuration_fails_softly():
    assert asyncio.run(EvolutionAdapter(None, None, None).send_text(UNKNOWN_PHONE, "oi")) is False


# --- handle_inbound -----------------------------------------------------------

def test_handle_inbound_unknown_number_registers(services, inference):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError())
    reply = handle_inbound(services, InboundMessage(message_id="m1", phone=UNKNOWN_PHONE, text="oi"))

    assert reply == messages.WELCOME
    assert services.registration.get_active_flow(UNKNOWN_PHONE) is not None


def test_handle_inbound_known_user(services, owner):
    reply = handle_inbound(services, InboundMessage(message_id="m1", phone=owner.phone, text="Bom dia"))
    assert reply == formatting.GREETING_REPLY


def test_handle_inbound_duplicate_returns_nothing(services, owner):
    msg = InboundMessage(message_id="m1", phone=owner.phone, text="Bom dia")
    assert handle_inbound(services, msg) is not None
    assert handle_inbound(services, msg) is None


def test_process_message_sends_reply(services, owner, messenger):
    msg = InboundMessage(message_id="m1", phone=owner.phone, text="Oi")
    assert asyncio.run(process_message(services, messenger, msg)) == formatting.GREETING_REPLY
    assert messenger.sent == [(owner.phone, formatting.GREETING_REPLY)]


def test_process_message_failure_still_replies(services, messenger, monkeypatch):
    def broken(phone, text):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(services.registration, "handle_message", broken)
    msg = InboundMessage(message_id="m1", phone=UNKNOWN_PHONE, text="oi")

    assert asyncio.run(process_message(services, messenger, msg)) == formatting.GENERIC_FAILURE
    assert messenger.sent == [(UNKNOWN_PHONE, formatting.GENERIC_FAILURE)]


def test_keyed_lock_releases_keys():
    locks = KeyedLock()
    with locks.hold("a"):
        with locks.hold("b"):
            assert len(locks) == 2
    assert len(locks) == 0


def _slow_model_failure(started):
    def reply(text):
        started.set()
        time.sleep(0.1)
        raise TimeoutError("model down")
    return reply


def test_same_phone_messages_are_handled_one_at_a_time(services, inference, flow_store):
    started = threading.Event()
    inference.script(REGISTRATION_RESPONSE_PROMPT, _slow_model_failure(started))

    first = threading.Thread(
        target=handle_inbound, args=(services, InboundMessage(message_id="m1", phone=UNKNOWN_PHONE, text="oi"))
    )
    second = threading.Thread(
        target=handle_inbound, args=(services, InboundMessage(message_id="m2", phone=UNKNOWN_PHONE, text="tudo bem?"))
    )
    first.start()
    assert started.wait(timeout=2)
    # the first turn is inside the model call when the second arrives
    second.start()
    first.join(timeout=5)
    second.join(timeout=5)

    flow = flow_store.get(UNKNOWN_PHONE)
    assert flow.attempts_count == 2
    assert [m.content for m in flow.conversation_history if m.role == "user"] == ["oi", "tudo bem?"]


def test_worker_answers_same_phone_in_arrival_order(services, inference, messenger):
    inference.script(REGISTRATION_RESPONSE_PROMPT, _slow_model_failure(threading.Event()))

    async def run():
        stop = asyncio.Event()
        message_queue.clear()
        message_queue.extend([
            InboundMessage(message_id="m1", phone=UNKNOWN_PHONE, text="oi"),
            InboundMessage(message_id="m2", phone=UNKNOWN_PHONE, text="tudo bem?"),
        ])
        worker = asyncio.create_task(_queue_worker(stop, services, messenger))
        for _ in range(250):
            if len(messenger.sent) >= 2:
                break
            await asyncio.sleep(0.02)
        stop.set()
        await worker

    asyncio.run(run())

    assert messenger.sent == [(UNKNOWN_PHONE, messages.WELCOME), (UNKNOWN_PHONE, messages.ASK_NAME)]
    assert services.registration.get_active_flow(UNKNOWN_PHONE).attempts_count == 2
