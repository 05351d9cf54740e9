import re

import pytest

from agent.entity_extractor import EntityExtractor
from agent.prompts import REGISTRATION_RESPONSE_PROMPT
from agent.registration import messages
from agent.registration.rules import (
    generate_temporary_password,
    is_affirmative,
    is_negative,
    missing_field,
    parse_email,
    parse_name,
)
from agent.registration.service import RegistrationService, flow_key
from models.registration_flow import RegistrationStep
from shared.config import RegistrationSettings
from store.user_store import verify_password

PHONE = "5521987654321"
PHONE_DISPLAY = "+55 21 98765-4321"

_PASSWORD = re.compile(r"senha temporária: \*(\S+)\*")


def _turn(response, **extracted):
    return {"response": response, "extracted": extracted, "isComplete": False}


@pytest.fixture
def service(flow_store, user_store, inference):
    return RegistrationService(flow_store, user_store, EntityExtractor(inference))


@pytest.fixture
def step_service(flow_store, user_store, inference):
    return RegistrationService(flow_store, user_store, EntityExtractor(inference), RegistrationSettings(mode="step"))


# --- rules --------------------------------------------------------------------

@pytest.mark.parametrize("text", ["sim", "Sim!", "isso mesmo", "sim, é esse", "ok pode ser"])
def test_affirmative(text):
    assert is_affirmative(text)


@pytest.mark.parametrize("text", ["não", "nao, outro número", "N"])
def test_negative(text):
    assert is_negative(text)
    assert not is_affirmative(text)


def test_parse_name_and_email():
    assert parse_name("  Maria   Silva ") == "Maria Silva"
    assert parse_name("Jo") is None
    assert parse_name("Oi") is None
    assert parse_email(" Maria@Example.COM ") == "maria@example.com"
    assert parse_email("maria@") is None


def test_temporary_password():
    password = generate_temporary_password()
    assert len(password) == 8
    assert password != generate_temporary_password()


def test_flow_key_accepts_any_format():
    assert flow_key("+55 (21) 98765-4321") == PHONE
    assert flow_key("123") == "123"


# --- conversational variant ---------------------------------------------------

def test_conversational_registration_completes(service, inference, user_store, flow_store):
    inference.script(
        REGISTRATION_RESPONSE_PROMPT,
        _turn("Oi! Como você se chama?"),
        _turn(f"Prazer, Maria! Seu número é {PHONE_DISPLAY}?", name="Maria Silva"),
        _turn("Perfeito! Qual é o seu email?", phoneConfirmed=True),
        _turn("Tudo certo!", email="maria@example.com"),
    )

    assert service.handle_message(PHONE, "oi") == "Oi! Como você se chama?"
    assert service.handle_message(PHONE, "Sou a Maria Silva").startswith("Prazer, Maria!")
    assert service.handle_message(PHONE, "sim") == "Perfeito! Qual é o seu email?"
    reply = service.handle_message(PHONE, "maria@example.com")

    user = user_store.get_by_email("maria@example.com")
    assert user is not None
    assert user.name == "Maria Silva"
    assert user.phone == PHONE
    assert reply.startswith("✅ *Cadastro concluído com sucesso!*")
    password = _PASSWORD.search(reply).group(1)
    assert verify_password(password, user.password_hash)

    flow = flow_store.get(PHONE)
    assert flow.step == RegistrationStep.COMPLETED
    assert flow.user_id == user.user_id
    assert flow.attempts_count == 4
    assert len(flow.conversation_history) == 8
    assert password not in flow.conversation_history[-1].content
    assert "********" in flow.conversation_history[-1].content
    assert service.get_active_flow(PHONE) is None


def test_history_is_sent_to_the_model(service, inference):
    inference.script(REGISTRATION_RESPONSE_PROMPT, _turn("Oi! Como você se chama?"), _turn("Prazer!", name="Maria Silva"))

    service.handle_message(PHONE, "oi")
    service.handle_message(PHONE, "Maria Silva")

    assert inference.histories[0] == []
    assert inference.histories[1] == [
        {"role": "user", "content": "oi"},
        {"role": "assistant", "content": "Oi! Como você se chama?"},
    ]


def test_phone_confirmation_requires_a_name(service, inference, flow_store):
    inference.script(REGISTRATION_RESPONSE_PROMPT, _turn("Como você se chama?", phoneConfirmed=True))
    service.handle_message(PHONE, "sim, é meu número")

    assert flow_store.get(PHONE).extracted_data.phone_confirmed is False


def test_known_name_is_not_replaced(service, inference, flow_store):
    inference.script(
        REGISTRATION_RESPONSE_PROMPT,
        _turn("Prazer, Maria!", name="Maria Silva"),
        _turn("Certo.", name="Joana Dias"),
    )
    service.handle_message(PHONE, "Maria Silva")
    service.handle_message(PHONE, "minha amiga Joana Dias também quer usar")

    assert flow_store.get(PHONE).name == "Maria Silva"


def test_email_already_registered(service, inference, flow_store, make_user):
    make_user("existing", "Outra Maria", "5511900001111", email="maria@example.com")
    inference.script(
        REGISTRATION_RESPONSE_PROMPT,
        _turn("Prazer!", name="Maria Silva", phoneConfirmed=True),
        _turn("Tudo certo!", email="maria@example.com"),
        _turn("Agora sim!", email="maria.silva@example.com"),
    )

    service.handle_message(PHONE, "Maria Silva, este número mesmo")
    assert service.handle_message(PHONE, "maria@example.com") == messages.EMAIL_TAKEN

    flow = flow_store.get(PHONE)
    assert flow.step != RegistrationStep.COMPLETED
    assert flow.extracted_data.email is None
    assert missing_field(flow) == "email"

    reply = service.handle_message(PHONE, "maria.silva@example.com")
    assert reply.startswith("✅")
    assert flow_store.get(PHONE).email == "maria.silva@example.com"


def test_registration_completes_without_inference(service, inference, flow_store, user_store):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError("model down"))
    ask_phone = messages.ASK_PHONE_CONFIRMATION.format(phone=PHONE_DISPLAY)

    assert service.handle_message(PHONE, "oi") == messages.WELCOME
    assert service.handle_message(PHONE, "tudo bem?") == messages.ASK_NAME
    # third attempt without a name: ask directly
    assert service.handle_message(PHONE, "???") == messages.ASK_NAME
    assert flow_store.get(PHONE).step == RegistrationStep.AWAITING_NAME

    assert service.handle_message(PHONE, "Maria Silva") == ask_phone
    assert flow_store.get(PHONE).step == RegistrationStep.CONVERSATION

    assert service.handle_message(PHONE, "sim") == ask_phone
    assert flow_store.get(PHONE).step == RegistrationStep.AWAITING_PHONE_CONFIRMATION
    assert service.handle_message(PHONE, "não") == messages.PHONE_NOT_CONFIRMED.format(phone=PHONE_DISPLAY)
    # seventh attempt reaches the email threshold, so the email is asked directly too
    assert service.handle_message(PHONE, "sim") == messages.ASK_EMAIL
    assert flow_store.get(PHONE).step == RegistrationStep.AWAITING_EMAIL

    assert service.handle_message(PHONE, "maria@example") == messages.EMAIL_INVALID
    assert service.handle_message(PHONE, "maria@example.com").startswith("✅")

    assert user_store.get_by_email("maria@example.com").name == "Maria Silva"


def test_expired_flow_is_replaced(service, inference, flow_store, clock):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError())
    service.handle_message(PHONE, "oi")
    service.handle_message(PHONE, "oi de novo")
    assert flow_store.get(PHONE).attempts_count == 2

    clock.advance(hours=25)
    assert service.get_active_flow(PHONE) is None

    assert service.handle_message(PHONE, "oi") == messages.WELCOME
    flow = flow_store.get(PHONE)
    assert flow.attempts_count == 1
    assert len(flow.conversation_history) == 2
    assert flow.created_at == clock.now


def test_each_message_extends_expiry(service, inference, clock):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError())
    service.handle_message(PHONE, "oi")
    clock.advance(hours=23)
    service.handle_message(PHONE, "oi")
    clock.advance(hours=23)

    assert service.get_active_flow("+55 21 98765-4321") is not None


def test_expiry_sweep_abandons_stale_flows(service, inference, flow_store, clock):
    inference.script(REGISTRATION_RESPONSE_PROMPT, TimeoutError())
    service.handle_message(PHONE, "oi")
    service.handle_message("5511912345678", "oi")
    clock.advance(hours=12)
    service.handle_message("5511912345678", "ainda aqui")
    clock.advance(hours=13)

    assert service.expire_stale_flows() == 1
    assert flow_store.get(PHONE).step == RegistrationStep.ABANDONED
    assert flow_store.get("5511912345678").step == RegistrationStep.CONVERSATION
    assert service.expire_stale_flows() == 0


# --- step variant -------------------------------------------------------------

def test_step_registration(step_service, inference, flow_store, user_store):
    assert step_service.handle_message(PHONE, "oi") == messages.WELCOME
    flow = flow_store.get(PHONE)
    assert flow.step == RegistrationStep.AWAITING_NAME
    assert flow.extracted_data.phone_confirmed

    assert step_service.handle_message(PHONE, "Jo") == messages.NAME_TOO_SHORT
    assert step_service.handle_message(PHONE, "João Pereira") == messages.NAME_ACCEPTED.format(first_name="João")
    assert flow_store.get(PHONE).step == RegistrationStep.AWAITING_EMAIL
    assert step_service.handle_message(PHONE, "invalido") == messages.EMAIL_INVALID

    reply = step_service.handle_message(PHONE, "Joao@Example.com")
    assert reply.startswith("✅")
    assert "📧 Email: joao@example.com" in reply
    assert user_store.get_by_email("joao@example.com").phone == PHONE
    assert flow_store.get(PHONE).step == RegistrationStep.COMPLETED
    assert inference.calls == []
