import pytest

from agent.entity_extractor import EntityExtractor, is_valid_contact_name, is_valid_email
from agent.prompts import CONNECTIONS_EXTRACTION_PROMPT, CONTACT_EXTRACTION_PROMPT, REGISTRATION_RESPONSE_PROMPT
from models.extraction import RegistrationExtracted

COLLABORATOR_ERRORS = [TimeoutError("slow"), RuntimeError("client bug"), ValueError("bad payload"), IndexError("no choices")]


@pytest.mark.parametrize("name", ["João Silva", "Ana", "Dr. Paulo"])
def test_valid_contact_names(name):
    assert is_valid_contact_name(name)


@pytest.mark.parametrize("name", [None, "", "A", "Oi", "oi joão", "Bom dia", "Oi!", "Bom dia!", "Olá, tudo bem?"])
def test_invalid_contact_names(name):
    assert not is_valid_contact_name(name)


def test_email_validation():
    assert is_valid_email("maria@example.com")
    assert not is_valid_email("maria@example")
    assert not is_valid_email("maria example.com")
    assert not is_valid_email(None)


def test_extract_normalizes_phone_and_email(inference):
    inference.script(CONTACT_EXTRACTION_PROMPT, {
        "name": "João Silva",
        "company": "Tech Corp",
        "phone": "21987654321",
        "email": " Joao@Example.com ",
        "tags": ["SIPAT", "", None],
        "confidence": 1.4,
    })
    result = EntityExtractor(inference).extract("João Silva da Tech Corp ...")

    assert result.success
    assert result.data.name == "João Silva"
    assert result.data.phone == "5521987654321"
    assert result.data.email == "joao@example.com"
    assert result.data.tags == ["SIPAT"]
    assert result.data.confidence == 1.0
    assert result.raw_response


def test_extract_drops_invalid_phone_and_email(inference):
    inference.script(CONTACT_EXTRACTION_PROMPT, {"name": "João Silva", "phone": "123", "email": "joao@"})
    result = EntityExtractor(inference).extract("...")

    assert result.success
    assert result.data.phone is None
    assert result.data.email is None


def test_extract_accepts_numeric_phone(inference):
    inference.script(CONTACT_EXTRACTION_PROMPT, '{"name": "João Silva", "phone": 21987654321}')
    assert EntityExtractor(inference).extract("...").data.phone == "5521987654321"


def test_extract_invalid_json_is_a_failure(inference):
    inference.script(CONTACT_EXTRACTION_PROMPT, "Claro! Aqui está: nome João")
    result = EntityExtractor(inference).extract("...")

    assert not result.success
    assert result.reason == "invalid model output"
    assert result.raw_response == "Claro! Aqui está: nome João"


def test_extract_empty_response_is_a_failure(inference):
    inference.script(CONTACT_EXTRACTION_PROMPT, "")
    assert not EntityExtractor(inference).extract("...").success


@pytest.mark.parametrize("error", COLLABORATOR_ERRORS)
def test_extract_inference_error_is_a_failure(inference, error):
    inference.script(CONTACT_EXTRACTION_PROMPT, error)
    result = EntityExtractor(inference).extract("...")

    assert not result.success
    assert result.reason.startswith("inference error")


def test_extract_without_client_is_a_failure():
    assert not EntityExtractor(None).extract("João Silva, advogado").success


@pytest.mark.parametrize("name", ["Oi", "Bom dia!", "Olá, tudo bem?"])
def test_extract_rejects_greeting_as_name(inference, name):
    inference.script(CONTACT_EXTRACTION_PROMPT, {"name": name, "company": "Tech Corp"})
    assert not EntityExtractor(inference).extract(name).success


def test_extract_for_update_allows_missing_name(inference):
    inference.script(CONTACT_EXTRACTION_PROMPT, {"name": "Oi", "email": "novo@empresa.com"})
    result = EntityExtractor(inference).extract("email: novo@empresa.com", require_name=False)

    assert result.success
    assert result.data.name is None
    assert result.data.email == "novo@empresa.com"


def test_extract_with_connections(inference):
    inference.script(CONNECTIONS_EXTRACTION_PROMPT, {
        "contact": {"name": "Pedro Alves", "position": "CTO", "phone": "(21) 98888-7777"},
        "connections": [
            {"name": "Fernanda Rocha", "about": "designer na Globo", "tags": ["design"], "phone": "21 97777-6666"},
            {"name": "", "about": "alguém sem nome"},
            {"name": "Oi"},
        ],
    })
    result = EntityExtractor(inference).extract_with_connections("...")

    assert result.success
    assert result.contact.name == "Pedro Alves"
    assert result.contact.phone == "5521988887777"
    assert [c.name for c in result.connections] == ["Fernanda Rocha"]
    assert result.connections[0].phone == "5521977776666"
    assert result.connections[0].tags == ["design"]


def test_extract_with_connections_null_sections(inference):
    inference.script(CONNECTIONS_EXTRACTION_PROMPT, {"contact": {"name": "Pedro Alves"}, "connections": None})
    result = EntityExtractor(inference).extract_with_connections("...")

    assert result.success
    assert result.connections == []


def test_extract_with_connections_requires_subject_name(inference):
    inference.script(CONNECTIONS_EXTRACTION_PROMPT, {"contact": None, "connections": [{"name": "Fernanda Rocha"}]})
    result = EntityExtractor(inference).extract_with_connections("...")

    assert not result.success
    assert result.reason == "invalid or missing name"


def test_registration_turn(inference):
    inference.script(REGISTRATION_RESPONSE_PROMPT, {
        "response": " Prazer, Maria! ",
        "extracted": {"name": "Maria Silva", "email": "maria@", "phoneConfirmed": True},
        "isComplete": False,
    })
    history = [{"role": "assistant", "content": "Olá!"}]
    result = EntityExtractor(inference).registration_turn(
        "sou a Maria Silva",
        history=history,
        known=RegistrationExtracted(),
        phone_formatted="+55 21 98765-4321",
    )

    assert result.success
    assert result.response == "Prazer, Maria!"
    assert result.extracted.name == "Maria Silva"
    assert result.extracted.email is None
    assert result.extracted.phone_confirmed is True
    assert result.is_complete is False
    assert inference.histories[-1] == history


def test_registration_turn_without_response_is_a_failure(inference):
    inference.script(REGISTRATION_RESPONSE_PROMPT, {"extracted": {"name": "Maria Silva"}})
    result = EntityExtractor(inference).registration_turn(
        "sou a Maria", history=[], known=RegistrationExtracted(), phone_formatted="+55 21 98765-4321",
    )
    assert not result.success


@pytest.mark.parametrize("error", COLLABORATOR_ERRORS)
def test_extract_with_connections_inference_error_is_a_failure(inference, error):
    inference.script(CONNECTIONS_EXTRACTION_PROMPT, error)
    result = EntityExtractor(inference).extract_with_connections("Conheci o João Silva")

    assert not result.success
    assert result.reason.startswith("inference error")


@pytest.mark.parametrize("error", COLLABORATOR_ERRORS)
def test_registration_turn_inference_error_is_a_failure(inference, error):
    inference.script(REGISTRATION_RESPONSE_PROMPT, error)
    result = EntityExtractor(inference).registration_turn(
        "oi", history=[], known=RegistrationExtracted(), phone_formatted="+55 21 98765-4321",
    )
    assert not result.success
