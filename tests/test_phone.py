import pytest

from agent.main import build_services
from shared import phone
from shared.config import Settings


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("21987654321", "5521987654321"),
        ("+55 21 98765-4321", "5521987654321"),
        ("(021) 98765-4321", "5521987654321"),
        ("5521987654321", "5521987654321"),
        ("+55 21 8765-4321", "552187654321"),
        ("2187654321", "552187654321"),
    ],
)
def test_normalize_formatting_variants(raw, expected):
    assert phone.normalize(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", "123", "12345678901234567"])
def test_normalize_rejects_invalid_input(raw):
    assert phone.normalize(raw) is None
    assert phone.is_valid(raw) is False


def test_normalize_is_idempotent():
    for raw in ("21987654321", "+55 21 8765-4321", "(011) 3456-7890"):
        once = phone.normalize(raw)
        assert phone.normalize(once) == once


def test_variants_of_nine_digit_mobile():
    assert phone.variants("21987654321") == {"5521987654321", "552187654321"}


def test_variants_of_eight_digit_number():
    assert phone.variants("+55 21 8765-4321") == {"552187654321", "5521987654321"}


def test_variants_meet_across_formats():
    assert phone.variants("21 98765-4321") & phone.variants("552187654321")


def test_thirteen_digit_number_without_mobile_prefix_has_single_variant():
    assert phone.variants("5521887654321") == {"5521887654321"}


def test_variants_of_invalid_number_is_empty():
    assert phone.variants("42") == set()


def test_variants_of_many_unions_and_skips_invalid():
    out = phone.variants_of_many(["21987654321", None, "x", "1134567890"])
    assert out == {"5521987654321", "552187654321", "551134567890", "5511934567890"}


def test_format_phone_international_display():
    assert phone.format_phone("21987654321") == "+55 21 98765-4321"


def test_format_phone_keeps_unparseable_input():
    assert phone.format_phone("123") == "123"
    assert phone.format_phone(None) == ""


def test_configured_country_code():
    phone.configure("+1")

    assert phone.current_country_code() == "1"
    assert phone.normalize("(212) 555-0100") == "12125550100"
    assert phone.normalize("+1 212 555 0100") == "12125550100"
    assert phone.normalize("21987654321") == "121987654321"


def test_explicit_country_code_wins():
    phone.configure("1")
    assert phone.normalize("21987654321", country_code="55") == "5521987654321"


def test_configure_rejects_empty_code():
    with pytest.raises(ValueError):
        phone.configure("+")


def test_build_services_applies_country_code(stores, inference, embeddings, embedding_jobs):
    build_services(
        Settings(store_backend="memory", default_country_code="1"),
        stores=stores, inference=inference, embeddings=embeddings, embedding_jobs=embedding_jobs,
    )
    assert phone.current_country_code() == "1"
    assert phone.normalize("212 555 0100") == "12125550100"
