import pytest

from shared.names import is_name_match, normalize_name, rank_suggestions, similarity, slugify


def test_normalize_name_strips_accents_and_case():
    assert normalize_name("  JOÃO   da  Silva ") == "joao da silva"


def test_normalize_name_phonetic_table():
    assert normalize_name("Matheus") == "mateus"
    assert normalize_name("Raphael") == "rafael"
    assert normalize_name("Wellyngton") == "vellington"


@pytest.mark.parametrize(
    "a, b",
    [("Ana", "Anna"), ("João", "Joana"), ("Vinícius", "Vinicio"), ("Carlos Lima", "Carla")],
)
def test_similarity_is_symmetric(a, b):
    assert similarity(a, b) == similarity(b, a)


def test_accent_variants_are_identical():
    assert similarity("João", "Joao") == 1.0


def test_phonetic_variants_match():
    assert similarity("Matheus", "Mateus") >= 0.85
    assert is_name_match("Matheus", "Mateus")


def test_containment_scores_point_nine():
    assert similarity("João", "João Silva") == 0.9


def test_edit_distance_score():
    assert similarity("Vinicius", "Vinicio") == pytest.approx(0.75)


def test_empty_names_never_match():
    assert similarity("", "Ana") == 0.0
    assert similarity(None, None) == 0.0


def test_similarity_bounds():
    score = similarity("Roberta", "Xu")
    assert 0.0 <= score <= 1.0


def test_rank_suggestions_excludes_exact_and_low_scores():
    ranked = rank_suggestions("Vinicio", ["Vinícius", "Vinicio", "Roberta", "", "Vinícius"])
    assert ranked == [("Vinícius", pytest.approx(0.75))]


def test_rank_suggestions_orders_best_first_and_limits():
    ranked = rank_suggestions("Mariana", ["Marina", "Mariano Souza", "Marian"], threshold=0.5, limit=2)
    assert len(ranked) == 2
    assert ranked[0][1] >= ranked[1][1]


def test_slugify():
    assert slugify("  Eventos Tech & IA ") == "eventos-tech-ia"
    assert slugify("São  Paulo") == "sao-paulo"
    assert slugify("") == ""
