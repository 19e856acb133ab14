import pytest

from intelimed.persona import BASE_INSTRUCTIONS, PERSONA_INSTRUCTIONS, Persona, instructions_for


@pytest.mark.parametrize("raw,expected", [
    ("senior", Persona.SENIOR),
    ("  Child ", Persona.CHILD),
    ("ANXIOUS", Persona.ANXIOUS),
    ("caregiver", Persona.CAREGIVER),
    ("general", Persona.GENERAL),
    ("pirate", Persona.GENERAL),
    ("", Persona.GENERAL),
    (None, Persona.GENERAL),
])
def test_parse_is_total(raw, expected):
    assert Persona.parse(raw) is expected


def test_every_persona_has_instructions():
    assert set(PERSONA_INSTRUCTIONS) == set(Persona)


def test_instructions_start_with_base_text():
    for p in Persona:
        text = instructions_for(p)
        assert text.startswith(BASE_INSTRUCTIONS)
        assert PERSONA_INSTRUCTIONS[p] in text


def test_persona_specific_content():
    assert "senior citizen" in instructions_for("senior")
    assert "pediatric" in instructions_for("child")
    assert "breathing exercises" in instructions_for("anxious")
    assert "caregiver" in instructions_for("caregiver").lower()


def test_unknown_persona_gets_general_instruction():
    assert instructions_for("doctor") == instructions_for("general")
    assert "professional yet friendly tone" in instructions_for("doctor")
