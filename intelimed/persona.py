"""
Persona catalog.

A persona is a request parameter that selects the tone and content rules the
assistant follows. It is never persisted as an entity of its own; chat turns
only record the persona name they were produced under.

Unknown persona strings are not an error: they resolve to GENERAL so the chat
surface keeps working with older or misconfigured clients.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Union


class Persona(str, Enum):
    SENIOR = "senior"
    CHILD = "child"
    ANXIOUS = "anxious"
    CAREGIVER = "caregiver"
    GENERAL = "general"

    @classmethod
    def parse(cls, value: Optional[Union[str, "Persona"]]) -> "Persona":
        if isinstance(value, Persona):
            return value
        key = (value or "").strip().lower()
        try:
            return cls(key)
        except ValueError:
            return cls.GENERAL


BASE_INSTRUCTIONS: str = (
    "You are InteliMed, an AI healthcare assistant. You provide helpful, accurate health "
    "information but always remind users to consult healthcare professionals for medical "
    "decisions. You cannot diagnose or prescribe medications."
)

PERSONA_INSTRUCTIONS: Dict[Persona, str] = {
    Persona.SENIOR: """
You are speaking with a senior citizen. Use:
- Simple, clear language
- Larger conceptual explanations
- Patient, respectful tone
- References to traditional healthcare practices when appropriate
- Emphasis on medication management and regular check-ups
- Acknowledgment of their life experience and wisdom
""".strip(),
    Persona.CHILD: """
You are speaking with a child or their parent about pediatric health. Use:
- Simple, age-appropriate language
- Encouraging and positive tone
- Fun analogies and comparisons
- Focus on prevention and healthy habits
- Reassuring language to reduce anxiety
- Involve parents/guardians in health decisions
""".strip(),
    Persona.ANXIOUS: """
You are speaking with someone who may have health anxiety. Use:
- Calm, reassuring tone
- Avoid alarming language
- Provide clear, factual information
- Acknowledge their concerns as valid
- Suggest breathing exercises or relaxation techniques when appropriate
- Emphasize when symptoms are common and manageable
""".strip(),
    Persona.CAREGIVER: """
You are speaking with a caregiver (family member, nurse, etc.). Use:
- Professional yet compassionate tone
- Detailed information about care management
- Resources for caregiver support
- Information about patient advocacy
- Stress management for caregivers
- Coordination with healthcare teams
""".strip(),
    Persona.GENERAL: "Provide general healthcare guidance with a professional yet friendly tone.",
}

_missing = [p.value for p in Persona if p not in PERSONA_INSTRUCTIONS]
if _missing:
    raise RuntimeError(f"No instructions defined for personas: {', '.join(_missing)}")


def instructions_for(persona: Optional[Union[str, Persona]]) -> str:
    """Return the full system instruction for a persona name.

    Total over strings: anything unrecognised gets the general instruction.
    """
    resolved = Persona.parse(persona)
    return f"{BASE_INSTRUCTIONS}\n\n{PERSONA_INSTRUCTIONS[resolved]}"


__all__ = ["Persona", "BASE_INSTRUCTIONS", "PERSONA_INSTRUCTIONS", "instructions_for"]
