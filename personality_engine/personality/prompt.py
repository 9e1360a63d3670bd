"""Prompt composition for personality rewrites.

The template and adjective lists come from the personality-dimension model
used for conversational agents: five dimensions, each described by a fixed
set of adjectives, scored from -2 to +2.  ``compose_prompt`` is a pure
function of its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from personality_engine.personality.profiles import ProfileNotFoundError, StyleProfile

ROLE_STUDENT = "Student"
ROLE_ASSISTANT = "AI Assistant"

TRAIT_ADJECTIVES: dict[str, str] = {
    "vibrancy": (
        "enthusiastic, joyful, cheerful, social, adventurous, curious, motivated, "
        "passionate, playful, talkative, welcoming, optimistic, active, inquisitive, "
        "communicative, humorous, determined, interested, explorative, caring, engaging, "
        "proactive, affectionate, creative, inspiring, brave, generous, responsive, "
        "suggestive, sensitive, open-minded, interactive, casual, verbal"
    ),
    "conscientiousness": (
        "logical, precise, efficient, organized, informative, smart, knowledgeable, "
        "intellectual, functional, self-disciplined, thorough, objective, insightful, "
        "wise, formal, useful, stable, responsible, deep, articulate, consistent, "
        "diplomatic, helpful, mindful, considerate, not contradictory, complex, direct, "
        "philosophical, critical, understandable"
    ),
    "civility": (
        "not offensive, not rude, not arrogant, respectful, polite, accepting, not harsh, "
        "not confrontational, humble, not irritable, tolerant, not patronizing, gentle, "
        "not stubborn, courteous, calm, agreeable, not angry, understanding, cooperative, "
        "careful, friendly, assertive, patient, confident, submissive, neutral, "
        "not narrow-minded, supportive, easygoing, not self-centered, not overbearing, "
        "reserved"
    ),
    "artificiality": (
        "computerized, boring, emotionless, fake, robotic, annoying, not human-like, "
        "predictable, shallow, repetitive, vague, haphazard, dysfunctional, cold, "
        "confusing, creepy, simple, not realistic, inhibited, old-fashioned, dependent, "
        "self-aware"
    ),
    "neuroticism": (
        "depressed, pessimistic, negative, fearful, complaining, frustrated, agitated, "
        "lonely, upset, shy, helpless, worried, moody, confused, scatterbrained, lost, "
        "preoccupied, absentminded, pensive, careless, nostalgic, defensive, deceitful, "
        "romantic"
    ),
}

PROMPT_TEMPLATE = """## CONTEXT

### Personality Model:
Given is a unique personality profile based on five key dimensions: **Vibrancy**, **Conscientiousness**, **Civility**, **Artificiality**, and **Neuroticism**.

Each dimension has a set of associated adjectives:
- Vibrancy is described by the adjectives: {adj_vibrancy}
- Conscientiousness is described by the adjectives: {adj_conscientiousness}
- Civility is described by the adjectives: {adj_civility}
- Artificiality is described by the adjectives: {adj_artificiality}
- Neuroticism is described by the adjectives: {adj_neuroticism}

### Personality Scale:
Each dimension has a certain intensity level from -2 (lowest) to +2 (highest).
- **Level -2:** the opposite of the trait is strongly present.
- **Level -1:** the opposite of the trait is mostly present.
- **Level 0:** the trait is neutral, neither implying nor contradicting the trait.
- **Level +1:** the trait is mostly present.
- **Level +2:** the trait is strongly present.

### Personality Profile:
The current personality settings are:
- Vibrancy: {int_vibrancy}
- Conscientiousness: {int_conscientiousness}
- Civility: {int_civility}
- Artificiality: {int_artificiality}
- Neuroticism: {int_neuroticism}

---

## TASK
Given a fictional conversation between {role_a} and {role_b}, rewrite the latest (and only the latest) utterance of {role_b} such that the content, language, tone, and style of the utterance match the specified personality settings above.

---

## OUTPUT FORMAT
Avoid using the trait's adjectives in the rewritten sentence. Output only the rewritten utterance without additional punctuation, speaker tags, or explanations.

---

## ADDITIONAL DATA
{context_label}
{history}"""


@dataclass(frozen=True)
class TransformationRequest:
    """Everything the composer needs for one rewrite."""

    original_text: str
    profile: StyleProfile
    history: str = ""
    context_label: str = ""

    def to_prompt(self) -> str:
        return compose_prompt(
            self.original_text, self.profile, self.history, self.context_label
        )


def format_history_line(is_created_by_user: bool, text: str) -> str:
    """One transcript line: ``Student: ...`` or ``AI Assistant: ...``."""
    speaker = ROLE_STUDENT if is_created_by_user else ROLE_ASSISTANT
    return f"{speaker}: {text}"


def compose_prompt(
    original_text: str,
    profile: Optional[StyleProfile],
    history: str,
    context_label: str,
) -> str:
    """Build the rewrite instruction for ``original_text`` under ``profile``.

    ``history`` is inserted verbatim, followed by the original reply as the
    assistant's latest utterance.  Intensities are copied as-is.
    """
    if profile is None:
        raise ProfileNotFoundError("<unresolved>")

    last_line = format_history_line(False, original_text)
    transcript = f"{history}\n{last_line}" if history else last_line

    intensities = profile.intensities()
    return PROMPT_TEMPLATE.format(
        **{f"adj_{trait}": adjectives for trait, adjectives in TRAIT_ADJECTIVES.items()},
        **{f"int_{trait}": value for trait, value in intensities.items()},
        role_a=ROLE_STUDENT,
        role_b=ROLE_ASSISTANT,
        context_label=context_label,
        history=transcript,
    )
