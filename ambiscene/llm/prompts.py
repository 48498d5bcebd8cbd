"""Prompt templates for page classification."""

from __future__ import annotations

from ..models.datatypes import DESCRIPTOR_KEYS

CLASSIFICATION_SYSTEM_PROMPT = (
    "You classify excerpts of narrative fiction for ambient sound design. "
    "Answer with one JSON object and nothing else."
)

_ATTRIBUTE_GUIDE = {
    "mood": 'The emotional tone (e.g. "joyful", "tense", "melancholic", "peaceful", "mysterious")',
    "setting": 'The location type (e.g. "indoor", "outdoor", "urban", "rural", "nature")',
    "time_of_day": 'When the scene happens ("morning", "afternoon", "evening", "night", "unknown")',
    "weather": 'Weather if mentioned ("sunny", "rainy", "stormy", "cloudy", "snowy", "clear", "unknown")',
    "activity_level": 'The pace of action ("calm", "moderate", "high", "intense")',
    "atmosphere": 'Overall feeling ("suspenseful", "romantic", "adventurous", "contemplative", "dramatic")',
}


def truncate_text(text: str, limit: int) -> str:
    """Cap classified text to `limit` characters, cutting at a word boundary when possible."""

    compact = text.strip()
    if len(compact) <= limit:
        return compact
    cut = compact[:limit]
    boundary = cut.rfind(" ")
    if boundary > limit // 2:
        cut = cut[:boundary]
    return cut.rstrip()


def build_classification_prompt(text: str, limit: int) -> str:
    """Build the user prompt asking for the fixed descriptor schema."""

    attribute_lines = "\n".join(f"- {key}: {_ATTRIBUTE_GUIDE[key]}" for key in DESCRIPTOR_KEYS)
    json_lines = ",\n".join(f'  "{key}": "value"' for key in DESCRIPTOR_KEYS)
    return (
        "Analyze the following text excerpt from a book and classify the scene.\n\n"
        f"Text:\n{truncate_text(text, limit)}\n\n"
        f"Provide these attributes:\n{attribute_lines}\n\n"
        "Respond ONLY with valid JSON in this exact format:\n"
        f"{{\n{json_lines}\n}}"
    )


def build_spread_text(left_text: str, right_text: str) -> str:
    """Join two facing pages into one classification unit."""

    parts = [part.strip() for part in (left_text, right_text) if part and part.strip()]
    return "\n\n".join(parts)
