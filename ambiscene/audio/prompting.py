"""Soundscape prompt and tag generation from scene descriptors."""

from __future__ import annotations

from ..models.datatypes import DescriptorSet

_UNSPECIFIED = frozenset({"", "unknown", "none", "n/a"})


def _is_specified(value: str) -> bool:
    return value.strip().lower() not in _UNSPECIFIED


def build_soundscape_prompt(descriptors: DescriptorSet) -> str:
    """Describe a scene's ambience in one natural-language sentence.

    Example: tense/suspenseful/indoor/night/stormy/high becomes
    `"tense and suspenseful indoor soundscape at night with stormy weather, high activity"`.
    """

    mood = descriptors.mood if _is_specified(descriptors.mood) else "neutral"
    setting = descriptors.setting if _is_specified(descriptors.setting) else "ambient"
    parts = [mood]
    atmosphere = descriptors.atmosphere
    if _is_specified(atmosphere) and atmosphere.lower() != mood.lower():
        parts.append(f"and {atmosphere}")
    parts.extend([setting, "soundscape"])
    if _is_specified(descriptors.time_of_day):
        parts.append(f"at {descriptors.time_of_day}")
    weather = descriptors.weather
    if _is_specified(weather) and weather.lower() != "clear":
        parts.append(f"with {weather} weather")
    prompt = " ".join(parts)
    activity = descriptors.activity_level if _is_specified(descriptors.activity_level) else "moderate"
    return f"{prompt}, {activity} activity"


def extract_tags(descriptors: DescriptorSet) -> tuple[str, ...]:
    """Return distinct specified descriptor values in schema order."""

    tags: list[str] = []
    for value in descriptors.as_dict().values():
        normalized = value.strip().lower()
        if _is_specified(normalized) and normalized not in tags:
            tags.append(normalized)
    return tuple(tags)
