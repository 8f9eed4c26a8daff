"""Supported response languages."""

from typing import Dict

LANGUAGE_MAP: Dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "hi": "Hindi",
    "zh": "Mandarin Chinese",
}


def language_name(code: str) -> str:
    """Get the display name for a language code."""
    if code not in LANGUAGE_MAP:
        raise ValueError(f"Unsupported language: {code}")
    return LANGUAGE_MAP[code]
