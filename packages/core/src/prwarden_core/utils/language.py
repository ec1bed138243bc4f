"""Review-language detection.

Reviews are written in the language the PR author used. Only English and
Japanese are distinguished: if more than ``threshold`` of the non-whitespace
characters in the PR description are Hiragana, Katakana, CJK ideographs or
fullwidth forms, the review is requested in Japanese.
"""

from __future__ import annotations

import re

DEFAULT_THRESHOLD = 0.3

_JAPANESE_CHAR_RE = re.compile(r"[\u3040-\u309f\u30a0-\u30ff\u4e00-\u9fff\uff00-\uffef]")

LANGUAGE_NAMES = {"en": "English", "ja": "Japanese"}


def detect_language(text: str, threshold: float = DEFAULT_THRESHOLD) -> str:
    if not text or not text.strip():
        return "en"

    non_whitespace = sum(1 for c in text if not c.isspace())
    japanese = len(_JAPANESE_CHAR_RE.findall(text))
    return "ja" if japanese / non_whitespace > threshold else "en"


def resolve_language(configured: str, description: str, threshold: float = DEFAULT_THRESHOLD) -> str:
    """Return the configured language, or detect it when set to ``auto``."""
    if configured and configured != "auto":
        return configured
    return detect_language(description, threshold)
