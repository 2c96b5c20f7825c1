"""Cheap lexical features: repetition and shouting."""

from __future__ import annotations

import re
from collections import Counter

WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)
CHAR_RUN_RE = re.compile(r"(.)\1{9,}", re.DOTALL)

MIN_WORDS_FOR_REPETITION = 8
REPEATED_WORD_RATIO = 0.5
MIN_LETTERS_FOR_SHOUTING = 20
SHOUTING_RATIO = 0.7


def is_repetitive(text: str) -> bool:
    if CHAR_RUN_RE.search(text):
        return True
    words = [word.lower() for word in WORD_RE.findall(text)]
    if len(words) < MIN_WORDS_FOR_REPETITION:
        return False
    _, most_common = Counter(words).most_common(1)[0]
    return most_common / len(words) >= REPEATED_WORD_RATIO


def is_shouting(text: str) -> bool:
    letters = [ch for ch in text if ch.isalpha()]
    if len(letters) < MIN_LETTERS_FOR_SHOUTING:
        return False
    upper = sum(1 for ch in letters if ch.isupper())
    return upper / len(letters) >= SHOUTING_RATIO
