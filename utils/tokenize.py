from __future__ import annotations

import re
import unicodedata
from typing import Mapping, Set

_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_SPLIT_RE = re.compile(r"[\s.,;:!?(){}\[\]\"'“”‘’—–\-_/\\|]+")


def _strip_zero_width(text: str) -> str:
    return _ZERO_WIDTH_RE.sub("", text or "").strip()


def _cjk_characters(text: str) -> list[str]:
    """Characters left after dropping whitespace, punctuation (P*) and symbols (S*)."""
    return [
        ch
        for ch in text
        if not ch.isspace() and unicodedata.category(ch)[0] not in ("P", "S")
    ]


def _word_pieces(text: str) -> list[str]:
    return [piece for piece in _SPLIT_RE.split(text) if piece]


def count_tokens(text: str, cjk_mode: bool) -> int:
    """Approximate token count: words for spaced scripts, characters for CJK."""
    cleaned = _strip_zero_width(text)
    if not cleaned:
        return 0
    if cjk_mode:
        return len(_cjk_characters(cleaned))
    return len(_word_pieces(cleaned))


def tokenize_text(text: str, cjk_mode: bool) -> Set[str]:
    """De-duplicated token set; lower-cased words, or single CJK characters."""
    cleaned = _strip_zero_width(text)
    if not cleaned:
        return set()
    if cjk_mode:
        return set(_cjk_characters(cleaned))
    return {piece.strip().lower() for piece in _word_pieces(cleaned) if piece.strip()}


def sentence_side_text(sentence: Mapping, token_mode: str) -> str:
    source = sentence.get("source_text") or ""
    target = sentence.get("target_text") or ""
    if token_mode == "source":
        return source
    if token_mode == "both":
        return f"{source} {target}".strip()
    return target


def count_sentence_tokens(sentence: Mapping, cjk_mode: bool, token_mode: str = "target") -> int:
    return count_tokens(sentence_side_text(sentence, token_mode), cjk_mode)
