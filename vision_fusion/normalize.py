from __future__ import annotations

"""
Text normalisation helpers shared by the recognizer adapters and the
selection engine.

Recognizers hand back labels in whatever shape their model uses
("tabby, tabby cat", "CORDLESS  DRILL\n", "wine_glass").  This module is
the single place that turns them into something comparable.

Public helpers:

* basic_clean(text) -> str
    Unicode + whitespace normalisation, nothing else.

* clean_label(text) -> str
    basic_clean plus underscore-to-space, used on every raw label.

* title_case(text) -> str
    Display casing for names and tags ("cordless DRILL" -> "Cordless Drill").

* word_set(text) -> Set[str]
    Lower-cased whitespace-delimited words, used by the consistency check.
"""

from typing import Iterable, Optional, Set
import re
import unicodedata

from . import config

MAX_LABEL_CHARS: int = int(getattr(config, "MAX_LABEL_CHARS", 200))

# A "word" for display casing: letters/digits, optionally joined by apostrophes
# so "o'brien" and "don't" keep their inner casing rules.
_WORD_RE = re.compile(r"[^\W_]+(?:'[^\W_]+)*")

# ---------------------------------------------------------------------------
# Low-level helpers
# ---------------------------------------------------------------------------


def _normalise_unicode(text: str) -> str:
    # Normalise quotes, accents etc. into a consistent representation.
    text = unicodedata.normalize("NFKC", text)
    # Replace fancy quotes / dashes with ASCII variants
    text = text.replace("\u2018", "'").replace("\u2019", "'")
    text = text.replace("\u201c", '"').replace("\u201d", '"')
    text = text.replace("\u2013", "-").replace("\u2014", "-")
    return text


def _capitalize_word(match: re.Match) -> str:
    word = match.group(0)
    return word[:1].upper() + word[1:].lower()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def basic_clean(text: str | None, max_chars: Optional[int] = MAX_LABEL_CHARS) -> str:
    """
    Normalise unicode and collapse whitespace.
    Inputs longer than ``max_chars`` are cut; pass None to keep full length.
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)

    if max_chars is not None and len(text) > max_chars:
        text = text[:max_chars]

    text = _normalise_unicode(text)
    text = re.sub(r"\s+", " ", text).strip()
    return text


def clean_label(text: str | None, max_chars: Optional[int] = MAX_LABEL_CHARS) -> str:
    """Clean a raw recognizer label. Snake-case class names become words."""
    norm = basic_clean(text, max_chars)
    if not norm:
        return ""
    norm = norm.replace("_", " ")
    return re.sub(r"\s+", " ", norm).strip()


def title_case(text: str | None) -> str:
    """
    Upper-case the first letter of every word and lower-case the rest.

    Unlike str.title() this leaves "don't" as "Don't", and it never
    touches whitespace or punctuation between words.
    """
    if not text:
        return ""
    return _WORD_RE.sub(_capitalize_word, text)


def word_set(text: str | None) -> Set[str]:
    if not text:
        return set()
    return {w for w in text.lower().split() if w}


def contains_any(text: str | None, phrases: Iterable[str]) -> bool:
    """Case-insensitive substring test against a phrase list."""
    if not text:
        return False
    lower = text.lower()
    return any(p and p.lower() in lower for p in phrases)
