from __future__ import annotations

"""
Text normalization utilities used across the recommender.

Catalog text arrives from spreadsheet imports and may still carry
HTML fragments, odd unicode and ragged whitespace.  These helpers
clean it once so that substring matching, citation checks and
embedding text all see the same canonical form.
"""

import re
import unicodedata
from typing import Iterable, List, Optional, Sequence

from bs4 import BeautifulSoup


# ---------------------------
# Basic helpers
# ---------------------------

def strip_html(raw: str) -> str:
    """
    Strip HTML tags using BeautifulSoup.  If parsing fails, the input
    is returned unchanged to fail open rather than drop text.
    """
    if not raw:
        return ""
    # Fast path: if there's no '<', it's almost certainly not HTML
    if "<" not in raw:
        return raw
    try:
        soup = BeautifulSoup(raw, "lxml")
        return soup.get_text(" ", strip=True)
    except Exception:
        return raw


def normalize_unicode(text: str) -> str:
    """NFC keeps Hangul syllables composed so substring checks line up."""
    if not text:
        return ""
    return unicodedata.normalize("NFC", text)


def normalize_whitespace(text: str) -> str:
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def basic_clean(text: Optional[str]) -> str:
    """
    End-to-end cleaning for catalog fields and user input:

    - strip HTML
    - normalize unicode
    - normalize whitespace
    """
    if text is None:
        return ""
    text = strip_html(str(text))
    text = normalize_unicode(text)
    return normalize_whitespace(text)


# ---------------------------
# Tokenization
# ---------------------------

# Whitespace plus ASCII / CJK punctuation commonly found in Korean goals
GOAL_SPLIT_RE = re.compile(r"[\s,.;:!?()\[\]{}<>\"'“”‘’/\\|·，、。]+")


def split_goal(text: str, min_len: int = 2) -> List[str]:
    """
    Split a free-text learning goal into candidate keywords.

    Tokens shorter than ``min_len`` are dropped; order is preserved and
    case-insensitive duplicates are removed.
    """
    if not text:
        return []
    seen = set()
    out: List[str] = []
    for tok in GOAL_SPLIT_RE.split(normalize_unicode(text)):
        tok = tok.strip()
        if len(tok) < min_len:
            continue
        key = tok.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(tok)
    return out


def word_set(text: str) -> set[str]:
    """Whitespace tokens of ``text``; used for Jaccard similarity."""
    return {t for t in re.split(r"\s+", text or "") if t}


def jaccard(a: str, b: str) -> float:
    wa, wb = word_set(a), word_set(b)
    union = wa | wb
    if not union:
        return 0.0
    return len(wa & wb) / len(union)


# ---------------------------
# Field composition
# ---------------------------

def join_fields(parts: Iterable[Optional[str]], sep: str = " ") -> str:
    """Join non-empty fields with ``sep``."""
    return sep.join(p for p in parts if p)


def format_curriculum(curriculum: Sequence[str], limit: Optional[int] = None) -> str:
    """
    Flatten a curriculum into one comma separated line.  With ``limit``
    only the first entries are kept and an ellipsis marks the cut.
    """
    if not curriculum:
        return ""
    items = list(curriculum)
    if limit is not None and len(items) > limit:
        return ", ".join(items[:limit]) + "..."
    return ", ".join(items)


def contains_any(text: str, needles: Iterable[str]) -> bool:
    """Case-insensitive substring test; ``needles`` must already be lowercased."""
    hay = (text or "").lower()
    return any(n and n in hay for n in needles)


def parse_year(raw: Optional[str]) -> Optional[int]:
    """
    Parse a development year such as ``"2023"`` or ``"2023년"``.

    Only the leading integer is read; anything else yields ``None``.
    """
    if raw is None:
        return None
    m = re.match(r"\s*(\d{1,4})", str(raw))
    if not m:
        return None
    return int(m.group(1))
