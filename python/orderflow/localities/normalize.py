"""Name normalization for locality and region matching.

Two levels are provided. ``normalize_name`` is applied to every name
before comparison: case, whitespace, diacritics and one leading
administrative designator. ``strip_affixes`` is the heavier pass used by
the last matching step: it removes every designator, parenthesised
qualifiers, trailing county qualifiers and punctuation.

Example:
    >>> normalize_name("  Municipiul  Timișoara ")
    'timisoara'
    >>> strip_affixes(normalize_name("Orașul Ocna-Sibiului (jud. Sibiu)"))
    'ocna sibiului'
"""

from __future__ import annotations

import re
import unicodedata

# Leading designators removed by normalize_name; longest first
ADMINISTRATIVE_PREFIXES = (
    "municipality of",
    "commune of",
    "village of",
    "city of",
    "town of",
    "municipiul",
    "orasul",
    "comuna",
    "satul",
)

# Extra designators and abbreviations removed by strip_affixes
AFFIX_PREFIXES = ADMINISTRATIVE_PREFIXES + (
    "municipiu",
    "mun.",
    "oras",
    "or.",
    "com.",
    "sat",
    "loc.",
    "localitatea",
)

_WHITESPACE = re.compile(r"\s+")
_PARENTHESISED = re.compile(r"\([^)]*\)")
_COUNTY_QUALIFIER = re.compile(r",?\s*\b(?:judetul|judet|jud\.?|county)\s+.*$")
_PUNCTUATION = re.compile(r"[^\w\s]")


def fold_diacritics(value: str) -> str:
    """Replace accented letters with their base Latin letter.

    Example:
        >>> fold_diacritics("Brașov Târgu Mureş")
        'Brasov Targu Mures'
    """
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def strip_prefix(value: str, prefixes: tuple[str, ...] = ADMINISTRATIVE_PREFIXES) -> str:
    """Remove one leading designator, if present."""
    for prefix in prefixes:
        if value == prefix:
            return value
        if value.startswith(prefix + " ") or (prefix.endswith(".") and value.startswith(prefix)):
            return value[len(prefix) :].strip()
    return value


def normalize_name(value: str | None) -> str:
    """Lowercase, trim, collapse whitespace, fold diacritics and strip one
    leading administrative designator."""
    if not value:
        return ""
    text = collapse_whitespace(fold_diacritics(value).lower())
    return strip_prefix(text)


def strip_affixes(value: str) -> str:
    """Heavier cleanup of an already normalized name.

    Removes parenthesised qualifiers, trailing county qualifiers, every
    leading designator, hyphens and remaining punctuation.
    """
    text = _PARENTHESISED.sub(" ", value)
    text = _COUNTY_QUALIFIER.sub("", collapse_whitespace(text))
    text = collapse_whitespace(text)

    while True:
        stripped = strip_prefix(text, AFFIX_PREFIXES)
        if stripped == text:
            break
        text = stripped

    text = text.replace("-", " ")
    text = _PUNCTUATION.sub("", text)
    return collapse_whitespace(text)


__all__ = [
    "ADMINISTRATIVE_PREFIXES",
    "AFFIX_PREFIXES",
    "collapse_whitespace",
    "fold_diacritics",
    "normalize_name",
    "strip_affixes",
    "strip_prefix",
]
