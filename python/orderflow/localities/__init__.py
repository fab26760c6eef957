"""Locality and region resolution against the courier gazetteer."""

from __future__ import annotations

from .normalize import fold_diacritics, normalize_name, strip_affixes
from .regions import DEFAULT_REGION, REGIONS, lookup_region, resolve_region
from .resolver import LocalityResolver, match_locality

__all__ = [
    "DEFAULT_REGION",
    "REGIONS",
    "LocalityResolver",
    "fold_diacritics",
    "lookup_region",
    "match_locality",
    "normalize_name",
    "resolve_region",
    "strip_affixes",
]
