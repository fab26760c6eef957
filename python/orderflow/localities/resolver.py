"""Fuzzy resolution of address cities onto the courier's gazetteer.

Matching runs a cascade and the first step that matches wins:

1. Normalize the input and every candidate (see ``normalize_name``)
2. Exact match
3. Substring match in either direction
4. Substring match after ``strip_affixes`` on both sides

Example:
    >>> resolver = LocalityResolver(geography)
    >>> match = await resolver.resolve("Timișoara", "Timiș")
    >>> match.canonical_name, match.method
    ('Timisoara', <LocalityMatchMethod.EXACT: 'exact'>)
"""

from __future__ import annotations

from collections.abc import Callable

from orderflow.errors import LocalityNotFoundError
from orderflow.logging import log_info, log_warn
from orderflow.ports import GeographyService
from orderflow.types import LocalityCandidate, LocalityMatchMethod

from .normalize import normalize_name, strip_affixes
from .regions import DEFAULT_REGION, resolve_region


def _substring_match(
    needle: str,
    candidates: list[tuple[str, str]],
) -> str | None:
    """Closest candidate containing, or contained in, ``needle``.

    Among several hits the one whose length is closest to the input wins,
    ties broken by gazetteer order.
    """
    if not needle:
        return None
    best: tuple[int, str] | None = None
    for canonical, key in candidates:
        if not key:
            continue
        if key in needle or needle in key:
            distance = abs(len(key) - len(needle))
            if best is None or distance < best[0]:
                best = (distance, canonical)
    return best[1] if best else None


def match_locality(
    city: str,
    candidates: list[str],
) -> tuple[str, LocalityMatchMethod] | None:
    """Run the matching cascade over a list of canonical names.

    Returns:
        ``(canonical_name, method)`` or None when nothing matched.

    Example:
        >>> match_locality("Orașul Ocna-Sibiului", ["Ocna Sibiului", "Talmaciu"])
        ('Ocna Sibiului', <LocalityMatchMethod.AFFIX_STRIPPED: 'affix_stripped'>)
    """
    target = normalize_name(city)
    if not target:
        return None

    normalized = [(name, normalize_name(name)) for name in candidates]

    for name, key in normalized:
        if key == target:
            return name, LocalityMatchMethod.EXACT

    hit = _substring_match(target, normalized)
    if hit is not None:
        return hit, LocalityMatchMethod.SUBSTRING

    stripped = [(name, strip_affixes(key)) for name, key in normalized]
    hit = _substring_match(strip_affixes(target), stripped)
    if hit is not None:
        return hit, LocalityMatchMethod.AFFIX_STRIPPED

    return None


class LocalityResolver:
    """Maps free-text city and region names to courier locality names."""

    def __init__(
        self,
        geography: GeographyService,
        *,
        default_region: str = DEFAULT_REGION,
        region_resolver: Callable[[str | None, str], str] = resolve_region,
    ) -> None:
        self._geography = geography
        self.default_region = default_region
        self._resolve_region = region_resolver

    def resolve_region(self, region_name: str | None) -> str:
        """Canonical region, or the default region when unknown."""
        return self._resolve_region(region_name, self.default_region)

    async def resolve(self, city_name: str, region_name: str | None) -> LocalityCandidate:
        """Resolve a city within a region to the courier's locality name.

        Args:
            city_name: City as written in the address.
            region_name: County or province as written in the address.

        Returns:
            The matched LocalityCandidate.

        Raises:
            LocalityNotFoundError: No candidate matched; the error lists up
                to ten candidate names.
        """
        region = self.resolve_region(region_name)
        candidates = await self._geography.localities(region)

        match = match_locality(city_name or "", candidates)
        if match is None:
            log_warn(
                "Locality not found",
                {"city": city_name, "region": region, "candidates": len(candidates)},
            )
            raise LocalityNotFoundError(city_name or "", region, candidates)

        canonical, method = match
        log_info(
            "Locality resolved",
            {"city": city_name, "region": region, "locality": canonical, "method": method.value},
        )
        return LocalityCandidate(
            raw_name=city_name or "",
            canonical_name=canonical,
            region=region,
            method=method,
        )


__all__ = ["LocalityResolver", "match_locality"]
