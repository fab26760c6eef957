"""Static table of Romanian counties and the spellings seen in addresses.

Shipping addresses name the county in many ways: with or without
diacritics, as the two-letter plate code, as the county seat, or under a
Hungarian, German or English name. Every variant resolves to the
canonical name the courier's geography service uses.

Example:
    >>> resolve_region("Timiș")
    'Timis'
    >>> resolve_region("Kolozs")
    'Cluj'
    >>> resolve_region("Atlantis", default="Bucuresti")
    'Bucuresti'
"""

from __future__ import annotations

from orderflow.logging import log_debug, log_warn

from .normalize import normalize_name, strip_affixes

DEFAULT_REGION = "Bucuresti"

# canonical name -> (plate code, variants)
REGIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    "Alba": ("AB", ("alba iulia", "feher", "weissenburg")),
    "Arad": ("AR", ()),
    "Arges": ("AG", ("pitesti",)),
    "Bacau": ("BC", ()),
    "Bihor": ("BH", ("oradea", "bihar")),
    "Bistrita-Nasaud": ("BN", ("bistrita nasaud", "bistrita", "beszterce-naszod", "bistritz-nassod")),
    "Botosani": ("BT", ()),
    "Braila": ("BR", ()),
    "Brasov": ("BV", ("kronstadt", "brasso")),
    "Buzau": ("BZ", ()),
    "Calarasi": ("CL", ()),
    "Caras-Severin": ("CS", ("caras severin", "resita", "krasso-szoreny")),
    "Cluj": ("CJ", ("cluj-napoca", "cluj napoca", "kolozs", "kolozsvar", "klausenburg", "transylvania")),
    "Constanta": ("CT", ()),
    "Covasna": ("CV", ("kovaszna", "sfantu gheorghe")),
    "Dambovita": ("DB", ("dimbovita", "targoviste")),
    "Dolj": ("DJ", ("craiova",)),
    "Galati": ("GL", ()),
    "Giurgiu": ("GR", ()),
    "Gorj": ("GJ", ("targu jiu", "tirgu jiu")),
    "Harghita": ("HR", ("hargita", "miercurea ciuc", "csikszereda")),
    "Hunedoara": ("HD", ("deva", "hunyad")),
    "Ialomita": ("IL", ("slobozia",)),
    "Iasi": ("IS", ("jassy",)),
    "Ilfov": ("IF", ()),
    "Maramures": ("MM", ("baia mare", "maramaros")),
    "Mehedinti": ("MH", ("drobeta-turnu severin", "drobeta turnu severin")),
    "Mures": ("MS", ("targu mures", "targu-mures", "tirgu mures", "maros", "marosvasarhely")),
    "Neamt": ("NT", ("piatra neamt",)),
    "Olt": ("OT", ("slatina",)),
    "Prahova": ("PH", ("ploiesti",)),
    "Salaj": ("SJ", ("zalau", "szilagy")),
    "Satu Mare": ("SM", ("satu-mare", "szatmar")),
    "Sibiu": ("SB", ("hermannstadt", "szeben", "nagyszeben")),
    "Suceava": ("SV", ()),
    "Teleorman": ("TR", ("alexandria",)),
    "Timis": ("TM", ("timisoara", "temes", "temesvar", "temeswar", "temeschburg")),
    "Tulcea": ("TL", ()),
    "Valcea": ("VL", ("vilcea", "ramnicu valcea", "rimnicu vilcea")),
    "Vaslui": ("VS", ()),
    "Vrancea": ("VN", ("focsani",)),
    "Bucuresti": (
        "B",
        (
            "bucharest",
            "bukarest",
            "bucarest",
            "sector 1",
            "sector 2",
            "sector 3",
            "sector 4",
            "sector 5",
            "sector 6",
        ),
    ),
}

_REGION_DESIGNATORS = ("judetul", "judet", "jud.", "county of")


def _region_key(value: str) -> str:
    key = normalize_name(value)
    for designator in _REGION_DESIGNATORS:
        if key.startswith(designator + " ") or (designator.endswith(".") and key.startswith(designator)):
            key = key[len(designator) :].strip()
            break
    if key.endswith(" county"):
        key = key[: -len(" county")].strip()
    return key


def _build_lookup() -> dict[str, str]:
    lookup: dict[str, str] = {}
    for canonical, (code, variants) in REGIONS.items():
        for name in (canonical, code, *variants):
            key = _region_key(name)
            lookup[key] = canonical
            lookup[strip_affixes(key)] = canonical
    return lookup


_LOOKUP = _build_lookup()


def lookup_region(name: str | None) -> str | None:
    """Canonical region for a spelling, or None when unknown."""
    if not name:
        return None
    key = _region_key(name)
    if not key:
        return None
    return _LOOKUP.get(key) or _LOOKUP.get(strip_affixes(key))


def resolve_region(name: str | None, default: str = DEFAULT_REGION) -> str:
    """Canonical region for a spelling, falling back to ``default``.

    Never fails: an unknown region is logged and replaced by the default.
    """
    canonical = lookup_region(name)
    if canonical is not None:
        log_debug("Region resolved", {"region": name, "canonical": canonical})
        return canonical

    log_warn(
        "Region not recognized, using default region",
        {"region": name, "default_region": default},
    )
    return default


__all__ = ["DEFAULT_REGION", "REGIONS", "lookup_region", "resolve_region"]
