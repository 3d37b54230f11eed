import re

VENDOR_TYPES: tuple[str, ...] = (
    "Venue",
    "Photographer",
    "Videographer",
    "Florist",
    "Caterer",
    "Cake",
    "Entertainment - DJ",
    "Entertainment - Live Music",
    "Hair & Makeup",
    "Hair",
    "Makeup",
    "Planner",
    "Officiant",
    "Transportation",
    "Rentals",
    "Stationery",
    "Other",
)

LEGACY_VENDOR_TYPES: dict[str, str] = {
    "dj": "Entertainment - DJ",
    "dj/band": "Entertainment - DJ",
    "band": "Entertainment - Live Music",
    "live music": "Entertainment - Live Music",
    "entertainer": "Entertainment - Live Music",
    "baker": "Cake",
    "bakery": "Cake",
    "makeup artist": "Makeup",
    "hair and makeup": "Hair & Makeup",
    "photography": "Photographer",
    "videography": "Videographer",
    "catering": "Caterer",
    "flowers": "Florist",
}

_TYPE_LOOKUP = {vendor_type.lower(): vendor_type for vendor_type in VENDOR_TYPES}

# Words that describe a category rather than identify a business.
GENERIC_NAME_WORDS = frozenset(
    {
        "and",
        "bakery",
        "band",
        "cakes",
        "catering",
        "caterers",
        "co",
        "company",
        "de",
        "del",
        "designs",
        "dj",
        "el",
        "events",
        "films",
        "florist",
        "flowers",
        "la",
        "limited",
        "llc",
        "ltd",
        "makeup",
        "music",
        "of",
        "photo",
        "photography",
        "productions",
        "sl",
        "studio",
        "studios",
        "the",
        "venue",
        "video",
        "weddings",
    }
)

_NON_WORD_RE = re.compile(r"[^a-z0-9]+")


def is_valid_vendor_type(value: str) -> bool:
    return value in VENDOR_TYPES


def normalize_vendor_type(value: str | None) -> str:
    if not value:
        return "Other"
    cleaned = " ".join(value.strip().split())
    if cleaned in VENDOR_TYPES:
        return cleaned
    lowered = cleaned.lower()
    if lowered in _TYPE_LOOKUP:
        return _TYPE_LOOKUP[lowered]
    if lowered in LEGACY_VENDOR_TYPES:
        return LEGACY_VENDOR_TYPES[lowered]
    if "live music" in lowered:
        return "Entertainment - Live Music"
    return "Other"


def distinctive_name_tokens(name: str | None) -> frozenset[str]:
    """Tokens of a vendor name that identify the business itself."""
    if not name:
        return frozenset()
    tokens = _NON_WORD_RE.sub(" ", name.lower()).split()
    return frozenset(token for token in tokens if token not in GENERIC_NAME_WORDS and len(token) > 1)
