from __future__ import annotations

import re
import unicodedata
from typing import Iterable

# Applied longest key first on the hyphenated slug, whole words only.
ABBREVIATIONS: dict[str, str] = {
    "chen-pi-chen": "cpc",
    "gan-pi": "gp",
    "restaurant": "rest",
    "shenzhen": "sz",
    "zhongshan": "zs",
    "guangzhou": "gz",
    "hong-kong": "hk",
    "special": "spcl",
}

_NON_SLUG_RE = re.compile(r"[^a-z0-9-]")
_SPACES_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Strip accents, lowercase, hyphenate whitespace, drop anything else."""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    hyphenated = _SPACES_RE.sub("-", stripped.lower().strip())
    return _NON_SLUG_RE.sub("", hyphenated)


def abbreviate(text: str, abbreviations: dict[str, str] = ABBREVIATIONS) -> str:
    result = normalize(text)
    for key in sorted(abbreviations, key=len, reverse=True):
        result = re.sub(rf"\b{re.escape(key)}\b", abbreviations[key], result)
    return result


def slugify(name: str) -> str:
    return abbreviate(name)


def restaurant_slug(name: str, city: str = "") -> str:
    """Name slug plus city slug, with repeated words removed."""
    parts: list[str] = []
    for part in abbreviate(name).split("-") + abbreviate(city).split("-"):
        if part and part not in parts:
            parts.append(part)
    return "-".join(parts)


def unique_slug(base: str, existing: Iterable[str]) -> str:
    """
    Return ``base``, or ``base-N`` when ``base`` (or ``base-<digits>``) is
    already taken, N being one more than the number of taken variants.
    """
    taken = set(existing)
    variant_re = re.compile(rf"^{re.escape(base)}(-[0-9]*)?$", re.IGNORECASE)
    count = sum(1 for slug in taken if variant_re.match(slug))
    if count == 0:
        return base
    candidate = f"{base}-{count + 1}"
    while candidate in taken:
        count += 1
        candidate = f"{base}-{count + 1}"
    return candidate
