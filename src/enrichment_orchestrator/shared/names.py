"""Name normalization helpers used by dedup gates, slugs, and show lookups."""

from __future__ import annotations

import re

_PARENTHETICAL = re.compile(r"\s*\(.*?\)\s*")
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9]+")
_IDENTITY_PUNCT = re.compile(r"[^\w\s]")
_LEADING_ARTICLE = re.compile(r"^the\s+")

_SINGLE_QUOTES = str.maketrans({"‘": "'", "’": "'", "`": "'", "´": "'"})
_DOUBLE_QUOTES = str.maketrans({"“": '"', "”": '"'})

SHOW_ALIASES: dict[str, str] = {
    "toc": "tournament of champions",
    "guys tournament of champions": "tournament of champions",
    "ggg": "guys grocery games",
    "ddd": "diners driveins and dives",
    "diners drive ins and dives": "diners driveins and dives",
    "iron chef america": "iron chef",
    "masterchef us": "masterchef",
}


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def unify_quotes(value: str) -> str:
    return value.translate(_SINGLE_QUOTES).translate(_DOUBLE_QUOTES)


def normalize_entity_name(name: str) -> str:
    """Lexical form used for fuzzy venue/person comparison."""
    value = name.lower()
    value = _PARENTHETICAL.sub(" ", value)
    value = unify_quotes(value)
    value = value.replace("&", "and")
    return collapse_whitespace(value)


def identity_key(name: str) -> str:
    """Exact-match key for short free-text labels.

    Case, punctuation, apostrophes and a leading "The" are ignored, so
    "Top Chef", "TOP.CHEF!!" and "The Top Chef" share a key.
    """
    value = unify_quotes(name.lower()).replace("&", " and ")
    value = value.replace("'", "")
    value = _IDENTITY_PUNCT.sub(" ", value).replace("_", " ")
    value = collapse_whitespace(value)
    return _LEADING_ARTICLE.sub("", value)


def resolve_show_alias(name: str) -> str:
    key = identity_key(name)
    return SHOW_ALIASES.get(key, key)


def slugify(name: str, city: str | None = None) -> str:
    slug = _NON_SLUG.sub("-", name.lower()).strip("-")
    if city:
        city_slug = _NON_SLUG.sub("-", city.lower()).strip("-")
        return f"{slug}-{city_slug}"
    return slug


def normalize_city(city: str | None) -> str:
    if not city:
        return ""
    return collapse_whitespace(city.lower())
