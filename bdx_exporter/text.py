"""Helpers for turning table cell markup into clean labels, units and numbers."""
from __future__ import annotations

import html
import re

from bs4 import BeautifulSoup, Tag

# Substring replacements applied to raw value text before tokenizing.
UNIT_SUBSTITUTIONS: dict[str, str] = {
    "I/min": "l/min",
    "L/min": "l/min",
    "°C": "C",
    "℃": "C",
    "°F": "F",
    "%RH": "percent_rh",
    "%rh": "percent_rh",
}

_SEPARATORS = re.compile(r"[\s\-]+")
_UNDERSCORES = re.compile(r"_+")
_WHITESPACE = re.compile(r"\s+")


def extract_text(fragment: str | Tag | None) -> str:
    """Strip markup from a cell or HTML fragment and collapse whitespace."""
    if fragment is None:
        return ""
    if isinstance(fragment, str):
        if "<" not in fragment:
            return _WHITESPACE.sub(" ", html.unescape(fragment)).strip()
        fragment = BeautifulSoup(fragment, "html.parser")
    text = fragment.get_text(" ", strip=True)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_item(text: str, lowercase: bool = True) -> str:
    """Collapse spaces and dashes into single underscores.

    >>> normalize_item("CDU 1.1 - Data Hall")
    'cdu_1.1_data_hall'
    """
    item = _SEPARATORS.sub("_", text.strip())
    item = _UNDERSCORES.sub("_", item).strip("_")
    return item.lower() if lowercase else item


def normalize_name(text: str) -> str:
    """Source names keep their case; only dashes and spaces change."""
    return normalize_item(text, lowercase=False)


def canonical_unit(unit: str) -> str:
    unit = unit.strip()
    return UNIT_SUBSTITUTIONS.get(unit, unit)


def normalize_units(text: str) -> str:
    for raw, canonical in UNIT_SUBSTITUTIONS.items():
        text = text.replace(raw, canonical)
    return text


def split_value(text: str) -> tuple[float, str]:
    """Parse the first token of ``text`` as a float and return it with the remainder.

    Raises ValueError when there is no token or it is not numeric.
    """
    tokens = normalize_units(text).split()
    if not tokens:
        raise ValueError(f"no numeric value in {text!r}")
    value = float(tokens[0])
    return value, canonical_unit(" ".join(tokens[1:]))
