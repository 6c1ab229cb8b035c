"""Template placeholder parsing and substitution.

Two marker styles are recognised: ``#Client.Name#`` and ``{Client.Name}``.
Lookups are case-insensitive and ignore surrounding whitespace.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Final, Mapping

HASH_PATTERN: Final[re.Pattern[str]] = re.compile(r"#([A-Za-z0-9_.\s]+)#")
BRACE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\{([A-Za-z0-9_.\s]+)\}")


def _normalize(name: str) -> str:
    return re.sub(r"\s+", " ", name.strip()).lower()


def extract_placeholders(content: str) -> list[str]:
    """Unique placeholder names in order of first appearance."""
    found: list[tuple[int, str]] = []
    for pattern in (HASH_PATTERN, BRACE_PATTERN):
        for match in pattern.finditer(content):
            found.append((match.start(), match.group(1).strip()))
    found.sort(key=lambda item: item[0])

    seen: set[str] = set()
    names: list[str] = []
    for _, name in found:
        key = _normalize(name)
        if key and key not in seen:
            seen.add(key)
            names.append(name)
    return names


@dataclass
class RenderResult:
    content: str
    used: list[str]
    missing: list[str]


def render_template(content: str, values: Mapping[str, str]) -> RenderResult:
    """Replace known placeholders; unknown ones are kept verbatim and reported."""
    lookup = {_normalize(key): value for key, value in values.items()}
    used: list[str] = []
    missing: list[str] = []

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1).strip()
        key = _normalize(name)
        if key in lookup:
            if name not in used:
                used.append(name)
            return lookup[key]
        if name not in missing:
            missing.append(name)
        return match.group(0)

    rendered = HASH_PATTERN.sub(substitute, content)
    rendered = BRACE_PATTERN.sub(substitute, rendered)
    return RenderResult(content=rendered, used=used, missing=missing)


def format_date(value: date | datetime | None) -> str:
    """``March 5, 2025``; empty for missing dates."""
    if value is None:
        return ""
    return f"{value:%B} {value.day}, {value.year}"


def format_money(value: Decimal | float | int | None) -> str:
    if value is None:
        return ""
    return f"${Decimal(value):,.2f}"
