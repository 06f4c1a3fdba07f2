from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum


class MatchMode(StrEnum):
    EQUALS = "equals"
    PREFIX = "prefix"
    CONTAINS = "contains"


@dataclass(frozen=True)
class FilterField:
    """How a user-facing filter maps onto a stored document field."""

    target: str | None = None
    mode: MatchMode = MatchMode.PREFIX
    fold: bool = False

    def target_for(self, name: str) -> str:
        return self.target or name


_DEFAULT_FIELD = FilterField()


def fold(value: str) -> str:
    return value.casefold()


def field_for(name: str, fields: Mapping[str, FilterField] | None) -> FilterField:
    if fields is None:
        return _DEFAULT_FIELD
    return fields.get(name, _DEFAULT_FIELD)


def normalize_filters(
    raw: Mapping[str, str | None] | None,
    fields: Mapping[str, FilterField] | None = None,
) -> dict[str, str]:
    """Trim, case-fold where the field asks for it, and drop empty filters."""
    normalized: dict[str, str] = {}
    for name, value in (raw or {}).items():
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        if field_for(name, fields).fold:
            text = fold(text)
        normalized[name] = text
    return normalized
