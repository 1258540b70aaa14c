#!/usr/bin/env python3
"""
models.py - Canonical rule model shared by every pipeline stage.

All values here are immutable. Stages pass them along instead of rewriting a
shared working file, so the order in which stages run cannot corrupt input.

Ordering:
    CanonicalSet is sorted by (pattern, kind). Pattern order is plain string
    order; the RuleKind integer value breaks ties. This total order is what
    makes two runs over identical input produce byte-identical artifacts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable, Iterator, NamedTuple, Sequence


class Dialect(str, Enum):
    """Rule-list syntaxes the parsers understand."""
    ADBLOCK = "adblock"      # ||domain^, @@exceptions, hosts and plain domains
    ROUTING = "routing"      # DOMAIN,value / DOMAIN-SUFFIX,value (Surge, Clash)
    ALLOWLIST = "allowlist"  # one domain per line
    CANONICAL = "canonical"  # our own output, same grammar as ADBLOCK

    @classmethod
    def from_name(cls, name: str) -> "Dialect":
        return cls(name.strip().lower())


class RuleKind(IntEnum):
    """Kind of a rule record. Values are the sort tie-break, do not reorder."""
    EXACT_DOMAIN = 0
    DOMAIN_ANCHOR = 1
    WILDCARD = 2
    EXCEPTION = 3
    COMMENT = 4
    OPAQUE = 5


class RawSource(NamedTuple):
    """Raw text of one source, tagged with the dialect it is written in."""
    dialect: Dialect
    text: str
    name: str = ""

    @property
    def label(self) -> str:
        return self.name or Dialect(self.dialect).value


@dataclass(frozen=True)
class RuleRecord:
    """
    One parsed rule.

    Attributes:
        pattern: Bare domain for EXACT_DOMAIN/DOMAIN_ANCHOR/EXCEPTION,
            the verbatim line for everything else
        kind: RuleKind of the rule
        origin: Source the record came from (diagnostics only, ignored by
            equality and hashing)

    Example:
        >>> RuleRecord("ads.example.com", RuleKind.DOMAIN_ANCHOR, "a") == \\
        ...     RuleRecord("ads.example.com", RuleKind.DOMAIN_ANCHOR, "b")
        True
    """
    pattern: str
    kind: RuleKind
    origin: str = field(default="", compare=False)

    @property
    def key(self) -> tuple[str, int]:
        return self.pattern, int(self.kind)


class CanonicalSet(Sequence[RuleRecord]):
    """Sorted, duplicate-free, immutable collection of RuleRecord."""

    __slots__ = ("_records",)

    def __init__(self, records: Iterable[RuleRecord] = ()) -> None:
        unique: dict[tuple[str, int], RuleRecord] = {}
        for record in records:
            unique.setdefault(record.key, record)
        self._records: tuple[RuleRecord, ...] = tuple(
            unique[key] for key in sorted(unique)
        )

    def __getitem__(self, index):  # type: ignore[override]
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RuleRecord]:
        return iter(self._records)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CanonicalSet):
            return self._records == other._records
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._records)

    def __repr__(self) -> str:
        return f"CanonicalSet({len(self._records)} records)"

    def patterns(self, *kinds: RuleKind) -> list[str]:
        """Patterns in set order, optionally restricted to the given kinds."""
        return [r.pattern for r in self._records if not kinds or r.kind in kinds]


#: Bare domains, CanonicalSet order
DomainView = tuple[str, ...]

#: DomainView entries with DOMAIN_SET_PREFIX, same order
DomainSetView = tuple[str, ...]


class DomainViews(NamedTuple):
    domains: DomainView
    domain_set: DomainSetView
