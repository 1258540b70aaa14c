#!/usr/bin/env python3
"""
emitters.py - Text serializers for the pipeline artifacts.

Each emitter is a pure function returning the artifact text: one entry per
line, "\\n" line endings, a trailing newline unless the artifact is empty.

Canonical text is read by external rule compilers and by the canonical
dialect parser, so it is written in the adblock grammar:

    DOMAIN_ANCHOR   ads.example.com      (plain domain, suffix match)
    EXACT_DOMAIN    |ads.example.com^    (exact match)
    WILDCARD/OPAQUE the original line, verbatim
"""
from __future__ import annotations

from typing import Iterable

from dnsrules.models import CanonicalSet, DomainSetView, DomainView, RuleKind, RuleRecord
from dnsrules.parsers import is_plain_domain

#: Kinds never written to canonical text
HIDDEN_KINDS = frozenset({RuleKind.COMMENT, RuleKind.EXCEPTION})


def _join(lines: Iterable[str]) -> str:
    text = "\n".join(lines)
    return text + "\n" if text else ""


def render_rule(record: RuleRecord) -> str:
    """Render one record as a canonical text line."""
    if record.kind is RuleKind.DOMAIN_ANCHOR:
        if is_plain_domain(record.pattern):
            return record.pattern
        return f"||{record.pattern}^"
    if record.kind is RuleKind.EXACT_DOMAIN:
        return f"|{record.pattern}^"
    return record.pattern


def emit_canonical_text(canonical: CanonicalSet, include_comments: bool = False) -> str:
    """
    Serialize every blocking record in set order.

    Comments are left out unless include_comments is set; with them the
    text re-parses to exactly the same CanonicalSet.
    """
    hidden = {RuleKind.EXCEPTION} if include_comments else HIDDEN_KINDS
    return _join(render_rule(r) for r in canonical if r.kind not in hidden)


def emit_domain_list(view: DomainView) -> str:
    return _join(view)


def emit_domain_set(view: DomainSetView) -> str:
    return _join(view)
