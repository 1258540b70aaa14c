#!/usr/bin/env python3
"""
compiler.py - Merge and Deduplication Engine

This module is the core of the pipeline. It takes raw text from every
source, parses it with the matching dialect parser, and produces one sorted,
deduplicated CanonicalSet.

PRECEDENCE:
    Sources are pure union. A rule listed by an earlier source is never
    overridden by a later one, and the custom overrides are appended after
    all sources. The ONLY suppressive construct is the allowlist:

        sources:    ||ads.example.com^   DOMAIN-SUFFIX,track.example.net
        allowlist:  track.example.net
        result:     ads.example.com

DEDUPLICATION:
    Two records are duplicates when pattern AND kind match. Origin is only
    kept (first occurrence wins) for diagnostics.

    The same domain as DOMAIN_ANCHOR and EXACT_DOMAIN is NOT a duplicate:
    one blocks the domain and all its subdomains, the other only the literal
    name. Both are kept.

EXCEPTIONS:
    EXCEPTION records exist only while merging. Allowlist exceptions build
    the exclusion set; exceptions found inside blocking sources are dropped.
    No exception is ever written to the output.
"""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Sequence

from dnsrules.errors import Diagnostics, ParseWarning
from dnsrules.models import CanonicalSet, Dialect, RawSource, RuleKind, RuleRecord
from dnsrules.parsers import parse

logger = logging.getLogger(__name__)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class CompileStats:
    """Statistics from merging."""
    total_input: int = 0
    total_output: int = 0

    # By origin
    source_records: int = 0      # non-comment records from listed sources
    source_rejected: int = 0     # rule lines from listed sources rejected by their parser
    override_records: int = 0
    allowlist_entries: int = 0

    # Pruning
    whitelist_conflict_pruned: int = 0
    exception_dropped: int = 0
    duplicate_pruned: int = 0

    # Output breakdown
    anchor_kept: int = 0
    exact_kept: int = 0
    other_kept: int = 0
    comment_kept: int = 0


# ============================================================================
# HELPERS
# ============================================================================

def _parse_source(source: RawSource, diagnostics: Diagnostics | None) -> tuple[list[RuleRecord], int]:
    """Parse one source; also returns how many of its lines were rejected."""
    local = Diagnostics()
    records = parse(source.dialect, source.text, source.label, local)
    if diagnostics is not None:
        for warning in local.warnings:
            diagnostics.add(warning)
    rejected = sum(w.count for w in local.of_type(ParseWarning))
    logger.debug("Parsed %s (%s): %d records", source.label, Dialect(source.dialect).value, len(records))
    return records, rejected


def build_exclusion_set(allowlist: RawSource | None, diagnostics: Diagnostics | None = None) -> frozenset[str]:
    """
    Collect allowlisted patterns.

    Only EXCEPTION records produced by the allowlist dialect count, whatever
    dialect tag the allowlist source carries.
    """
    if allowlist is None:
        return frozenset()
    records = parse(Dialect.ALLOWLIST, allowlist.text, allowlist.label, diagnostics)
    return frozenset(r.pattern for r in records if r.kind is RuleKind.EXCEPTION)


# ============================================================================
# MAIN MERGE
# ============================================================================

def merge(
    sources: Sequence[RawSource],
    overrides: RawSource | None = None,
    allowlist: RawSource | None = None,
    diagnostics: Diagnostics | None = None,
    stats: CompileStats | None = None,
) -> CanonicalSet:
    """
    Merge sources into a CanonicalSet.

    Phase 1: Parse sources in listed order, then overrides
    Phase 2: Drop allowlisted patterns and transient exceptions
    Phase 3: Deduplicate by (pattern, kind), first origin wins, and sort

    Args:
        sources: Raw sources, in precedence order
        overrides: Custom rules, appended after all sources
        allowlist: Domains that must not survive the merge
        diagnostics: Optional accumulator for parse warnings
        stats: Optional CompileStats filled in place

    Returns:
        The sorted, duplicate-free CanonicalSet
    """
    if stats is None:
        stats = CompileStats()

    # =========================================================================
    # PHASE 1: Parse
    # =========================================================================
    records: list[RuleRecord] = []
    for source in sources:
        parsed, rejected = _parse_source(source, diagnostics)
        stats.source_records += sum(1 for r in parsed if r.kind is not RuleKind.COMMENT)
        stats.source_rejected += rejected
        records.extend(parsed)

    if overrides is not None:
        parsed, _ = _parse_source(overrides, diagnostics)
        stats.override_records += len(parsed)
        records.extend(parsed)

    stats.total_input = len(records)

    # =========================================================================
    # PHASE 2: Allowlist and exceptions
    # =========================================================================
    excluded = build_exclusion_set(allowlist, diagnostics)
    stats.allowlist_entries = len(excluded)

    kept: list[RuleRecord] = []
    for record in records:
        if record.pattern in excluded:
            stats.whitelist_conflict_pruned += 1
            logger.debug("Allowlisted: %s (%s)", record.pattern, record.origin)
            continue
        if record.kind is RuleKind.EXCEPTION:
            stats.exception_dropped += 1
            continue
        kept.append(record)

    # =========================================================================
    # PHASE 3: Deduplicate and sort
    # =========================================================================
    canonical = CanonicalSet(kept)
    stats.duplicate_pruned = len(kept) - len(canonical)
    stats.total_output = len(canonical)

    for record in canonical:
        if record.kind is RuleKind.DOMAIN_ANCHOR:
            stats.anchor_kept += 1
        elif record.kind is RuleKind.EXACT_DOMAIN:
            stats.exact_kept += 1
        elif record.kind is RuleKind.COMMENT:
            stats.comment_kept += 1
        else:
            stats.other_kept += 1

    return canonical


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m dnsrules.compiler <dialect>:<input_file> [...]")
        sys.exit(1)

    inputs = []
    for arg in sys.argv[1:]:
        dialect, _, path = arg.partition(":")
        with open(path, encoding="utf-8-sig", errors="replace") as f:
            inputs.append(RawSource(Dialect.from_name(dialect), f.read(), path))

    stats = CompileStats()
    merged = merge(inputs, stats=stats)
    for rec in merged:
        print(f"{rec.kind.name:<14} {rec.pattern}")

    print(f"\nMerge complete: {stats.total_input:,} in, {stats.total_output:,} out, "
          f"{stats.duplicate_pruned:,} duplicates", file=sys.stderr)
