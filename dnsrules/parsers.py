#!/usr/bin/env python3
"""
parsers.py - Dialect Parsers: raw rule text to RuleRecord

This module is the first stage of the pipeline. Every supported rule-list
syntax gets one parser; all of them produce the same RuleRecord type, so the
merge stage never has to know where a rule came from.

Dialects:
    adblock    ||ads.example.com^, @@exceptions, hosts lines, plain domains
    routing    DOMAIN,ads.example.com / DOMAIN-SUFFIX,example.com[,reject]
    allowlist  one domain per line (also accepts an HTML page of <a> links)
    canonical  our own output; exactly the adblock grammar

Parsers never fail. A line the adblock grammar cannot place is passed
through as OPAQUE so downstream compilers still see it; the routing dialect
drops what it cannot place instead.

Format Compression:
    Hosts lines and plain domains are compressed to domain anchors while
    parsing, the same way hostlist compilers do it:

        0.0.0.0 ads.example.com  ->  DOMAIN_ANCHOR ads.example.com
        ads.example.com          ->  DOMAIN_ANCHOR ads.example.com
        ||ads.example.com^       ->  DOMAIN_ANCHOR ads.example.com

    This is also what makes canonical text a fixed point: the canonical
    emitter writes anchors back as plain domains.
"""
from __future__ import annotations

import ipaddress
import logging
import re
from typing import Callable, Final, Iterator

from dnsrules.errors import Diagnostics, ParseWarning
from dnsrules.models import Dialect, RuleKind, RuleRecord

logger = logging.getLogger(__name__)


# =============================================================================
# REGEX PATTERNS
# =============================================================================

#: Cosmetic/element-hiding rule patterns: ## #@# #?# #$# #%# $# etc.
COSMETIC_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"#[@$?%]*#|"            # Standard element hiding: ## #@# #?# #$# etc.
    r"#[@$?%]*\?#|"          # Extended CSS: #?# #@?# etc.
    r"\$#|"                  # Snippet injection: $#
    r"#%#"                   # Scriptlet injection: #%#
)

#: Comment markers: ! (adblock) and # (hosts)
COMMENT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[!#]")

#: List header, e.g. [Adblock Plus 2.0]
HEADER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\[.*\]$")

#: ||domain^ with nothing after the separator
ANCHOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\|\|([^\^$|*\s/]+)\^$")

#: |domain^ (exact-start anchor)
EXACT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\|([^|\^$*\s/]+)\^$")

#: Hosts format: IP domain [domain2 ...] [# comment]
HOSTS_PATTERN: Final[re.Pattern[str]] = re.compile(r"^([\d.:a-fA-F]+)\s+([^#]+?)\s*(?:#.*)?$")

#: Plain hostname: labels of letters, digits, hyphens and underscores
PLAIN_DOMAIN_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z0-9_]([a-zA-Z0-9_-]{0,61}[a-zA-Z0-9_])?"
    r"(\.[a-zA-Z0-9_]([a-zA-Z0-9_-]{0,61}[a-zA-Z0-9_])?)*$"
)

#: Routing rule: TYPE,value[,modifier...]
ROUTING_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\s*([A-Za-z-]+)\s*,\s*([^,]*?)\s*(?:,.*)?$")

#: HTML anchor text, e.g. <a href="...">example.com</a>
HTML_ANCHOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"<a\s+href=[^>]*>([^<]*)", re.IGNORECASE)

# Local/blocking IPs in hosts format
BLOCKING_IPS: Final[frozenset[str]] = frozenset({
    "0.0.0.0", "127.0.0.1", "::1", "::0", "::", "0:0:0:0:0:0:0:0", "0:0:0:0:0:0:0:1",
})

# Local hostnames to skip in hosts files
LOCAL_HOSTNAMES: Final[frozenset[str]] = frozenset({
    "localhost", "localhost.localdomain", "local", "broadcasthost",
    "ip6-localhost", "ip6-loopback", "ip6-localnet",
    "ip6-mcastprefix", "ip6-allnodes", "ip6-allrouters", "ip6-allhosts",
})

# Routing rule types that carry a domain
ROUTING_TYPES: Final[dict[str, RuleKind]] = {
    "DOMAIN": RuleKind.EXACT_DOMAIN,
    "DOMAIN-SUFFIX": RuleKind.DOMAIN_ANCHOR,
}


# =============================================================================
# HELPERS
# =============================================================================

def normalize_domain(domain: str) -> str:
    """Normalize domain to lowercase, stripped, without trailing dot."""
    return domain.strip().lower().rstrip(".")


def is_ipv4_literal(value: str) -> bool:
    """
    Check if value is a dotted IPv4 address.

    Example:
        >>> is_ipv4_literal("203.0.113.5")
        True
        >>> is_ipv4_literal("ads.example.com")
        False
    """
    try:
        return isinstance(ipaddress.ip_address(value), ipaddress.IPv4Address)
    except ValueError:
        return False


def is_plain_domain(value: str) -> bool:
    """True if value reads back as a DOMAIN_ANCHOR when written as a bare line."""
    return (
        bool(PLAIN_DOMAIN_PATTERN.match(value))
        and not is_ipv4_literal(value)
        and value not in LOCAL_HOSTNAMES
    )


def iter_lines(text: str) -> Iterator[str]:
    """Yield stripped, non-empty lines of text (BOM and \\r tolerant)."""
    for line in text.lstrip("\ufeff").splitlines():
        line = line.strip()
        if line:
            yield line


def is_comment(line: str) -> bool:
    """
    Check if a stripped line is a comment or a list header.

    Example:
        >>> is_comment("! Title: AdRules")
        True
        >>> is_comment("##.ad-banner")
        False
    """
    if HEADER_PATTERN.match(line):
        return True
    return bool(COMMENT_PATTERN.match(line)) and not COSMETIC_PATTERN.match(line)


def is_cosmetic_rule(line: str) -> bool:
    """
    Check if line is a cosmetic/element-hiding rule.

    Example:
        >>> is_cosmetic_rule("example.com##.ad-banner")
        True
        >>> is_cosmetic_rule("||example.com^")
        False
    """
    return bool(COSMETIC_PATTERN.search(line))


def extract_hosts_domains(line: str) -> list[str] | None:
    """
    Extract hostnames from a hosts-style line with a blocking address.

    Returns:
        List of hostnames (possibly empty), or None if line is not a
        blocking hosts entry
    """
    match = HOSTS_PATTERN.match(line)
    if not match:
        return None
    ip = match.group(1)
    if ip not in BLOCKING_IPS and not ip.startswith("0.") and not ip.startswith("127."):
        return None

    domains = []
    for part in match.group(2).split():
        domain = normalize_domain(part)
        if domain and domain not in LOCAL_HOSTNAMES and PLAIN_DOMAIN_PATTERN.match(domain):
            domains.append(domain)
    return domains


class _Unparsed:
    """Counts lines a parser could not place, for one ParseWarning per source."""

    def __init__(self, origin: str) -> None:
        self.origin = origin
        self.count = 0
        self.sample = ""

    def add(self, line: str) -> None:
        if not self.count:
            self.sample = line
        self.count += 1
        logger.debug("%s: unrecognized line %r", self.origin, line)

    def report(self, diagnostics: Diagnostics | None) -> None:
        if not self.count:
            return
        warning = ParseWarning(self.origin, self.count, self.sample)
        logger.warning("%s", warning)
        if diagnostics is not None:
            diagnostics.add(warning)


# =============================================================================
# DIALECT PARSERS
# =============================================================================

def classify_adblock_line(line: str, origin: str) -> list[RuleRecord] | None:
    """
    Classify one stripped adblock-grammar line.

    Returns:
        Records for the line, or None if the line is unrecognized (the
        caller passes it through as OPAQUE)

    Example:
        >>> classify_adblock_line("||ads.example.com^", "x")
        [RuleRecord(pattern='ads.example.com', kind=<RuleKind.DOMAIN_ANCHOR: 1>, origin='x')]
    """
    if is_comment(line):
        return [RuleRecord(line, RuleKind.COMMENT, origin)]

    # Cosmetic rules do nothing at DNS level but are kept verbatim
    if is_cosmetic_rule(line):
        return [RuleRecord(line, RuleKind.OPAQUE, origin)]

    if line.startswith("@@"):
        body = line[2:]
        match = ANCHOR_PATTERN.match(body)
        pattern = normalize_domain(match.group(1)) if match else body
        return [RuleRecord(pattern, RuleKind.EXCEPTION, origin)]

    if "*" in line:
        return [RuleRecord(line, RuleKind.WILDCARD, origin)]

    match = ANCHOR_PATTERN.match(line)
    if match:
        return [RuleRecord(normalize_domain(match.group(1)), RuleKind.DOMAIN_ANCHOR, origin)]

    match = EXACT_PATTERN.match(line)
    if match:
        return [RuleRecord(normalize_domain(match.group(1)), RuleKind.EXACT_DOMAIN, origin)]

    domains = extract_hosts_domains(line)
    if domains is not None:
        return [RuleRecord(d, RuleKind.DOMAIN_ANCHOR, origin) for d in domains]

    domain = normalize_domain(line)
    if is_plain_domain(domain):
        return [RuleRecord(domain, RuleKind.DOMAIN_ANCHOR, origin)]

    return None


def parse_adblock(text: str, origin: str, diagnostics: Diagnostics | None = None) -> list[RuleRecord]:
    """
    Parse adblock-style text.

    Unrecognized lines (modifier rules, regex rules, paths) become OPAQUE
    records and are counted in a single ParseWarning for the source.
    """
    records: list[RuleRecord] = []
    unparsed = _Unparsed(origin)

    for line in iter_lines(text):
        classified = classify_adblock_line(line, origin)
        if classified is None:
            unparsed.add(line)
            records.append(RuleRecord(line, RuleKind.OPAQUE, origin))
        else:
            records.extend(classified)

    unparsed.report(diagnostics)
    return records


def parse_routing(text: str, origin: str, diagnostics: Diagnostics | None = None) -> list[RuleRecord]:
    """
    Parse Surge/Clash routing rules.

    Only DOMAIN and DOMAIN-SUFFIX lines contribute (the type is matched
    case-sensitively, as Surge writes it); everything else (comments,
    DOMAIN-KEYWORD, IP-CIDR, domain,... in lower case) is dropped silently.
    Trailing modifiers such as ",reject" are ignored. Values that are not
    plain hostnames (IPv4 literals, wildcards, whitespace, adblock syntax)
    are rejected and counted.

    Example:
        >>> [r.pattern for r in parse_routing("DOMAIN-SUFFIX, ads.example.com,reject", "x")]
        ['ads.example.com']
    """
    records: list[RuleRecord] = []
    unparsed = _Unparsed(origin)

    for line in iter_lines(text):
        match = ROUTING_PATTERN.match(line)
        if not match:
            continue
        kind = ROUTING_TYPES.get(match.group(1))
        if kind is None:
            continue

        # Must read back as the same kind from canonical text
        value = normalize_domain(match.group(2))
        if not is_plain_domain(value):
            unparsed.add(line)
            continue
        records.append(RuleRecord(value, kind, origin))

    unparsed.report(diagnostics)
    return records


def parse_allowlist(text: str, origin: str, diagnostics: Diagnostics | None = None) -> list[RuleRecord]:
    """
    Parse an allowlist: one domain per line, every entry an EXCEPTION.

    Adblock decoration (@@||d^, ||d^) is stripped. Lines holding HTML
    anchors contribute the anchor texts, so an exclusion page can be fed
    in as downloaded.
    """
    records: list[RuleRecord] = []
    unparsed = _Unparsed(origin)

    for line in iter_lines(text):
        anchors = HTML_ANCHOR_PATTERN.findall(line)
        if anchors:
            candidates = anchors
        elif is_comment(line) or line.startswith("<"):
            continue
        else:
            candidates = [line]

        for candidate in candidates:
            candidate = candidate.strip()
            if candidate.startswith("@@"):
                candidate = candidate[2:]
            match = ANCHOR_PATTERN.match(candidate)
            if match:
                candidate = match.group(1)
            domain = normalize_domain(candidate)
            if not domain or any(c.isspace() for c in domain):
                unparsed.add(line)
                continue
            records.append(RuleRecord(domain, RuleKind.EXCEPTION, origin))

    unparsed.report(diagnostics)
    return records


Parser = Callable[[str, str, "Diagnostics | None"], list[RuleRecord]]

PARSERS: Final[dict[Dialect, Parser]] = {
    Dialect.ADBLOCK: parse_adblock,
    Dialect.ROUTING: parse_routing,
    Dialect.ALLOWLIST: parse_allowlist,
    Dialect.CANONICAL: parse_adblock,
}


def parse(
    dialect: Dialect,
    text: str,
    origin: str | None = None,
    diagnostics: Diagnostics | None = None,
) -> list[RuleRecord]:
    """
    Parse raw text written in the given dialect.

    Args:
        dialect: Syntax of text
        text: Raw rule-list text
        origin: Label stored on each record (defaults to the dialect name)
        diagnostics: Optional accumulator for ParseWarning

    Returns:
        Records in input order
    """
    return PARSERS[Dialect(dialect)](text, origin or Dialect(dialect).value, diagnostics)
