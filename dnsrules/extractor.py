#!/usr/bin/env python3
"""
extractor.py - Domain views of a CanonicalSet

Only suffix-style blocking rules (DOMAIN_ANCHOR) compile to a domain list.
Exact-domain, wildcard, exception, comment and opaque records never appear
in either view.

Every candidate is validated before it goes in. A rejected candidate is
logged and recorded as InvalidDomainSyntax; it never fails the run.

    ads.example.com    kept
    telemetry.corp     kept (suffix unknown to the snapshot)
    1.2.3.4            rejected: IP literal
    co.uk              rejected: public suffix only
"""
from __future__ import annotations

import ipaddress
import logging
import re
from functools import lru_cache

import tldextract

from dnsrules.errors import Diagnostics, InvalidDomainSyntax
from dnsrules.models import CanonicalSet, DomainSetView, DomainView, DomainViews, RuleKind

logger = logging.getLogger(__name__)

# Bundled Public Suffix List snapshot only, never fetched over the network.
# Used to reject bare suffixes; a name the snapshot does not know is kept.
_tld_extract = tldextract.TLDExtract(suffix_list_urls=())

#: Decoration marker for domain-set consumers (mihomo/Clash "+." syntax)
DOMAIN_SET_PREFIX = "+."

MAX_DOMAIN_LENGTH = 253

_LABEL_PATTERN = re.compile(r"^[a-z0-9_]([a-z0-9_-]{0,61}[a-z0-9_])?$")


@lru_cache(maxsize=65536)
def _public_suffix(domain: str) -> str:
    """Cached tldextract lookup of the public suffix."""
    return _tld_extract(domain).suffix


def domain_syntax_error(domain: str) -> str | None:
    """
    Check a candidate domain.

    Returns:
        None if domain is valid, otherwise a short reason

    Example:
        >>> domain_syntax_error("ads.example.com") is None
        True
        >>> domain_syntax_error("*.example.com")
        'wildcard'
    """
    if not domain:
        return "empty"
    if "*" in domain:
        return "wildcard"
    if any(c.isspace() for c in domain):
        return "whitespace"
    if len(domain) > MAX_DOMAIN_LENGTH:
        return "too long"
    try:
        ipaddress.ip_address(domain)
        return "IP literal"
    except ValueError:
        pass
    for label in domain.split("."):
        if not _LABEL_PATTERN.match(label):
            return f"bad label {label!r}"
    if domain == _public_suffix(domain):
        return "public suffix only"
    return None


def extract(canonical: CanonicalSet, diagnostics: Diagnostics | None = None) -> DomainViews:
    """
    Derive the domain list and domain-set views.

    Args:
        canonical: Merged rules
        diagnostics: Optional accumulator for InvalidDomainSyntax

    Returns:
        DomainViews(domains, domain_set), both in CanonicalSet order
    """
    domains: list[str] = []
    seen: set[str] = set()

    for record in canonical:
        if record.kind is not RuleKind.DOMAIN_ANCHOR:
            continue
        reason = domain_syntax_error(record.pattern)
        if reason is not None:
            warning = InvalidDomainSyntax(record.pattern, reason)
            logger.warning("Dropped from domain list: %s (%s)", warning, record.origin)
            if diagnostics is not None:
                diagnostics.add(warning)
            continue
        if record.pattern not in seen:
            seen.add(record.pattern)
            domains.append(record.pattern)

    view: DomainView = tuple(domains)
    return DomainViews(view, decorate(view))


def decorate(view: DomainView) -> DomainSetView:
    """
    Prefix every domain with DOMAIN_SET_PREFIX.

    Example:
        >>> decorate(("ads.example.com",))
        ('+.ads.example.com',)
    """
    return tuple(DOMAIN_SET_PREFIX + domain for domain in view)
