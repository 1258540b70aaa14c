"""Tests for the domain views."""

from __future__ import annotations

import pytest

from dnsrules.errors import Diagnostics, InvalidDomainSyntax
from dnsrules.extractor import DOMAIN_SET_PREFIX, decorate, domain_syntax_error, extract
from dnsrules.models import CanonicalSet, RuleKind, RuleRecord


def canonical(*records: tuple[str, RuleKind]) -> CanonicalSet:
    return CanonicalSet(RuleRecord(pattern, kind, "test") for pattern, kind in records)


class TestExtract:
    def test_only_anchors_become_domains(self) -> None:
        views = extract(canonical(
            ("anchor.example.com", RuleKind.DOMAIN_ANCHOR),
            ("exact.example.com", RuleKind.EXACT_DOMAIN),
            ("||*.wild.example.com^", RuleKind.WILDCARD),
            ("allowed.example.com", RuleKind.EXCEPTION),
            ("! comment.example.com", RuleKind.COMMENT),
            ("opaque.example.com##.ad", RuleKind.OPAQUE),
        ))
        assert views.domains == ("anchor.example.com",)
        assert views.domain_set == ("+.anchor.example.com",)

    def test_same_domain_as_exact_and_anchor_listed_once(self) -> None:
        views = extract(canonical(
            ("ads.example.com", RuleKind.EXACT_DOMAIN),
            ("ads.example.com", RuleKind.DOMAIN_ANCHOR),
        ))
        assert views.domains == ("ads.example.com",)

    def test_views_follow_canonical_order(self) -> None:
        views = extract(canonical(
            ("c.example.com", RuleKind.DOMAIN_ANCHOR),
            ("a.example.com", RuleKind.DOMAIN_ANCHOR),
            ("b.example.net", RuleKind.DOMAIN_ANCHOR),
        ))
        assert views.domains == ("a.example.com", "b.example.net", "c.example.com")
        for index, domain in enumerate(views.domains):
            assert views.domain_set[index] == "+." + domain

    def test_invalid_candidates_dropped_with_warning(self) -> None:
        diagnostics = Diagnostics()
        views = extract(
            canonical(
                ("ads.example.com", RuleKind.DOMAIN_ANCHOR),
                ("203.0.113.9", RuleKind.DOMAIN_ANCHOR),
                ("printer.lan", RuleKind.DOMAIN_ANCHOR),
                ("co.uk", RuleKind.DOMAIN_ANCHOR),
                ("-bad.example.com", RuleKind.DOMAIN_ANCHOR),
            ),
            diagnostics,
        )
        assert views.domains == ("ads.example.com", "printer.lan")
        rejected = {w.domain for w in diagnostics.of_type(InvalidDomainSyntax)}
        assert rejected == {"203.0.113.9", "co.uk", "-bad.example.com"}

    def test_empty_set(self) -> None:
        assert extract(CanonicalSet()) == ((), ())


@pytest.mark.parametrize(
    "domain, reason",
    [
        ("", "empty"),
        ("*.example.com", "wildcard"),
        ("a b.example.com", "whitespace"),
        ("203.0.113.5", "IP literal"),
        ("a..example.com", "bad label ''"),
        ("co.uk", "public suffix only"),
        ("x" * 250 + ".com", "too long"),
    ],
)
def test_domain_syntax_errors(domain: str, reason: str) -> None:
    assert domain_syntax_error(domain) == reason


@pytest.mark.parametrize(
    "domain",
    [
        "ads.example.com",
        "a-b.example.co.uk",
        "_dmarc.example.org",
        "xn--bcher-kva.de",
        "ads.tracker.internal",
        "telemetry.corp",
        "example.invalidtld",
    ],
)
def test_valid_domains(domain: str) -> None:
    assert domain_syntax_error(domain) is None


def test_decorate() -> None:
    assert decorate(("a.example.com", "b.example.com")) == (
        DOMAIN_SET_PREFIX + "a.example.com",
        DOMAIN_SET_PREFIX + "b.example.com",
    )
