"""Shared pytest fixtures and helpers for dnsrules tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from dnsrules.models import Dialect, RawSource


def adblock(text: str, name: str = "") -> RawSource:
    return RawSource(Dialect.ADBLOCK, text, name)


def routing(text: str, name: str = "") -> RawSource:
    return RawSource(Dialect.ROUTING, text, name)


def allowlist(text: str, name: str = "") -> RawSource:
    return RawSource(Dialect.ALLOWLIST, text, name)


def lines(text: str) -> list[str]:
    return text.splitlines()


@pytest.fixture
def rule_dir(tmp_path: Path) -> Path:
    """Directory with local source files and a sources file pointing at them."""
    (tmp_path / "adblock.txt").write_text(
        "! Title: test list\n"
        "||ads.example.com^\n"
        "||track.example.net^\n"
        "@@||good.example.com^\n"
        "example.org##.banner\n",
        encoding="utf-8",
    )
    (tmp_path / "surge.list").write_text(
        "# Surge AD list\n"
        "DOMAIN-SUFFIX,ads.example.com,reject\n"
        "DOMAIN,pixel.example.com\n"
        "DOMAIN,203.0.113.5\n"
        "IP-CIDR,203.0.113.0/24,no-resolve\n",
        encoding="utf-8",
    )
    (tmp_path / "allow.txt").write_text("track.example.net\n", encoding="utf-8")
    (tmp_path / "myrules.txt").write_text("||custom.example.com^\n", encoding="utf-8")
    (tmp_path / "sources.txt").write_text(
        "# test sources\n"
        f"adblock {tmp_path / 'adblock.txt'}\n"
        f"routing {tmp_path / 'surge.list'}\n",
        encoding="utf-8",
    )
    return tmp_path
