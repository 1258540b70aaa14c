"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from dnsrules.config import PipelineConfig, SourceSpec, load_sources, parse_source_line, split_allowlist
from dnsrules.errors import ConfigError
from dnsrules.models import Dialect


def test_parse_source_line() -> None:
    assert parse_source_line("routing https://example.org/AD.list") == SourceSpec(
        "https://example.org/AD.list", Dialect.ROUTING
    )
    assert parse_source_line("  https://example.org/dns.txt  ") == SourceSpec(
        "https://example.org/dns.txt", Dialect.ADBLOCK
    )
    assert parse_source_line("ALLOWLIST /tmp/allow.txt").dialect is Dialect.ALLOWLIST
    assert parse_source_line("# adblock https://example.org") is None
    assert parse_source_line("   ") is None


def test_malformed_lines() -> None:
    with pytest.raises(ConfigError, match="Unknown dialect"):
        parse_source_line("hosts https://example.org")
    with pytest.raises(ConfigError, match="Malformed"):
        parse_source_line("adblock https://a.example https://b.example")


def test_load_sources(tmp_path: Path) -> None:
    path = tmp_path / "sources.txt"
    path.write_text(
        "# comment\n\nadblock https://big.oisd.nl\nrouting ./local.list\n",
        encoding="utf-8",
    )
    specs = load_sources(path)
    assert specs == [
        SourceSpec("https://big.oisd.nl", Dialect.ADBLOCK),
        SourceSpec("./local.list", Dialect.ROUTING),
    ]
    assert specs[0].is_remote
    assert not specs[1].is_remote


def test_load_sources_reports_line_number(tmp_path: Path) -> None:
    path = tmp_path / "sources.txt"
    path.write_text("adblock https://ok.example\nbogus https://x.example\n", encoding="utf-8")
    with pytest.raises(ConfigError, match=r"sources.txt:2"):
        load_sources(path)


def test_missing_sources_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_sources(tmp_path / "missing.txt")


def test_repository_sources_file_loads() -> None:
    specs = load_sources(Path(__file__).resolve().parent.parent / "sources.txt")
    assert all(s.is_remote for s in specs)
    sources, allowlist = split_allowlist(specs)
    assert {s.dialect for s in sources} == {Dialect.ADBLOCK, Dialect.ROUTING}
    assert allowlist == SourceSpec("https://oisd.nl/excludes.php", Dialect.ALLOWLIST)


def test_allowlist_line_split_from_sources() -> None:
    specs = [
        SourceSpec("https://big.oisd.nl"),
        SourceSpec("/etc/dnsrules/allow.txt", Dialect.ALLOWLIST),
        SourceSpec("https://example.org/AD.list", Dialect.ROUTING),
    ]
    sources, allowlist = split_allowlist(specs)
    assert sources == [specs[0], specs[2]]
    assert allowlist == specs[1]
    assert split_allowlist(specs[:1]) == (specs[:1], None)


def test_two_allowlists_rejected() -> None:
    with pytest.raises(ConfigError, match="Only one allowlist"):
        split_allowlist([SourceSpec("a.txt", Dialect.ALLOWLIST), SourceSpec("b.txt", Dialect.ALLOWLIST)])


def test_pipeline_config_validation(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        PipelineConfig(sources=[], output_dir=tmp_path, concurrency=0)
    with pytest.raises(ConfigError):
        PipelineConfig(sources=[], output_dir=tmp_path, retries=0)
    with pytest.raises(ConfigError, match="blocking source"):
        PipelineConfig(sources=[SourceSpec("allow.txt", Dialect.ALLOWLIST)], output_dir=tmp_path)
