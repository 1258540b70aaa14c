#!/usr/bin/env python3
"""
config.py - Run configuration and sources-file loading.

Sources file format, one source per line:

    # comment
    adblock   https://big.oisd.nl
    routing   https://example.org/Surge/AD.list
    https://example.org/dns.txt          (dialect defaults to adblock)
    allowlist https://oisd.nl/excludes.php

A location without an http(s) scheme is read from the local disk. At most
one allowlist line is allowed; it becomes the run's allowlist, never a
blocking source.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from dnsrules.errors import ConfigError
from dnsrules.models import Dialect

# Default configuration
DEFAULT_TIMEOUT = 60
DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_RETRIES = 3
DEFAULT_CONCURRENCY = 8

# Artifact file names
CANONICAL_FILE = "dns.txt"
DOMAIN_FILE = "domain.txt"
DOMAINSET_FILE = "domainset.txt"


class SourceSpec(NamedTuple):
    """One configured source."""
    location: str
    dialect: Dialect = Dialect.ADBLOCK

    @property
    def is_remote(self) -> bool:
        return self.location.startswith(("http://", "https://"))


@dataclass
class PipelineConfig:
    """
    Everything one run needs.

    Attributes:
        sources: Blocking sources, in precedence order
        output_dir: Directory receiving the three artifacts
        overrides_path: Custom rules in canonical dialect, appended last
        allowlist_source: URL or path of the allowlist
        cache_dir: HTTP cache for the downloader (None disables it)
    """
    sources: list[SourceSpec]
    output_dir: Path
    overrides_path: Path | None = None
    allowlist_source: SourceSpec | None = None
    cache_dir: Path | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: int = DEFAULT_TIMEOUT
    retries: int = DEFAULT_RETRIES
    file_names: tuple[str, str, str] = field(
        default=(CANONICAL_FILE, DOMAIN_FILE, DOMAINSET_FILE)
    )

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.timeout < 1:
            raise ConfigError(f"timeout must be at least 1 second, got {self.timeout}")
        if self.retries < 1:
            raise ConfigError(f"retries must be at least 1, got {self.retries}")
        for spec in self.sources:
            if spec.dialect == Dialect.ALLOWLIST:
                raise ConfigError(f"Allowlist {spec.location!r} listed as a blocking source")


def parse_dialect(name: str) -> Dialect:
    try:
        return Dialect.from_name(name)
    except ValueError:
        known = ", ".join(d.value for d in Dialect)
        raise ConfigError(f"Unknown dialect {name!r} (expected one of: {known})") from None


def parse_source_line(line: str) -> SourceSpec | None:
    """
    Parse one sources-file line.

    Example:
        >>> parse_source_line("routing https://example.org/AD.list")
        SourceSpec(location='https://example.org/AD.list', dialect=<Dialect.ROUTING: 'routing'>)
        >>> parse_source_line("# disabled") is None
        True
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    parts = line.split()
    if len(parts) == 1:
        return SourceSpec(parts[0])
    if len(parts) == 2:
        return SourceSpec(parts[1], parse_dialect(parts[0]))
    raise ConfigError(f"Malformed source line: {line!r}")


def load_sources(sources_file: str | Path) -> list[SourceSpec]:
    """Load sources from file, skipping comments and empty lines."""
    path = Path(sources_file)
    if not path.is_file():
        raise ConfigError(f"Sources file not found: {sources_file}")

    sources = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, 1):
            try:
                spec = parse_source_line(line)
            except ConfigError as e:
                raise ConfigError(f"{path}:{lineno}: {e}") from None
            if spec is not None:
                sources.append(spec)
    return sources


def split_allowlist(specs: list[SourceSpec]) -> tuple[list[SourceSpec], SourceSpec | None]:
    """
    Separate the allowlist line of a sources file from the blocking sources.

    Raises:
        ConfigError: More than one allowlist is listed
    """
    allowlists = [s for s in specs if s.dialect == Dialect.ALLOWLIST]
    if len(allowlists) > 1:
        locations = ", ".join(s.location for s in allowlists)
        raise ConfigError(f"Only one allowlist may be configured, got: {locations}")
    sources = [s for s in specs if s.dialect != Dialect.ALLOWLIST]
    return sources, allowlists[0] if allowlists else None
