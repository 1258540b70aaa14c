#!/usr/bin/env python3
"""
errors.py - Error and warning taxonomy for a pipeline run.

Only AllSourcesEmpty (and ConfigError, raised before a run starts) ends a run.
Everything else is recoverable: the condition is recorded in a Diagnostics
accumulator and the run continues with degraded input.

    SourceUnavailable    a fetch failed, the source contributes nothing
    ParseWarning         lines that did not match their dialect grammar
    InvalidDomainSyntax  a candidate was dropped from the domain views
    AllSourcesEmpty      no source produced a single rule (fatal)
"""
from __future__ import annotations

from dataclasses import dataclass, field


class RuleMergeError(Exception):
    """Base class for every condition the pipeline reports."""


class ConfigError(RuleMergeError):
    """Malformed sources file or unknown dialect."""


class SourceUnavailable(RuleMergeError):
    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class ParseWarning(RuleMergeError):
    def __init__(self, origin: str, count: int, sample: str) -> None:
        super().__init__(f"{origin}: {count:,} unrecognized line(s), e.g. {sample!r}")
        self.origin = origin
        self.count = count
        self.sample = sample


class InvalidDomainSyntax(RuleMergeError):
    def __init__(self, domain: str, reason: str) -> None:
        super().__init__(f"{domain!r} rejected: {reason}")
        self.domain = domain
        self.reason = reason


class AllSourcesEmpty(RuleMergeError):
    def __init__(self, source_count: int) -> None:
        super().__init__(
            f"All {source_count} source(s) produced no rules; refusing to emit empty artifacts"
        )
        self.source_count = source_count


@dataclass
class Diagnostics:
    """Warnings accumulated over one run."""
    warnings: list[RuleMergeError] = field(default_factory=list)

    def add(self, warning: RuleMergeError) -> None:
        self.warnings.append(warning)

    def of_type(self, cls: type[RuleMergeError]) -> list[RuleMergeError]:
        return [w for w in self.warnings if isinstance(w, cls)]
