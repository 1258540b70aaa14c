#!/usr/bin/env python3
"""
pipeline.py

Main processing pipeline for DNS rule aggregation.

Usage:
    python -m dnsrules.pipeline --sources sources.txt --outdir rules/ \\
        [--overrides rules/myrules.txt] [--allowlist URL] [--cache .cache]

Pipeline stages:
1. Download every source (concurrently, with cache fallback)
2. Parse and merge: dedup, allowlist filtering, deterministic sort
3. Extract the domain list and domain-set views
4. Emit and write dns.txt, domain.txt, domainset.txt

Stages 2-4 are pure: build_artifacts() takes raw text and returns text.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
import tempfile
import time
from pathlib import Path
from typing import NamedTuple, Sequence

from dnsrules.compiler import CompileStats, merge
from dnsrules.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    PipelineConfig,
    SourceSpec,
    load_sources,
    parse_dialect,
    split_allowlist,
)
from dnsrules.downloader import download
from dnsrules.emitters import emit_canonical_text, emit_domain_list, emit_domain_set
from dnsrules.errors import AllSourcesEmpty, ConfigError, Diagnostics
from dnsrules.extractor import extract
from dnsrules.models import CanonicalSet, Dialect, RawSource

logger = logging.getLogger(__name__)


class Artifacts(NamedTuple):
    """Output of one run."""
    canonical_text: str
    domain_list: str
    domain_set: str
    canonical_set: CanonicalSet
    stats: CompileStats
    diagnostics: Diagnostics


# =========================================================================
# Core
# =========================================================================

def build_artifacts(
    sources: Sequence[RawSource],
    overrides: RawSource | None = None,
    allowlist: RawSource | None = None,
    diagnostics: Diagnostics | None = None,
) -> Artifacts:
    """
    Merge, extract and emit.

    Raises:
        AllSourcesEmpty: Every listed source was empty or had no line its
            dialect recognizes as a rule (overrides do not count). A rule
            line whose value was rejected, such as DOMAIN,203.0.113.5,
            still counts as input
    """
    if diagnostics is None:
        diagnostics = Diagnostics()

    stats = CompileStats()
    canonical = merge(sources, overrides, allowlist, diagnostics, stats)
    if stats.source_records == 0 and stats.source_rejected == 0:
        raise AllSourcesEmpty(len(sources))

    views = extract(canonical, diagnostics)

    return Artifacts(
        canonical_text=emit_canonical_text(canonical),
        domain_list=emit_domain_list(views.domains),
        domain_set=emit_domain_set(views.domain_set),
        canonical_set=canonical,
        stats=stats,
        diagnostics=diagnostics,
    )


# =========================================================================
# Persistence
# =========================================================================

def write_text_atomic(path: Path, text: str) -> None:
    """Write text through a temp file in the same directory, then replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp_", suffix=path.suffix, dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_artifacts(
    artifacts: Artifacts,
    output_dir: str | Path,
    names: tuple[str, str, str] = ("dns.txt", "domain.txt", "domainset.txt"),
) -> list[Path]:
    """Write the three text artifacts; returns the written paths."""
    out = Path(output_dir)
    texts = (artifacts.canonical_text, artifacts.domain_list, artifacts.domain_set)
    paths = []
    for name, text in zip(names, texts):
        path = out / name
        write_text_atomic(path, text)
        paths.append(path)
    return paths


def read_overrides(path: Path | None) -> RawSource | None:
    """Read the custom rules file; a missing file only logs."""
    if path is None:
        return None
    if not path.is_file():
        logger.info("   No custom rules file: %s", path)
        return None
    with open(path, encoding="utf-8-sig", errors="replace") as f:
        return RawSource(Dialect.CANONICAL, f.read(), str(path))


# =========================================================================
# Run
# =========================================================================

def run(config: PipelineConfig, diagnostics: Diagnostics | None = None) -> Artifacts:
    """Run the full pipeline: download, build, write."""
    if diagnostics is None:
        diagnostics = Diagnostics()

    logger.info("📥 Stage 1: Downloading %d sources...", len(config.sources))
    stage_start = time.perf_counter()
    specs = list(config.sources)
    if config.allowlist_source is not None:
        specs.append(config.allowlist_source)
    fetched = download(
        specs,
        cache_dir=config.cache_dir,
        concurrency=config.concurrency,
        timeout=config.timeout,
        retries=config.retries,
        diagnostics=diagnostics,
    )
    sources = fetched[:len(config.sources)]
    allowlist = fetched[len(config.sources)] if config.allowlist_source is not None else None
    overrides = read_overrides(config.overrides_path)
    logger.info("   Done (%.1fs)", time.perf_counter() - stage_start)

    logger.info("")
    logger.info("⚙️  Stage 2: Merging, extracting and emitting...")
    stage_start = time.perf_counter()
    artifacts = build_artifacts(sources, overrides, allowlist, diagnostics)
    logger.info("   Output: %s rules (%.1fs)", f"{artifacts.stats.total_output:,}", time.perf_counter() - stage_start)

    logger.info("")
    logger.info("💾 Stage 3: Writing artifacts...")
    for path in write_artifacts(artifacts, config.output_dir, config.file_names):
        logger.info("   %s", path)

    return artifacts


def print_summary(artifacts: Artifacts) -> None:
    """Print formatted summary."""
    stats = artifacts.stats
    domains = artifacts.domain_list.count("\n")

    print("\n" + "=" * 60)
    print("📊 PIPELINE SUMMARY")
    print("=" * 60)

    print(f"\n📈 Records:")
    print(f"   From sources:       {stats.source_records:>10,}")
    print(f"   From overrides:     {stats.override_records:>10,}")
    print(f"   Allowlist entries:  {stats.allowlist_entries:>10,}")

    print(f"\n🔧 Merge pruned:")
    print(f"   Allowlisted:        {stats.whitelist_conflict_pruned:>10,}")
    print(f"   Exceptions:         {stats.exception_dropped:>10,}")
    print(f"   Duplicates:         {stats.duplicate_pruned:>10,}")

    print(f"\n📦 Output breakdown:")
    print(f"   Domain anchors:     {stats.anchor_kept:>10,}")
    print(f"   Exact domains:      {stats.exact_kept:>10,}")
    print(f"   Other rules:        {stats.other_kept:>10,}")
    print(f"   Domain list:        {domains:>10,}")

    warnings = artifacts.diagnostics.warnings
    if warnings:
        print(f"\n⚠️  Warnings: {len(warnings)}")
        for warning in warnings:
            print(f"   - {type(warning).__name__}: {warning}")


# =========================================================================
# CLI
# =========================================================================

def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stdout,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m dnsrules.pipeline",
        description="Merge DNS blocking rule lists into canonical, domain and domain-set files",
    )
    parser.add_argument("--sources", required=True, help="Path to sources file (<dialect> <url-or-path> per line)")
    parser.add_argument("--outdir", required=True, help="Output directory for the artifacts")
    parser.add_argument("--overrides", help="Custom rules file (canonical dialect), appended after sources")
    parser.add_argument("--allowlist", help="URL or path of the allowlist (overrides the sources file's)")
    parser.add_argument("--allowlist-dialect", default=Dialect.ALLOWLIST.value, help="Dialect tag of the allowlist")
    parser.add_argument("--cache", help="Cache directory for ETag state and last good copies")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Max concurrent downloads")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT, help="Request timeout in seconds")
    parser.add_argument("--retries", type=int, default=DEFAULT_RETRIES, help="Number of attempts per URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every dropped line")
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    sources, allowlist = split_allowlist(load_sources(args.sources))
    # --allowlist replaces the one from the sources file
    if args.allowlist:
        allowlist = SourceSpec(args.allowlist, parse_dialect(args.allowlist_dialect))

    return PipelineConfig(
        sources=sources,
        output_dir=Path(args.outdir),
        overrides_path=Path(args.overrides) if args.overrides else None,
        allowlist_source=allowlist,
        cache_dir=Path(args.cache) if args.cache else None,
        concurrency=args.concurrency,
        timeout=args.timeout,
        retries=args.retries,
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"❌ CONFIG ERROR: {e}", file=sys.stderr)
        return 2

    if not config.sources:
        print("❌ CONFIG ERROR: no sources configured", file=sys.stderr)
        return 2

    print("🚀 Starting rule pipeline...")
    print("-" * 60)
    start_time = time.time()

    try:
        artifacts = run(config)
    except AllSourcesEmpty as e:
        print(f"\n❌ ERROR: {e}", file=sys.stderr)
        return 1

    print_summary(artifacts)
    print(f"\n⏱️  Total time: {time.time() - start_time:.1f}s")
    if artifacts.diagnostics.warnings:
        print("✅ Pipeline completed with warnings (degraded sources above)")
    else:
        print("✅ Pipeline completed successfully!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
