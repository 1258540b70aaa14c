#!/usr/bin/env python3
"""
downloader.py - Async Source Downloader with Smart Caching

Fetches every configured source concurrently and hands the pipeline one
RawSource per source. Uses ETag/Last-Modified caching and falls back to the
last good copy if a download fails.

A failed source never cancels its siblings. It is reported as
SourceUnavailable and contributes an empty RawSource, so one dead mirror
degrades the result instead of aborting the run.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from pathlib import Path
from typing import NamedTuple
from urllib.parse import urlparse

import aiofiles
import aiohttp

from dnsrules.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    SourceSpec,
)
from dnsrules.errors import Diagnostics, SourceUnavailable
from dnsrules.models import RawSource

logger = logging.getLogger(__name__)

# State file for ETag/Last-Modified tracking
STATE_FILE = "state.json"

USER_AGENT = "dnsrules/1.0 (+blocklist aggregator)"


class FetchResult(NamedTuple):
    """Result of a single fetch operation."""
    spec: SourceSpec
    text: str | None
    changed: bool
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.text is not None


def url_to_filename(url: str) -> str:
    """Generate a safe, unique filename from a URL."""
    url_hash = hashlib.sha256(url.encode()).hexdigest()[:16]
    domain = urlparse(url).netloc.replace(".", "_")[:30] or "local"
    return f"{domain}_{url_hash}.txt"


def decode(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


def load_state(cache_dir: Path) -> dict:
    """Load state.json containing ETag/Last-Modified cache."""
    state_path = cache_dir / STATE_FILE
    if state_path.exists():
        try:
            with open(state_path, encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not load %s: %s", state_path, e)
    return {}


def save_state(cache_dir: Path, state: dict) -> None:
    """Save state.json atomically."""
    state_path = cache_dir / STATE_FILE
    temp_path = state_path.with_suffix(".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(state, f, indent=2, sort_keys=True)
        temp_path.replace(state_path)
    except OSError as e:
        logger.warning("Could not save %s: %s", state_path, e)


async def _read_cached(cache_path: Path | None) -> str | None:
    if cache_path is None or not cache_path.exists():
        return None
    async with aiofiles.open(cache_path, "rb") as f:
        return decode(await f.read())


async def read_local(spec: SourceSpec) -> FetchResult:
    """Read a source that lives on the local disk."""
    try:
        async with aiofiles.open(spec.location, "rb") as f:
            content = await f.read()
    except OSError as e:
        return FetchResult(spec, None, False, str(e))
    return FetchResult(spec, decode(content), True)


async def fetch_url(
    session: aiohttp.ClientSession,
    spec: SourceSpec,
    cache_dir: Path | None,
    state: dict,
    timeout: int,
    retries: int,
) -> FetchResult:
    """
    Fetch a single URL with ETag/Last-Modified caching.

    Returns:
        FetchResult with the decoded text, or text=None on failure
    """
    url = spec.location
    cache_path = cache_dir / url_to_filename(url) if cache_dir else None

    # Get cached headers
    url_state = state.get(url, {})
    headers = {"User-Agent": USER_AGENT}
    if cache_path is not None and cache_path.exists():
        if url_state.get("etag"):
            headers["If-None-Match"] = url_state["etag"]
        if url_state.get("last_modified"):
            headers["If-Modified-Since"] = url_state["last_modified"]

    client_timeout = aiohttp.ClientTimeout(total=timeout, connect=DEFAULT_CONNECT_TIMEOUT)
    error = "Max retries exceeded"

    for attempt in range(retries):
        try:
            async with session.get(url, headers=headers, timeout=client_timeout) as response:
                # 304 Not Modified - use cached version
                if response.status == 304:
                    cached = await _read_cached(cache_path)
                    if cached is not None:
                        return FetchResult(spec, cached, False)
                    # Cache file vanished, re-download unconditionally
                    headers.pop("If-None-Match", None)
                    headers.pop("If-Modified-Since", None)
                    continue

                if response.status >= 400:
                    error = f"HTTP {response.status}"
                else:
                    content = await response.read()

                    if cache_path is not None:
                        async with aiofiles.open(cache_path, "wb") as f:
                            await f.write(content)

                        new_state = {"filename": cache_path.name}
                        if "ETag" in response.headers:
                            new_state["etag"] = response.headers["ETag"]
                        if "Last-Modified" in response.headers:
                            new_state["last_modified"] = response.headers["Last-Modified"]
                        new_state["fetched_at"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
                        state[url] = new_state

                    return FetchResult(spec, decode(content), True)

        except asyncio.TimeoutError:
            error = "Timeout"
        except aiohttp.ClientError as e:
            error = str(e) or type(e).__name__

        if attempt < retries - 1:
            await asyncio.sleep(2 ** attempt)  # Exponential backoff

    # Fallback to the last good copy
    cached = await _read_cached(cache_path)
    if cached is not None:
        return FetchResult(spec, cached, False, f"{error}, using cached version")
    return FetchResult(spec, None, False, error)


async def fetch_all(
    specs: list[SourceSpec],
    cache_dir: Path | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
) -> list[FetchResult]:
    """Fetch all sources concurrently with rate limiting, in input order."""
    state: dict = {}
    if cache_dir is not None:
        cache_dir.mkdir(parents=True, exist_ok=True)
        state = load_state(cache_dir)

    semaphore = asyncio.Semaphore(concurrency)

    async def fetch_with_semaphore(spec: SourceSpec) -> FetchResult:
        async with semaphore:
            if not spec.is_remote:
                return await read_local(spec)
            return await fetch_url(session, spec, cache_dir, state, timeout, retries)

    connector = aiohttp.TCPConnector(limit=concurrency, limit_per_host=2)
    async with aiohttp.ClientSession(connector=connector) as session:
        tasks = [fetch_with_semaphore(spec) for spec in specs]
        results = await asyncio.gather(*tasks, return_exceptions=True)

    final_results = []
    for spec, result in zip(specs, results):
        if isinstance(result, BaseException):
            final_results.append(FetchResult(spec, None, False, str(result) or type(result).__name__))
        else:
            final_results.append(result)

    if cache_dir is not None:
        save_state(cache_dir, state)

    return final_results


def to_raw_sources(results: list[FetchResult], diagnostics: Diagnostics | None = None) -> list[RawSource]:
    """
    Convert fetch results to RawSource, one per result, in order.

    Failed sources become empty RawSource entries and a SourceUnavailable
    warning; sources served from cache after a failure are logged only.
    """
    sources = []
    for result in results:
        spec = result.spec
        if result.success:
            if result.error:
                logger.warning("⚠️  %s: %s", spec.location, result.error)
            sources.append(RawSource(spec.dialect, result.text or "", spec.location))
            continue

        warning = SourceUnavailable(spec.location, result.error or "unknown error")
        logger.warning("❌ %s", warning)
        if diagnostics is not None:
            diagnostics.add(warning)
        sources.append(RawSource(spec.dialect, "", spec.location))
    return sources


def download(
    specs: list[SourceSpec],
    cache_dir: Path | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: int = DEFAULT_TIMEOUT,
    retries: int = DEFAULT_RETRIES,
    diagnostics: Diagnostics | None = None,
) -> list[RawSource]:
    """Blocking wrapper: fetch every source and return RawSource in order."""
    if not specs:
        return []
    results = asyncio.run(fetch_all(specs, cache_dir, concurrency, timeout, retries))

    success = sum(1 for r in results if r.success)
    changed = sum(1 for r in results if r.changed)
    logger.info("✅ Fetched: %d/%d (changed: %d, cached: %d)", success, len(results), changed, success - changed)
    return to_raw_sources(results, diagnostics)
