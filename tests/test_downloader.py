"""Tests for the async downloader, against a local aiohttp server."""

from __future__ import annotations

import asyncio
from pathlib import Path

from aiohttp import web
from aiohttp import test_utils

from dnsrules.config import SourceSpec
from dnsrules.downloader import STATE_FILE, fetch_all, to_raw_sources, url_to_filename
from dnsrules.errors import Diagnostics, SourceUnavailable
from dnsrules.models import Dialect

ETAG = '"v1"'


def make_app(fail: dict[str, bool]) -> web.Application:
    async def rules(request: web.Request) -> web.Response:
        if fail.get("rules"):
            return web.Response(status=503)
        if request.headers.get("If-None-Match") == ETAG:
            return web.Response(status=304)
        return web.Response(text="||ads.example.com^\n", headers={"ETag": ETAG})

    async def surge(request: web.Request) -> web.Response:
        return web.Response(text="DOMAIN-SUFFIX,track.example.net\n")

    async def broken(request: web.Request) -> web.Response:
        return web.Response(status=404)

    app = web.Application()
    app.router.add_get("/rules.txt", rules)
    app.router.add_get("/AD.list", surge)
    app.router.add_get("/broken.txt", broken)
    return app


def fetch(specs, cache_dir=None):
    return asyncio.run(fetch_all(specs, cache_dir, concurrency=2, timeout=5, retries=1))


async def _with_server(fail, body):
    async with test_utils.TestServer(make_app(fail)) as server:
        return await body(server)


def test_fetch_all_keeps_order_and_isolates_failures(tmp_path: Path) -> None:
    async def body(server: test_utils.TestServer):
        specs = [
            SourceSpec(str(server.make_url("/broken.txt")), Dialect.ADBLOCK),
            SourceSpec(str(server.make_url("/rules.txt")), Dialect.ADBLOCK),
            SourceSpec(str(server.make_url("/AD.list")), Dialect.ROUTING),
        ]
        return specs, await fetch_all(specs, None, concurrency=2, timeout=5, retries=1)

    specs, results = asyncio.run(_with_server({}, body))

    assert [r.spec for r in results] == specs
    assert [r.success for r in results] == [False, True, True]
    assert results[0].error == "HTTP 404"

    diagnostics = Diagnostics()
    sources = to_raw_sources(results, diagnostics)
    assert [s.text for s in sources] == ["", "||ads.example.com^\n", "DOMAIN-SUFFIX,track.example.net\n"]
    assert sources[2].dialect is Dialect.ROUTING
    (warning,) = diagnostics.of_type(SourceUnavailable)
    assert warning.reason == "HTTP 404"


def test_cache_revalidation_and_fallback(tmp_path: Path) -> None:
    cache = tmp_path / "cache"
    fail: dict[str, bool] = {}

    async def body(server: test_utils.TestServer):
        spec = SourceSpec(str(server.make_url("/rules.txt")))
        first = await fetch_all([spec], cache, concurrency=1, timeout=5, retries=1)
        second = await fetch_all([spec], cache, concurrency=1, timeout=5, retries=1)
        fail["rules"] = True
        third = await fetch_all([spec], cache, concurrency=1, timeout=5, retries=1)
        return spec, first[0], second[0], third[0]

    spec, first, second, third = asyncio.run(_with_server(fail, body))

    assert first.changed and first.text == "||ads.example.com^\n"
    assert (cache / url_to_filename(spec.location)).is_file()
    assert (cache / STATE_FILE).is_file()

    # 304 Not Modified served from cache
    assert second.success and not second.changed
    assert second.text == first.text

    # Server error falls back to the last good copy
    assert third.success and not third.changed
    assert third.text == first.text
    assert "HTTP 503" in (third.error or "")


def test_local_paths_read_from_disk(tmp_path: Path) -> None:
    path = tmp_path / "local.txt"
    path.write_bytes(b"\xef\xbb\xbf||local.example.com^\n")
    (result,) = fetch([SourceSpec(str(path))])
    assert result.success
    assert "||local.example.com^" in (result.text or "")

    (missing,) = fetch([SourceSpec(str(tmp_path / "missing.txt"))])
    assert not missing.success


def test_url_to_filename_is_stable() -> None:
    name = url_to_filename("https://big.oisd.nl")
    assert name == url_to_filename("https://big.oisd.nl")
    assert name.startswith("big_oisd_nl_")
    assert name != url_to_filename("https://big.oisd.nl/other")
