from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from gradle_lens.cache import CacheDB, repository_scope_key
from gradle_lens.index_client import ModuleLookupResult, RepositorySettings
from gradle_lens.models import Key
from gradle_lens.resolver import resolve_latest_versions
from gradle_lens.versions import CandidateFilter

_SETTINGS = RepositorySettings(urls=("https://repo.test/m2",))


def _seed(db: CacheDB, key: Key, latest: str) -> None:
    db.set(
        scope=repository_scope_key(_SETTINGS.urls),
        key=key,
        revision="milestone",
        latest=latest,
        repository_url=_SETTINGS.urls[0],
        not_found=False,
        error=None,
    )


@pytest.mark.asyncio
async def test_resolve_latest_uses_cache_when_available(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    refresh=False 且缓存命中时直接使用缓存；新查询结果写回缓存并触发进度回调。
    """
    db = CacheDB(tmp_path / "cache.sqlite3")
    try:
        _seed(db, Key("g", "cached"), "1.0")
        called: list[Key] = []

        async def fake_fetch(key: Key, *, settings: RepositorySettings, client, revision, accept=None) -> ModuleLookupResult:
            """
            替换真实网络查询，返回固定版本并记录调用。
            """
            called.append(key)
            return ModuleLookupResult(key=key, repository_url=settings.urls[0], latest="2.0", not_found=False, error=None)

        monkeypatch.setattr("gradle_lens.resolver.fetch_latest_from_repositories", fake_fetch)
        progress = {"total": None, "done": 0}

        def on_start(total: int) -> None:
            progress["total"] = total

        def on_complete() -> None:
            progress["done"] += 1

        results, stats = await resolve_latest_versions(
            [Key("g", "cached"), Key("g", "fresh")],
            settings=_SETTINGS,
            client=None,
            revision="milestone",
            max_concurrency=4,
            cache=db,
            cache_ttl_s=3600,
            refresh=False,
            on_fetch_start=on_start,
            on_fetch_complete=on_complete,
        )

        assert (stats.total, stats.cache_hits, stats.fetched) == (2, 1, 1)
        assert called == [Key("g", "fresh")]
        assert results[Key("g", "cached")].latest == "1.0"
        assert results[Key("g", "fresh")].latest == "2.0"
        assert progress == {"total": 1, "done": 1}
        cached = db.get(scope=repository_scope_key(_SETTINGS.urls), key=Key("g", "fresh"), revision="milestone", ttl_s=0)
        assert cached is not None and cached.latest == "2.0"
    finally:
        db.close()


@pytest.mark.asyncio
async def test_resolve_latest_refresh_bypasses_cache_and_skips_caching_errors(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """
    refresh=True 时忽略缓存重新查询；网络错误结果不写入缓存。
    """
    db = CacheDB(tmp_path / "cache.sqlite3")
    try:
        _seed(db, Key("g", "cached"), "1.0")

        async def fake_fetch(key: Key, *, settings: RepositorySettings, client, revision, accept=None) -> ModuleLookupResult:
            """
            cached 返回新版本，broken 返回网络错误。
            """
            if key.artifact == "broken":
                return ModuleLookupResult(key=key, repository_url=None, latest=None, not_found=False, error="timeout")
            return ModuleLookupResult(key=key, repository_url=None, latest="9.9", not_found=False, error=None)

        monkeypatch.setattr("gradle_lens.resolver.fetch_latest_from_repositories", fake_fetch)
        results, stats = await resolve_latest_versions(
            [Key("g", "cached"), Key("g", "broken")],
            settings=_SETTINGS,
            client=None,
            revision="milestone",
            max_concurrency=0,
            cache=db,
            cache_ttl_s=3600,
            refresh=True,
        )
        assert stats.cache_hits == 0 and stats.fetched == 2
        assert results[Key("g", "cached")].latest == "9.9"
        assert results[Key("g", "broken")].error == "timeout"
        scope = repository_scope_key(_SETTINGS.urls)
        assert db.get(scope=scope, key=Key("g", "broken"), revision="milestone", ttl_s=0) is None
    finally:
        db.close()


@pytest.mark.asyncio
async def test_resolve_latest_offline_reads_cache_only(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    离线模式只读缓存，未命中的模块记为失败且不发起查询。
    """
    db = CacheDB(tmp_path / "cache.sqlite3")
    try:
        _seed(db, Key("g", "cached"), "1.0")

        async def boom(*_a, **_k):
            raise AssertionError("offline mode must not fetch")

        monkeypatch.setattr("gradle_lens.resolver.fetch_latest_from_repositories", boom)
        results, stats = await resolve_latest_versions(
            [Key("g", "cached"), Key("g", "missing")],
            settings=_SETTINGS,
            client=None,
            revision="milestone",
            max_concurrency=4,
            cache=db,
            cache_ttl_s=3600,
            refresh=True,
            offline=True,
        )
        assert results[Key("g", "cached")].latest == "1.0"
        assert results[Key("g", "missing")].error == "offline: no cached version"
        assert (stats.cache_hits, stats.fetched) == (1, 0)
    finally:
        db.close()


@pytest.mark.asyncio
async def test_resolve_latest_isolates_failing_module() -> None:
    """
    某个模块的请求抛出协议错误时只记为该模块失败，其余模块照常解析。
    """
    metadata = "<metadata><versioning><versions><version>1.0</version><version>1.2</version></versions></versioning></metadata>"

    def handler(request: httpx.Request) -> httpx.Response:
        if "/g/bad/" in request.url.path:
            raise httpx.RemoteProtocolError("peer closed connection", request=request)
        return httpx.Response(200, text=metadata)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results, stats = await resolve_latest_versions(
            [Key("g", "good"), Key("g", "bad")],
            settings=_SETTINGS,
            client=client,
            revision="release",
            max_concurrency=4,
            cache=None,
            cache_ttl_s=0,
            refresh=False,
        )

    assert stats.fetched == 2
    assert results[Key("g", "good")].latest == "1.2"
    assert results[Key("g", "bad")].latest is None
    assert results[Key("g", "bad")].error == "peer closed connection"


@pytest.mark.asyncio
async def test_resolve_latest_applies_candidate_filter_per_module(tmp_path: Path) -> None:
    """
    reject_unstable 只约束当前版本稳定的模块；拒绝正则对所有模块生效；带规则的结果单独缓存。
    """
    metadata = (
        "<metadata><versioning><versions>"
        "<version>1.0</version><version>1.1</version><version>1.2-jre7</version><version>2.0-rc1</version>"
        "</versions></versioning></metadata>"
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=metadata)

    candidate_filter = CandidateFilter(reject_patterns=("jre7$",), reject_unstable=True)
    db = CacheDB(tmp_path / "cache.sqlite3")
    try:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            results, _stats = await resolve_latest_versions(
                [Key("g", "stable"), Key("g", "beta")],
                settings=_SETTINGS,
                client=client,
                revision="milestone",
                max_concurrency=4,
                cache=db,
                cache_ttl_s=3600,
                refresh=False,
                candidate_filter=candidate_filter,
                unstable_keys={Key("g", "beta")},
            )

        assert results[Key("g", "stable")].latest == "1.1"
        assert results[Key("g", "beta")].latest == "2.0-rc1"
        plain_scope = repository_scope_key(_SETTINGS.urls)
        assert db.get(scope=plain_scope, key=Key("g", "stable"), revision="milestone", ttl_s=0) is None
    finally:
        db.close()
