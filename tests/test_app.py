from __future__ import annotations

from pathlib import Path

import pytest

from gradle_lens.app import check_catalog, collect_entries, is_excluded
from gradle_lens.catalog import CatalogError, EntryKind
from gradle_lens.config import AppConfig
from gradle_lens.gradle_updates import Available, Unavailable
from gradle_lens.index_client import ModuleLookupResult, RepositorySettings
from gradle_lens.models import Coordinate, Key, ReleaseChannel
from gradle_lens.project_urls import ProjectUrlResolver
from gradle_lens.resolver import ResolveStats

_CATALOG = """
[libraries]
up = "g:up:1.0"
old = "g:old:1.0"
old-again = "g:old:1.1"
ahead = "g:ahead:9.0"
bare = "g:bare"
dyn = "g:dyn:1.+"
missing = "g:missing:1.0"
excluded = "org.excluded:lib:1.0"
ref = { module = "g:ref", version.ref = "nope" }
"""


@pytest.mark.asyncio
async def test_check_catalog_builds_result_tree(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    check_catalog 应组合解析/过滤/查询/分类/汇总流程，生成完整结果树，并正确处理 exclude。
    """
    catalog = tmp_path / "gradle" / "libs.versions.toml"
    catalog.parent.mkdir()
    catalog.write_text(_CATALOG, encoding="utf-8")

    expected_query = [Key("g", "ahead"), Key("g", "bare"), Key("g", "missing"), Key("g", "old"), Key("g", "up")]
    latest = {"ahead": "3.0", "bare": "1.0", "old": "2.0", "up": "1.0"}

    async def fake_resolve_latest_versions(keys: list[Key], *, settings: RepositorySettings, **kwargs):
        """
        替换真实 resolver：missing 返回 404，其余返回固定版本。
        """
        assert keys == expected_query
        assert kwargs["cache"] is None
        assert kwargs["revision"] == "milestone"
        assert kwargs["candidate_filter"] == cfg.candidate_filter
        assert kwargs["unstable_keys"] == {Key("g", "bare")}
        results = {}
        for key in keys:
            version = latest.get(key.artifact)
            results[key] = ModuleLookupResult(
                key=key,
                repository_url=settings.urls[0] if version else None,
                latest=version,
                not_found=version is None,
                error=None,
            )
        return results, ResolveStats(total=len(keys), cache_hits=0, fetched=len(keys))

    async def fake_get(self, coordinate: Coordinate) -> str | None:
        """
        项目主页由 artifact 名称拼出。
        """
        return f"https://{coordinate.artifact}.example"

    async def fake_fetch_release_statuses(base_url: str, *, client):
        """
        current 通道有新版本，其余通道没有。
        """
        return {
            ReleaseChannel.CURRENT: Available("8.7"),
            ReleaseChannel.RELEASE_CANDIDATE: Unavailable(),
            ReleaseChannel.NIGHTLY: Unavailable(),
        }

    monkeypatch.setattr("gradle_lens.app.resolve_latest_versions", fake_resolve_latest_versions)
    monkeypatch.setattr(ProjectUrlResolver, "get", fake_get)
    monkeypatch.setattr("gradle_lens.app.fetch_release_statuses", fake_fetch_release_statuses)

    cfg = AppConfig(
        repositories=RepositorySettings(urls=("https://repo.test/m2",)),
        use_cache=False,
        exclude=("org.excluded",),
    )
    outcome = await check_catalog(catalog, config=cfg, gradle_version="8.5")
    result = outcome.result

    assert result.count == 8
    assert [(d.name, d.version) for d in result.current.dependencies] == [("up", "1.0")]
    assert [(d.name, d.version, d.available.milestone) for d in result.outdated.dependencies] == [
        ("old", "1.0", "2.0"),
        ("old", "1.1", "2.0"),
    ]
    assert result.outdated.dependencies[0].project_url == "https://old.example"
    assert [(d.name, d.latest) for d in result.exceeded.dependencies] == [("ahead", "3.0")]
    assert [d.name for d in result.undeclared.dependencies] == ["bare"]
    reasons = {d.name: d.reason for d in result.unresolved.dependencies}
    assert reasons == {
        "dyn": "dynamic version 1.+ is not supported",
        "missing": "not found in any repository",
        "ref": "unknown version reference: nope",
    }
    assert all(d.group != "org.excluded" for d in result.current.dependencies)

    assert result.gradle.enabled
    assert result.gradle.running.version == "8.5"
    assert result.gradle.current.is_update_available
    assert outcome.context.gradle_release_channel == ReleaseChannel.RELEASE_CANDIDATE
    assert outcome.stats.fetched == len(expected_query)


@pytest.mark.asyncio
async def test_check_catalog_without_gradle_check_or_network(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    关闭 Gradle 检查时不查询版本 API；结果中的 gradle.enabled 为 False。
    """

    async def fake_resolve_latest_versions(keys: list[Key], **kwargs):
        return {}, ResolveStats(total=len(keys), cache_hits=0, fetched=0)

    async def boom(*_a, **_k):
        raise AssertionError("gradle versions API must not be called")

    monkeypatch.setattr("gradle_lens.app.resolve_latest_versions", fake_resolve_latest_versions)
    monkeypatch.setattr("gradle_lens.app.fetch_release_statuses", boom)

    cfg = AppConfig(use_cache=False, check_for_gradle_update=False)
    outcome = await check_catalog(
        tmp_path / "missing.toml",
        config=cfg,
        extra_dependencies=[Coordinate("g", "cli", "1.0")],
    )
    assert not outcome.result.gradle.enabled
    assert [d.reason for d in outcome.result.unresolved.dependencies] == ["no lookup performed"]
    assert outcome.entries[0].kind == EntryKind.CLI


def test_collect_entries_requires_catalog_or_dependencies(tmp_path: Path) -> None:
    """
    版本目录不存在且没有命令行依赖时抛 CatalogError。
    """
    with pytest.raises(CatalogError):
        collect_entries(tmp_path / "libs.versions.toml")
    entries = collect_entries(tmp_path / "libs.versions.toml", extra_dependencies=[Coordinate("g", "a", "1")])
    assert [e.alias for e in entries] == ["g:a:1"]


def test_is_excluded_matches_module_or_group() -> None:
    """
    exclude 支持 group:artifact 与整个 group 两种写法。
    """
    assert is_excluded(Key("g", "a"), ["g:a"])
    assert is_excluded(Key("g", "a"), ["g"])
    assert not is_excluded(Key("g", "a"), ["g:b", "h"])
