from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable

import httpx
import structlog
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from gradle_lens.aggregator import aggregate
from gradle_lens.cache import CacheDB, default_cache_path
from gradle_lens.catalog import CatalogEntry, CatalogError, EntryKind, extract_catalog_dependencies, load_catalog
from gradle_lens.classifier import classify, merge_status, split_statuses
from gradle_lens.config import AppConfig
from gradle_lens.formatters import ReportContext
from gradle_lens.gradle_updates import (
    build_gradle_update_results,
    detect_running_gradle_version,
    disabled_gradle_update_results,
    fetch_release_statuses,
)
from gradle_lens.index_client import ModuleLookupResult, create_async_client
from gradle_lens.models import Coordinate, DependencyStatus, Key, ResolvedStatus, UnresolvedStatus
from gradle_lens.project_urls import ProjectUrlResolver
from gradle_lens.report import GradleUpdateResults, Result
from gradle_lens.resolver import ResolveStats, resolve_latest_versions
from gradle_lens.versions import is_dynamic_version, is_stable

log = structlog.get_logger("gradle_lens.app")


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    """
    一次检查的完整产物：结果树、渲染上下文、查询统计与原始目录条目。
    """

    result: Result
    context: ReportContext
    stats: ResolveStats
    entries: tuple[CatalogEntry, ...]


def is_excluded(key: Key, exclude: Iterable[str]) -> bool:
    """
    exclude 项可以是 "group:artifact"，也可以是整个 group。
    """
    for item in exclude:
        item = item.strip()
        if item == str(key) or item == key.group:
            return True
    return False


def collect_entries(
    catalog_path: Path,
    *,
    extra_dependencies: Iterable[Coordinate] = (),
) -> list[CatalogEntry]:
    """
    读取版本目录并追加命令行给出的依赖；目录不存在且没有额外依赖时抛 CatalogError。
    """
    extras = [CatalogEntry(EntryKind.CLI, str(c), c, None, None) for c in extra_dependencies]
    if not catalog_path.is_file():
        if extras:
            return extras
        raise CatalogError(f"version catalog not found: {catalog_path}")
    return extract_catalog_dependencies(load_catalog(catalog_path)) + extras


def _lookup_failure_reason(lookup: ModuleLookupResult | None) -> str:
    if lookup is None:
        return "no lookup performed"
    if lookup.error:
        return lookup.error
    if lookup.not_found:
        return "not found in any repository"
    return "no latest version resolved"


async def _gradle_results(config: AppConfig, *, running_version: str | None) -> GradleUpdateResults:
    """
    查询 Gradle 版本 API；使用不带仓库凭据的独立 client。
    """
    if not config.check_for_gradle_update or config.offline:
        return disabled_gradle_update_results(running_version or "")
    if not running_version:
        log.warning("gradle.running_version_unknown")
        return disabled_gradle_update_results("")

    async with httpx.AsyncClient(timeout=httpx.Timeout(config.repositories.timeout_s), follow_redirects=True) as client:
        statuses = await fetch_release_statuses(config.gradle_versions_api_base_url, client=client)
    return build_gradle_update_results(
        enabled=True,
        running_version=running_version,
        statuses=statuses,
        channel=config.gradle_release_channel,
    )


async def check_catalog(
    catalog_path: Path,
    *,
    config: AppConfig,
    extra_dependencies: Iterable[Coordinate] = (),
    project_dir: Path | None = None,
    gradle_version: str | None = None,
    on_fetch_start: Callable[[int], Any] | None = None,
    on_fetch_complete: Callable[[], Any] | None = None,
) -> CheckOutcome:
    """
    检查版本目录中的依赖并生成报告结果树。
    """
    entries = collect_entries(catalog_path, extra_dependencies=extra_dependencies)

    pending: list[Coordinate] = []
    statuses: list[DependencyStatus] = []
    for entry in entries:
        if entry.coordinate is None:
            log.warning("catalog.entry_invalid", alias=entry.alias, error=entry.error)
            continue
        coordinate = entry.coordinate
        if is_excluded(coordinate.key, config.exclude):
            continue
        if entry.error:
            merge_status(statuses, UnresolvedStatus(coordinate, entry.error))
            continue
        if is_dynamic_version(coordinate.version):
            merge_status(statuses, UnresolvedStatus(coordinate, f"dynamic version {coordinate.version} is not supported"))
            continue
        pending.append(coordinate)

    unique_keys = sorted({c.key for c in pending})
    unstable_keys = {c.key for c in pending if not is_stable(c.version)}

    cache_db: CacheDB | None = None
    if config.use_cache:
        cache_db = CacheDB(default_cache_path())

    try:
        async with create_async_client(config.repositories) as client:
            lookups, stats = await resolve_latest_versions(
                unique_keys,
                settings=config.repositories,
                client=client,
                revision=config.revision,
                max_concurrency=config.max_concurrency,
                cache=cache_db,
                cache_ttl_s=config.cache_ttl_s,
                refresh=config.refresh,
                offline=config.offline,
                candidate_filter=config.candidate_filter,
                unstable_keys=unstable_keys,
                on_fetch_start=on_fetch_start,
                on_fetch_complete=on_fetch_complete,
            )

            latest_coordinates = {
                c.with_version(lookups[c.key].latest)
                for c in pending
                if c.key in lookups and lookups[c.key].latest
            }
            url_resolver = ProjectUrlResolver(settings=config.repositories, client=client, offline=config.offline)
            ordered = sorted(latest_coordinates)
            urls = await asyncio.gather(*(url_resolver.get(c) for c in ordered))
            project_urls = dict(zip(ordered, urls))
    finally:
        if cache_db is not None:
            cache_db.close()

    for coordinate in pending:
        lookup = lookups.get(coordinate.key)
        if lookup is None or not lookup.latest:
            merge_status(statuses, UnresolvedStatus(coordinate, _lookup_failure_reason(lookup)))
            continue
        latest = coordinate.with_version(lookup.latest)
        merge_status(statuses, ResolvedStatus(coordinate, lookup.latest, project_urls.get(latest)))

    running = gradle_version or detect_running_gradle_version(project_dir or catalog_path.parent.parent)
    gradle = await _gradle_results(config, running_version=running)

    split = split_statuses(statuses)
    classification = classify(split.current, split.latest, split.unresolved_reasons.keys())
    result = aggregate(
        classification,
        project_urls=split.project_urls,
        gradle=gradle,
        revision=config.revision,
        unresolved_reasons=split.unresolved_reasons,
    )
    log.info(
        "app.check_completed",
        dependencies=result.count,
        cache_hits=stats.cache_hits,
        fetched=stats.fetched,
    )
    context = ReportContext(revision=config.revision, gradle_release_channel=config.gradle_release_channel)
    return CheckOutcome(result=result, context=context, stats=stats, entries=tuple(entries))


def run_check(catalog_path: Path, *, config: AppConfig, **kwargs: Any) -> CheckOutcome:
    """
    同步入口：运行依赖检查（内部使用 asyncio）。
    """
    console = Console(stderr=True)
    state = {"progress": None, "task_id": None}

    def on_start(total: int) -> None:
        if total > 0:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                "({task.completed}/{task.total})",
                console=console,
                transient=True,
            )
            progress.start()
            task_id = progress.add_task("查询 Maven 仓库...", total=total)
            state["progress"] = progress
            state["task_id"] = task_id

    def on_complete() -> None:
        progress = state["progress"]
        task_id = state["task_id"]
        if progress and task_id is not None:
            progress.advance(task_id)

    try:
        return asyncio.run(
            check_catalog(
                catalog_path,
                config=config,
                on_fetch_start=on_start,
                on_fetch_complete=on_complete,
                **kwargs,
            )
        )
    finally:
        if state["progress"]:
            state["progress"].stop()
