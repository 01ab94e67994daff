from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import httpx
import structlog

from gradle_lens.cache import CacheDB, CacheEntry, repository_scope_key
from gradle_lens.index_client import ModuleLookupResult, RepositorySettings, fetch_latest_from_repositories
from gradle_lens.models import Key, Revision
from gradle_lens.versions import CandidateFilter

log = structlog.get_logger("gradle_lens.resolver")


@dataclass(frozen=True, slots=True)
class ResolveStats:
    """
    版本查询统计信息。
    """

    total: int
    cache_hits: int
    fetched: int


def _result_from_cache(key: Key, entry: CacheEntry) -> ModuleLookupResult:
    """
    将缓存条目转换为查询结果结构。
    """
    return ModuleLookupResult(
        key=key,
        repository_url=entry.repository_url,
        latest=entry.latest,
        not_found=entry.not_found,
        error=entry.error,
    )


async def resolve_latest_versions(
    keys: list[Key],
    *,
    settings: RepositorySettings,
    client: httpx.AsyncClient,
    revision: Revision,
    max_concurrency: int,
    cache: CacheDB | None,
    cache_ttl_s: int,
    refresh: bool,
    offline: bool = False,
    candidate_filter: CandidateFilter | None = None,
    unstable_keys: Iterable[Key] = (),
    on_fetch_start: Callable[[int], Any] | None = None,
    on_fetch_complete: Callable[[], Any] | None = None,
) -> tuple[dict[Key, ModuleLookupResult], ResolveStats]:
    """
    并行解析多个模块的最新版本，优先使用用户目录全局缓存。

    offline 时只读缓存，未命中的模块直接记为查询失败。
    candidate_filter 在挑选最新版本前剔除候选；unstable_keys 中的模块当前版本不稳定，
    不受 reject_unstable 约束。
    """
    base_scope = repository_scope_key(settings.urls)
    unstable = frozenset(unstable_keys)

    def scope_for(key: Key) -> str:
        if candidate_filter is None or not candidate_filter.active:
            return base_scope
        return f"{base_scope}#{candidate_filter.cache_tag(current_stable=key not in unstable)}"

    def accept_for(key: Key) -> Callable[[str], bool] | None:
        if candidate_filter is None or not candidate_filter.active:
            return None
        current_stable = key not in unstable
        return lambda v: not candidate_filter.rejects(v, current_stable=current_stable)

    results: dict[Key, ModuleLookupResult] = {}

    cache_hits = 0
    to_fetch: list[Key] = []
    for key in keys:
        if cache is None or (refresh and not offline):
            to_fetch.append(key)
            continue

        entry = cache.get(scope=scope_for(key), key=key, revision=revision, ttl_s=cache_ttl_s)
        if entry is None:
            to_fetch.append(key)
            continue

        cache_hits += 1
        results[key] = _result_from_cache(key, entry)

    if offline:
        for key in to_fetch:
            results[key] = ModuleLookupResult(
                key=key, repository_url=None, latest=None, not_found=False, error="offline: no cached version"
            )
        return results, ResolveStats(total=len(keys), cache_hits=cache_hits, fetched=0)

    if on_fetch_start is not None:
        on_fetch_start(len(to_fetch))

    sem = asyncio.Semaphore(max(1, max_concurrency))

    async def worker(key: Key) -> None:
        async with sem:
            res = await fetch_latest_from_repositories(
                key, settings=settings, client=client, revision=revision, accept=accept_for(key)
            )
        results[key] = res
        if res.error:
            log.info("resolver.lookup_failed", module=str(key), error=res.error)
        # 网络错误不写缓存，下次重新查询。
        if cache is not None and (res.latest is not None or res.not_found):
            cache.set(
                scope=scope_for(key),
                key=key,
                revision=revision,
                latest=res.latest,
                repository_url=res.repository_url,
                not_found=res.not_found,
                error=res.error,
            )
        if on_fetch_complete is not None:
            on_fetch_complete()

    await asyncio.gather(*(worker(k) for k in to_fetch))

    stats = ResolveStats(total=len(keys), cache_hits=cache_hits, fetched=len(to_fetch))
    return results, stats
