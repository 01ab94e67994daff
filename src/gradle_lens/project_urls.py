"""Project homepage lookup through POM files, memoized per coordinate."""

from __future__ import annotations

import asyncio

import httpx
import structlog

from gradle_lens.index_client import PomInfo, RepositorySettings, fetch_pom
from gradle_lens.models import Coordinate, Key

log = structlog.get_logger("gradle_lens.project_urls")

_IGNORED_PARENTS = frozenset({Key("org.sonatype.oss", "oss-parent")})


class ProjectUrlResolver:
    """
    解析依赖的项目主页：读取 POM 的 <url>/<scm><url>，找不到时沿父 POM 链向上查找。

    每个坐标的 POM 最多请求一次，并发调用共享同一个请求任务；父链由调用方逐级遍历，
    任务之间不互相等待。
    """

    def __init__(
        self,
        *,
        settings: RepositorySettings,
        client: httpx.AsyncClient,
        offline: bool = False,
    ) -> None:
        self._settings = settings
        self._client = client
        self._offline = offline
        self._poms: dict[Coordinate, asyncio.Task[PomInfo | None]] = {}
        self.resolved_count = 0

    async def get(self, coordinate: Coordinate) -> str | None:
        """
        返回坐标对应的项目主页；离线或解析失败时返回 None。
        """
        if self._offline:
            return None

        visited: set[Coordinate] = set()
        current = coordinate
        while current not in visited:
            visited.add(current)
            pom = await self._pom(current)
            if pom is None:
                log.debug("project_urls.pom_missing", coordinate=str(current))
                return None
            if pom.url:
                return pom.url.strip()
            if pom.parent is None or pom.parent.key in _IGNORED_PARENTS:
                break
            current = pom.parent
        else:
            log.debug("project_urls.parent_cycle", coordinate=str(coordinate), at=str(current))

        log.debug("project_urls.not_found", coordinate=str(coordinate))
        return None

    async def _pom(self, coordinate: Coordinate) -> PomInfo | None:
        task = self._poms.get(coordinate)
        if task is None:
            task = asyncio.ensure_future(self._fetch(coordinate))
            self._poms[coordinate] = task
        return await asyncio.shield(task)

    async def _fetch(self, coordinate: Coordinate) -> PomInfo | None:
        self.resolved_count += 1
        try:
            return await fetch_pom(coordinate, settings=self._settings, client=self._client)
        except httpx.HTTPError:
            log.debug("project_urls.fetch_failed", coordinate=str(coordinate), exc_info=True)
            return None
