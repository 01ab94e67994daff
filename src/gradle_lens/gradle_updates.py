from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import httpx
import structlog

from gradle_lens.models import ReleaseChannel
from gradle_lens.report import GradleUpdateResult, GradleUpdateResults
from gradle_lens.versions import compare_versions

log = structlog.get_logger("gradle_lens.gradle")

DEFAULT_VERSIONS_API = "https://services.gradle.org/versions/"

_DISTRIBUTION_RE = re.compile(r"gradle-(?P<version>[^/]+?)-(?:bin|all)\.zip")


@dataclass(frozen=True, slots=True)
class Available:
    """
    通道上存在可用版本。
    """

    version: str


@dataclass(frozen=True, slots=True)
class Unavailable:
    """
    通道上没有版本（例如 RC 已转正后的 release-candidate 通道）。
    """


@dataclass(frozen=True, slots=True)
class Failure:
    """
    检查该通道时失败。
    """

    reason: str


ReleaseStatus = Union[Available, Unavailable, Failure]


def update_result_from_status(
    *,
    enabled: bool,
    running: Available | None,
    release: ReleaseStatus | None,
) -> GradleUpdateResult:
    """
    由通道检查状态推导 version/is_update_available/is_failure/reason。
    """
    if not enabled:
        return GradleUpdateResult(version="", is_update_available=False, is_failure=False, reason="update check disabled")
    if isinstance(release, Available):
        newer = running is not None and compare_versions(release.version, running.version) > 0
        return GradleUpdateResult(version=release.version, is_update_available=newer, is_failure=False, reason="")
    if isinstance(release, Unavailable):
        return GradleUpdateResult(
            version="",
            is_update_available=False,
            is_failure=False,
            reason="update check succeeded: no release available",
        )
    if isinstance(release, Failure):
        return GradleUpdateResult(version="", is_update_available=False, is_failure=True, reason=release.reason)
    return GradleUpdateResult(version="", is_update_available=False, is_failure=True, reason="no release status fetched")


def build_gradle_update_results(
    *,
    enabled: bool,
    running_version: str,
    statuses: dict[ReleaseChannel, ReleaseStatus],
    channel: ReleaseChannel,
) -> GradleUpdateResults:
    """
    组装所有通道的检查结果；RC 通道在 release-candidate/nightly 下启用，nightly 只在 nightly 下启用。
    """
    running = Available(running_version)
    rc_enabled = enabled and channel in {ReleaseChannel.RELEASE_CANDIDATE, ReleaseChannel.NIGHTLY}
    nightly_enabled = enabled and channel == ReleaseChannel.NIGHTLY
    return GradleUpdateResults(
        enabled=enabled,
        running=update_result_from_status(enabled=enabled, running=running, release=running),
        current=update_result_from_status(
            enabled=enabled, running=running, release=statuses.get(ReleaseChannel.CURRENT)
        ),
        release_candidate=update_result_from_status(
            enabled=rc_enabled, running=running, release=statuses.get(ReleaseChannel.RELEASE_CANDIDATE)
        ),
        nightly=update_result_from_status(
            enabled=nightly_enabled, running=running, release=statuses.get(ReleaseChannel.NIGHTLY)
        ),
    )


def disabled_gradle_update_results(running_version: str = "") -> GradleUpdateResults:
    """
    未开启 Gradle 更新检查时使用的结果。
    """
    return build_gradle_update_results(
        enabled=False,
        running_version=running_version,
        statuses={},
        channel=ReleaseChannel.CURRENT,
    )


async def _fetch_channel(client: httpx.AsyncClient, base_url: str, channel: ReleaseChannel) -> ReleaseStatus:
    """
    查询单个通道的最新版本。
    """
    url = f"{base_url}{channel.value}"
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        log.info("gradle.channel_check_failed", channel=channel.value, error=str(exc))
        return Failure(str(exc))

    version = data.get("version") if isinstance(data, dict) else None
    if version:
        return Available(str(version))
    return Unavailable()


async def fetch_release_statuses(
    base_url: str,
    *,
    client: httpx.AsyncClient,
) -> dict[ReleaseChannel, ReleaseStatus]:
    """
    并行查询所有 Gradle 发布通道。
    """
    channels = list(ReleaseChannel)
    results = await asyncio.gather(*(_fetch_channel(client, base_url, ch) for ch in channels))
    return dict(zip(channels, results))


def detect_running_gradle_version(project_dir: Path) -> str | None:
    """
    从 gradle/wrapper/gradle-wrapper.properties 的 distributionUrl 中读取 Gradle 版本。
    """
    props = project_dir / "gradle" / "wrapper" / "gradle-wrapper.properties"
    if not props.is_file():
        return None
    for line in props.read_text(encoding="utf-8", errors="replace").splitlines():
        key, _, value = line.partition("=")
        if key.strip() != "distributionUrl":
            continue
        match = _DISTRIBUTION_RE.search(value.replace("\\:", ":"))
        if match:
            return match.group("version")
    return None
