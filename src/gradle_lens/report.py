from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from gradle_lens.models import Revision


@dataclass(frozen=True, slots=True)
class VersionAvailable:
    """
    可升级到的版本，按修订级别分槽存放。
    """

    release: str | None = None
    milestone: str | None = None
    integration: str | None = None

    @classmethod
    def for_revision(cls, revision: Revision, version: str | None) -> VersionAvailable:
        """
        把版本放入修订级别对应的槽位（未知级别按 release 处理）。
        """
        if revision == "milestone":
            return cls(milestone=version)
        if revision == "integration":
            return cls(integration=version)
        return cls(release=version)

    def get(self, revision: str) -> str | None:
        if revision == "release":
            return self.release
        if revision == "milestone":
            return self.milestone
        if revision == "integration":
            return self.integration
        return ""


@dataclass(frozen=True, slots=True)
class Dependency:
    """
    报告中的一条依赖（up-to-date 与 undeclared 分组使用）。
    """

    group: str | None = None
    name: str | None = None
    version: str | None = None
    project_url: str | None = None
    user_reason: str | None = None


@dataclass(frozen=True, slots=True)
class DependencyOutdated:
    """
    存在更新版本的依赖。
    """

    group: str | None
    name: str | None
    version: str | None
    project_url: str | None
    user_reason: str | None
    available: VersionAvailable


@dataclass(frozen=True, slots=True)
class DependencyLatest:
    """
    当前版本高于找到的最新版本的依赖。
    """

    group: str | None
    name: str | None
    version: str | None
    project_url: str | None
    user_reason: str | None
    latest: str


@dataclass(frozen=True, slots=True)
class DependencyUnresolved:
    """
    无法确定最新版本的依赖。
    """

    group: str | None
    name: str | None
    version: str | None
    project_url: str | None
    user_reason: str | None
    reason: str


T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class DependenciesGroup(Generic[T]):
    """
    一组依赖及其数量（渲染时无需再计算）。
    """

    count: int
    dependencies: tuple[T, ...]

    @classmethod
    def of(cls, dependencies: list[T] | tuple[T, ...]) -> DependenciesGroup[T]:
        items = tuple(dependencies)
        return cls(count=len(items), dependencies=items)


@dataclass(frozen=True, slots=True)
class GradleUpdateResult:
    """
    某个 Gradle 发布通道（或当前运行版本）的检查结果。
    """

    version: str
    is_update_available: bool
    is_failure: bool
    reason: str


@dataclass(frozen=True, slots=True)
class GradleUpdateResults:
    """
    所有 Gradle 发布通道的检查结果。
    """

    enabled: bool
    running: GradleUpdateResult
    current: GradleUpdateResult
    release_candidate: GradleUpdateResult
    nightly: GradleUpdateResult


@dataclass(frozen=True, slots=True)
class Result:
    """
    一次依赖更新检查的完整结果树（构建后不再修改）。
    """

    count: int
    current: DependenciesGroup[Dependency]
    outdated: DependenciesGroup[DependencyOutdated]
    exceeded: DependenciesGroup[DependencyLatest]
    undeclared: DependenciesGroup[Dependency]
    unresolved: DependenciesGroup[DependencyUnresolved]
    gradle: GradleUpdateResults
