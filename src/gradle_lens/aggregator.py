from __future__ import annotations

from typing import Mapping

from gradle_lens.classifier import Classification, strip_suffix
from gradle_lens.models import Coordinate, Key, Revision
from gradle_lens.report import (
    DependenciesGroup,
    Dependency,
    DependencyLatest,
    DependencyOutdated,
    DependencyUnresolved,
    GradleUpdateResults,
    Result,
    VersionAvailable,
)


def _display_key(key: Key) -> Key:
    """
    去掉重复后缀，恢复原始 artifact 名称。
    """
    return Key(key.group, strip_suffix(key.artifact))


def _sort_key(dep: Dependency | DependencyOutdated | DependencyLatest | DependencyUnresolved) -> tuple[str, ...]:
    """
    报告条目的排序键：group、name、version、projectUrl、userReason。
    """
    return (
        dep.group or "",
        dep.name or "",
        dep.version or "",
        dep.project_url or "",
        dep.user_reason or "",
    )


def aggregate(
    classification: Classification,
    *,
    project_urls: Mapping[Key, str],
    gradle: GradleUpdateResults,
    revision: Revision,
    unresolved_reasons: Mapping[Key, str] | None = None,
) -> Result:
    """
    将分类结果、项目主页与 Gradle 更新状态合并为一棵不可变的结果树。
    """
    reasons = unresolved_reasons or {}

    current: list[Dependency] = []
    for key, coordinate in sorted(classification.up_to_date.items()):
        shown = _display_key(key)
        current.append(
            Dependency(
                group=shown.group,
                name=shown.artifact,
                version=coordinate.version,
                project_url=project_urls.get(shown),
                user_reason=coordinate.user_reason,
            )
        )

    outdated: list[DependencyOutdated] = []
    for key, coordinate in sorted(classification.upgrade.items()):
        shown = _display_key(key)
        latest = classification.latest.get(shown)
        outdated.append(
            DependencyOutdated(
                group=shown.group,
                name=shown.artifact,
                version=coordinate.version,
                project_url=project_urls.get(shown),
                user_reason=coordinate.user_reason,
                available=VersionAvailable.for_revision(revision, latest.version if latest else None),
            )
        )

    exceeded: list[DependencyLatest] = []
    for key, coordinate in sorted(classification.downgrade.items()):
        shown = _display_key(key)
        latest = classification.latest.get(shown)
        exceeded.append(
            DependencyLatest(
                group=shown.group,
                name=shown.artifact,
                version=coordinate.version,
                project_url=project_urls.get(shown),
                user_reason=coordinate.user_reason,
                latest=latest.version if latest else "",
            )
        )

    undeclared = sorted(
        {Dependency(group=c.group, name=c.artifact) for c in classification.undeclared},
        key=_sort_key,
    )

    unresolved = [_unresolved_dependency(c, project_urls, reasons) for c in classification.unresolved]

    groups = (
        DependenciesGroup.of(sorted(current, key=_sort_key)),
        DependenciesGroup.of(sorted(outdated, key=_sort_key)),
        DependenciesGroup.of(sorted(exceeded, key=_sort_key)),
        DependenciesGroup.of(undeclared),
        DependenciesGroup.of(sorted(unresolved, key=_sort_key)),
    )
    return Result(
        count=sum(g.count for g in groups),
        current=groups[0],
        outdated=groups[1],
        exceeded=groups[2],
        undeclared=groups[3],
        unresolved=groups[4],
        gradle=gradle,
    )


def _unresolved_dependency(
    coordinate: Coordinate,
    project_urls: Mapping[Key, str],
    reasons: Mapping[Key, str],
) -> DependencyUnresolved:
    """
    构造未解析依赖条目；没有记录原因时使用默认描述。
    """
    return DependencyUnresolved(
        group=coordinate.group,
        name=coordinate.artifact,
        version=None if coordinate.is_undeclared else coordinate.version,
        project_url=project_urls.get(coordinate.key),
        user_reason=coordinate.user_reason,
        reason=reasons.get(coordinate.key, "no latest version resolved"),
    )
