from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

import structlog

from gradle_lens.models import Coordinate, DependencyStatus, Key, ResolvedStatus, UnresolvedStatus
from gradle_lens.versions import compare_versions

log = structlog.get_logger("gradle_lens.classifier")


@dataclass(frozen=True, slots=True)
class Classification:
    """
    分类结果：up_to_date/upgrade/downgrade 以带后缀的 Key 索引，保证同 key 多版本不被覆盖。
    """

    latest: dict[Key, Coordinate]
    up_to_date: dict[Key, Coordinate]
    upgrade: dict[Key, Coordinate]
    downgrade: dict[Key, Coordinate]
    undeclared: tuple[Coordinate, ...]
    unresolved: tuple[Coordinate, ...]
    current: dict[Key, Coordinate] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StatusSplit:
    """
    将一组 DependencyStatus 拆分成分类器所需的输入。
    """

    current: list[Coordinate]
    latest: dict[Key, Coordinate]
    unresolved_reasons: dict[Key, str]
    project_urls: dict[Key, str]


def suffixed_key(key: Key, index: int) -> Key:
    """
    返回第 index 个同名条目使用的 Key：0 为原名，之后依次为 a[2]、a[3]……
    """
    if index == 0:
        return key
    return Key(key.group, f"{key.artifact}[{index + 1}]")


def strip_suffix(name: str) -> str:
    """
    去掉 artifact 名称末尾的 [N] 重复后缀（从最后一个 "[" 截断）。
    """
    index = name.rfind("[")
    if index == -1:
        return name
    return name[:index]


def map_with_suffixes(coordinates: Iterable[Coordinate]) -> dict[Key, Coordinate]:
    """
    按迭代顺序把坐标放入以 Key 为键的字典；key 冲突时依次尝试 a[2]、a[3]…… 直到找到空位。
    """
    mapping: dict[Key, Coordinate] = {}
    for coordinate in coordinates:
        index = 0
        while True:
            candidate = suffixed_key(coordinate.key, index)
            if candidate not in mapping:
                mapping[candidate] = coordinate
                break
            index += 1
    return mapping


def merge_status(statuses: list[DependencyStatus], status: DependencyStatus) -> None:
    """
    合并一条新状态：key 尚不存在时直接加入；新状态有具体版本时加入，
    并移除同 key 的 "none" 版本旧状态；否则丢弃新状态。
    """
    key = status.coordinate.key
    existing = next((s for s in statuses if s.coordinate.key == key), None)
    if existing is None:
        statuses.append(status)
        return
    if status.coordinate.is_undeclared:
        return
    if any(s.coordinate == status.coordinate and type(s) is type(status) for s in statuses):
        return
    statuses.append(status)
    statuses[:] = [s for s in statuses if not (s.coordinate.key == key and s.coordinate.is_undeclared)]


def split_statuses(statuses: Iterable[DependencyStatus]) -> StatusSplit:
    """
    从状态集合中提取当前坐标、最新坐标、未解析原因与项目主页。
    """
    current: set[Coordinate] = set()
    latest: dict[Key, Coordinate] = {}
    unresolved_reasons: dict[Key, str] = {}
    project_urls: dict[Key, str] = {}
    for status in statuses:
        coordinate = status.coordinate
        current.add(coordinate)
        if isinstance(status, UnresolvedStatus):
            unresolved_reasons[coordinate.key] = status.reason
            continue
        if isinstance(status, ResolvedStatus):
            latest[coordinate.key] = status.latest_coordinate
            if status.project_url:
                project_urls[coordinate.key] = status.project_url
    return StatusSplit(
        current=sorted(current),
        latest=latest,
        unresolved_reasons=unresolved_reasons,
        project_urls=project_urls,
    )


def classify(
    current: Iterable[Coordinate],
    latest: Mapping[Key, Coordinate],
    unresolved_keys: Iterable[Key],
) -> Classification:
    """
    将当前坐标分为 up_to_date / upgrade / downgrade / undeclared，未解析的直接透传。

    current 会先排序，保证重复 key 的后缀分配可复现；latest 中缺失且不在
    unresolved_keys 里的坐标记录警告并归入 unresolved，不抛异常。
    """
    unresolved_set = set(unresolved_keys)
    ordered = sorted(set(current))

    up_to_date: list[Coordinate] = []
    upgrade: list[Coordinate] = []
    downgrade: list[Coordinate] = []
    undeclared: list[Coordinate] = []
    unresolved: list[Coordinate] = []

    for coordinate in ordered:
        latest_coordinate = latest.get(coordinate.key)
        log.debug(
            "classifier.compare",
            current=str(coordinate),
            latest=latest_coordinate.version if latest_coordinate else "unresolved",
        )
        if coordinate.key in unresolved_set:
            unresolved.append(coordinate)
            continue
        if coordinate.is_undeclared:
            undeclared.append(coordinate)
            continue
        if latest_coordinate is None:
            log.warning("classifier.latest_missing", coordinate=str(coordinate))
            unresolved.append(coordinate)
            continue

        result = compare_versions(coordinate.version, latest_coordinate.version)
        if result < 0:
            upgrade.append(coordinate)
        elif result == 0:
            up_to_date.append(coordinate)
        else:
            downgrade.append(coordinate)

    return Classification(
        latest=dict(latest),
        up_to_date=map_with_suffixes(up_to_date),
        upgrade=map_with_suffixes(upgrade),
        downgrade=map_with_suffixes(downgrade),
        undeclared=tuple(undeclared),
        unresolved=tuple(unresolved),
        current=map_with_suffixes(ordered),
    )
