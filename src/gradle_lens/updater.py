from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
from tomlkit import dumps, parse

from gradle_lens.catalog import EntryKind, extract_catalog_dependencies
from gradle_lens.models import Key, Revision
from gradle_lens.report import Result
from gradle_lens.versions import parse_version

log = structlog.get_logger("gradle_lens.updater")

_RICH_FIELDS = ("strictly", "require", "prefer")


@dataclass(frozen=True, slots=True)
class UpdateRules:
    """
    自动写回策略：是否允许跨主版本/次版本升级，以及忽略的 group。
    """

    allow_major: bool = False
    allow_minor: bool = True
    ignored_groups: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class UpdateChange:
    """
    一条写回变更（旧值→新值）。
    """

    alias: str
    module: str
    before: str
    after: str


def _numeric_component(version: str, index: int) -> int | None:
    numbers = [p.numeric for p in parse_version(version) if p.numeric is not None]
    return numbers[index] if index < len(numbers) else None


def is_update_allowed(current: str, target: str, *, rules: UpdateRules) -> bool:
    """
    主版本号变化需要 allow_major；主版本相同但次版本变化需要 allow_minor。
    """
    if _numeric_component(current, 0) != _numeric_component(target, 0):
        return rules.allow_major
    if _numeric_component(current, 1) != _numeric_component(target, 1):
        return rules.allow_minor
    return True


def _build_target_map(result: Result, *, revision: Revision, rules: UpdateRules) -> dict[tuple[Key, str], str]:
    """
    从报告的 outdated 分组构建 (key, 当前版本) -> 目标版本 的映射。
    """
    mapping: dict[tuple[Key, str], str] = {}
    for dep in result.outdated.dependencies:
        if not dep.group or not dep.name or not dep.version:
            continue
        if dep.group in rules.ignored_groups:
            log.debug("updater.ignored_group", module=f"{dep.group}:{dep.name}")
            continue
        available = dep.available
        target = available.get(revision) or available.release or available.milestone or available.integration
        if not target:
            continue
        if not is_update_allowed(dep.version, target, rules=rules):
            log.info("updater.update_skipped", module=f"{dep.group}:{dep.name}", current=dep.version, target=target)
            continue
        mapping[(Key(dep.group, dep.name), dep.version)] = target
    return mapping


def _set_rich_version(table: Any, target: str) -> None:
    for name in _RICH_FIELDS:
        if table.get(name):
            table[name] = target
            return


def apply_updates_to_catalog(
    catalog_path: Path,
    result: Result,
    *,
    rules: UpdateRules,
    revision: Revision,
    write: bool,
) -> list[UpdateChange]:
    """
    根据报告更新 libs.versions.toml 中的版本（保留原有格式与注释）。

    字符串记法改写整个 "g:a:v"；表形式改写 version 字段；version.ref 改写
    [versions] 中被引用的条目，多个依赖共用同一 ref 时只改写一次。
    """
    target_map = _build_target_map(result, revision=revision, rules=rules)
    doc = parse(catalog_path.read_text(encoding="utf-8"))
    entries = extract_catalog_dependencies(doc.unwrap())
    versions_table = doc.get("versions")
    changes: list[UpdateChange] = []
    updated_refs: set[str] = set()

    for entry in entries:
        coordinate = entry.coordinate
        if coordinate is None or entry.error or entry.kind == EntryKind.CLI:
            continue
        target = target_map.get((coordinate.key, coordinate.version))
        if target is None or target == coordinate.version:
            continue

        section = doc["libraries" if entry.kind == EntryKind.LIBRARY else "plugins"]
        value = section[entry.alias]

        if entry.version_ref is not None:
            if versions_table is None:
                continue
            if entry.version_ref not in updated_refs:
                ref_value = versions_table[entry.version_ref]
                if isinstance(ref_value, str):
                    versions_table[entry.version_ref] = target
                else:
                    _set_rich_version(ref_value, target)
                updated_refs.add(entry.version_ref)
        elif isinstance(value, str):
            if entry.kind == EntryKind.PLUGIN:
                section[entry.alias] = f"{coordinate.group}:{target}"
            else:
                section[entry.alias] = f"{coordinate.group}:{coordinate.artifact}:{target}"
        else:
            version = value.get("version")
            if isinstance(version, str):
                value["version"] = target
            elif version is not None:
                _set_rich_version(version, target)
            else:
                continue

        changes.append(
            UpdateChange(
                alias=entry.alias,
                module=str(coordinate.key),
                before=coordinate.version,
                after=target,
            )
        )

    if write and changes:
        catalog_path.write_text(dumps(doc), encoding="utf-8")
        log.info("updater.catalog_written", path=str(catalog_path), changes=len(changes))

    return changes
