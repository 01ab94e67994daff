from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from gradle_lens.models import Coordinate

DEFAULT_CATALOG = Path("gradle") / "libs.versions.toml"


class CatalogError(ValueError):
    """
    版本目录文件无法解析。
    """


class EntryKind(str, Enum):
    """
    版本目录条目类别。
    """

    LIBRARY = "library"
    PLUGIN = "plugin"
    CLI = "cli"


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """
    版本目录中的一条依赖（保留 alias 与 version.ref，便于写回）。
    """

    kind: EntryKind
    alias: str
    coordinate: Coordinate | None
    version_ref: str | None
    error: str | None


def load_catalog(path: Path) -> dict[str, Any]:
    """
    读取并解析 libs.versions.toml，返回 TOML 数据字典。
    """
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise CatalogError(f"{path}: {exc}") from exc


def parse_dependency_notation(notation: str, *, reason: str | None = None) -> Coordinate:
    """
    解析 "group:artifact[:version]" 记法；格式不对时抛 ValueError。
    """
    parts = [p.strip() for p in notation.strip().split(":")]
    if len(parts) not in (2, 3) or not all(parts[:2]):
        raise ValueError(f"invalid dependency notation: {notation!r}")
    version = parts[2] if len(parts) == 3 and parts[2] else None
    return Coordinate(parts[0], parts[1], version, reason)


def _rich_version(value: dict[str, Any]) -> str | None:
    """
    从富版本声明中取出用于比较的版本：strictly > require > prefer。
    """
    for field_name in ("strictly", "require", "prefer"):
        raw = value.get(field_name)
        if raw:
            return str(raw)
    return None


def _resolve_version(
    value: Any,
    versions: dict[str, Any],
) -> tuple[str | None, str | None, str | None]:
    """
    解析 version 字段，返回 (version, version_ref, error)。
    """
    if value is None:
        return None, None, None
    if isinstance(value, str):
        return value, None, None
    if not isinstance(value, dict):
        return None, None, f"unsupported version declaration: {value!r}"

    ref = value.get("ref")
    if ref is not None:
        ref = str(ref)
        if ref not in versions:
            return None, ref, f"unknown version reference: {ref}"
        target = versions[ref]
        if isinstance(target, dict):
            return _rich_version(target), ref, None
        return str(target), ref, None
    return _rich_version(value), None, None


def _user_reason(value: dict[str, Any]) -> str | None:
    reason = value.get("because") or value.get("reason")
    return str(reason) if reason else None


def _parse_library(alias: str, value: Any, versions: dict[str, Any]) -> CatalogEntry:
    """
    解析 [libraries] 中的一条：字符串记法或 module/group+name 表。
    """
    if isinstance(value, str):
        try:
            coordinate = parse_dependency_notation(value)
        except ValueError as exc:
            return CatalogEntry(EntryKind.LIBRARY, alias, None, None, str(exc))
        return CatalogEntry(EntryKind.LIBRARY, alias, coordinate, None, None)

    if not isinstance(value, dict):
        return CatalogEntry(EntryKind.LIBRARY, alias, None, None, f"unsupported library declaration: {value!r}")

    module = value.get("module")
    if module:
        group, _, artifact = str(module).partition(":")
    else:
        group, artifact = str(value.get("group") or ""), str(value.get("name") or "")
    if not group or not artifact:
        return CatalogEntry(EntryKind.LIBRARY, alias, None, None, "missing module or group/name")

    if "version.ref" in value:
        value = {**value, "version": {"ref": value["version.ref"]}}
    version, ref, error = _resolve_version(value.get("version"), versions)
    coordinate = Coordinate(group, artifact, version, _user_reason(value))
    return CatalogEntry(EntryKind.LIBRARY, alias, coordinate, ref, error)


def _parse_plugin(alias: str, value: Any, versions: dict[str, Any]) -> CatalogEntry:
    """
    解析 [plugins] 中的一条，映射到插件 marker 坐标 id:id.gradle.plugin。
    """
    if isinstance(value, str):
        plugin_id, _, version = value.partition(":")
        if not plugin_id:
            return CatalogEntry(EntryKind.PLUGIN, alias, None, None, "missing plugin id")
        coordinate = Coordinate(plugin_id, f"{plugin_id}.gradle.plugin", version or None)
        return CatalogEntry(EntryKind.PLUGIN, alias, coordinate, None, None)

    if not isinstance(value, dict) or not value.get("id"):
        return CatalogEntry(EntryKind.PLUGIN, alias, None, None, "missing plugin id")

    plugin_id = str(value["id"])
    if "version.ref" in value:
        value = {**value, "version": {"ref": value["version.ref"]}}
    version, ref, error = _resolve_version(value.get("version"), versions)
    coordinate = Coordinate(plugin_id, f"{plugin_id}.gradle.plugin", version, _user_reason(value))
    return CatalogEntry(EntryKind.PLUGIN, alias, coordinate, ref, error)


def extract_catalog_dependencies(catalog_data: dict[str, Any]) -> list[CatalogEntry]:
    """
    从版本目录数据中提取所有 library 与 plugin 条目。
    """
    versions = catalog_data.get("versions") or {}
    if not isinstance(versions, dict):
        versions = {}

    entries: list[CatalogEntry] = []
    libraries = catalog_data.get("libraries") or {}
    if isinstance(libraries, dict):
        for alias, value in libraries.items():
            entries.append(_parse_library(str(alias), value, versions))

    plugins = catalog_data.get("plugins") or {}
    if isinstance(plugins, dict):
        for alias, value in plugins.items():
            entries.append(_parse_plugin(str(alias), value, versions))

    return entries
