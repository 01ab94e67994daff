from __future__ import annotations

import html
import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Callable, NamedTuple

from gradle_lens.models import ReleaseChannel, Revision
from gradle_lens.report import (
    DependenciesGroup,
    Dependency,
    DependencyLatest,
    DependencyOutdated,
    DependencyUnresolved,
    GradleUpdateResult,
    GradleUpdateResults,
    Result,
    VersionAvailable,
)
from gradle_lens.versions import compare_versions

_RULE = "------------------------------------------------------------"


@dataclass(frozen=True, slots=True)
class ReportContext:
    """
    渲染时需要的上下文（与结果树本身无关）。
    """

    revision: Revision = "milestone"
    gradle_release_channel: ReleaseChannel = ReleaseChannel.RELEASE_CANDIDATE
    project_path: str = ":"


def _label(dep: Dependency | DependencyOutdated | DependencyLatest | DependencyUnresolved) -> str:
    return f"{dep.group}:{dep.name}"


def _channels_enabled(channel: ReleaseChannel) -> tuple[bool, bool]:
    """
    返回 (release-candidate 是否启用, nightly 是否启用)。
    """
    rc = channel in {ReleaseChannel.RELEASE_CANDIDATE, ReleaseChannel.NIGHTLY}
    return rc, channel == ReleaseChannel.NIGHTLY


def _newer(a: GradleUpdateResult, b: GradleUpdateResult) -> bool:
    return compare_versions(a.version, b.version) > 0


def gradle_breadcrumb(gradle: GradleUpdateResults, channel: ReleaseChannel) -> list[str]:
    """
    计算面包屑中的版本序列：running -> current -> releaseCandidate -> nightly。

    只包含已启用且比参照版本更新的通道；没有任何更新时返回仅含 running 的列表。
    """
    rc_on, nightly_on = _channels_enabled(channel)
    trail = [gradle.running.version]
    if gradle.current.is_update_available and _newer(gradle.current, gradle.running):
        trail.append(gradle.current.version)
    if rc_on and gradle.release_candidate.is_update_available and _newer(gradle.release_candidate, gradle.current):
        trail.append(gradle.release_candidate.version)
    if nightly_on and gradle.nightly.is_update_available and _newer(gradle.nightly, gradle.current):
        trail.append(gradle.nightly.version)
    return trail


def gradle_failures(gradle: GradleUpdateResults, channel: ReleaseChannel) -> list[str]:
    """
    返回已启用通道中检查失败的 "[ERROR] ..." 行。
    """
    rc_on, nightly_on = _channels_enabled(channel)
    lines: list[str] = []
    if gradle.current.is_failure:
        lines.append(f"[ERROR] [release channel: {ReleaseChannel.CURRENT.value}] {gradle.current.reason}")
    if rc_on and gradle.release_candidate.is_failure:
        lines.append(
            f"[ERROR] [release channel: {ReleaseChannel.RELEASE_CANDIDATE.value}] {gradle.release_candidate.reason}"
        )
    if nightly_on and gradle.nightly.is_failure:
        lines.append(f"[ERROR] [release channel: {ReleaseChannel.NIGHTLY.value}] {gradle.nightly.reason}")
    return lines


def render_text(result: Result, *, context: ReportContext) -> bytes:
    """
    渲染纯文本报告。
    """
    revision = context.revision
    lines: list[str] = [
        "",
        _RULE,
        f"{context.project_path} Project Dependency Updates (report to plain text file)",
        _RULE,
    ]

    if result.count == 0:
        lines += ["", "No dependencies found."]

    if result.current.dependencies:
        lines += ["", f"The following dependencies are using the latest {revision} version:"]
        for dep in result.current.dependencies:
            lines.append(f" - {_label(dep)}:{dep.version}")
            if dep.user_reason:
                lines.append(f"     {dep.user_reason}")

    if result.exceeded.dependencies:
        lines += ["", f"The following dependencies exceed the version found at the {revision} revision level:"]
        for dep in result.exceeded.dependencies:
            lines.append(f" - {_label(dep)} [{dep.version} <- {dep.latest}]")
            lines += [f"     {v}" for v in (dep.user_reason, dep.project_url) if v]

    if result.outdated.dependencies:
        lines += ["", f"The following dependencies have later {revision} versions:"]
        for dep in result.outdated.dependencies:
            lines.append(f" - {_label(dep)} [{dep.version} -> {dep.available.get(revision)}]")
            lines += [f"     {v}" for v in (dep.user_reason, dep.project_url) if v]

    if result.undeclared.dependencies:
        lines += [
            "",
            "Failed to compare versions for the following dependencies because they were declared without version:",
        ]
        lines += [f" - {_label(dep)}" for dep in result.undeclared.dependencies]

    if result.unresolved.dependencies:
        lines += [
            "",
            "Failed to determine the latest version for the following dependencies (use --info for details):",
        ]
        for dep in result.unresolved.dependencies:
            lines.append(f" - {_label(dep)}")
            lines += [f"     {v}" for v in (dep.user_reason, dep.project_url) if v]

    if result.gradle.enabled:
        channel = context.gradle_release_channel
        lines += ["", f"Gradle {channel.value} updates:"]
        lines += gradle_failures(result.gradle, channel)
        trail = gradle_breadcrumb(result.gradle, channel)
        suffix = ": UP-TO-DATE" if len(trail) == 1 else ""
        lines.append(f" - Gradle: [{' -> '.join(trail)}{suffix}]")

    return ("\n".join(lines) + "\n").encode("utf-8")


def _dependency_obj(dep: Any) -> dict[str, Any]:
    """
    依赖条目的公共字段（固定键顺序，None 显式保留）。
    """
    return {
        "group": dep.group,
        "name": dep.name,
        "version": dep.version,
        "projectUrl": dep.project_url,
        "userReason": dep.user_reason,
    }


def _group_obj(group: DependenciesGroup[Any], extra: Callable[[Any], dict[str, Any]] | None = None) -> dict[str, Any]:
    items = []
    for dep in group.dependencies:
        obj = _dependency_obj(dep)
        if extra is not None:
            obj.update(extra(dep))
        items.append(obj)
    return {"count": group.count, "dependencies": items}


def _gradle_result_obj(update: GradleUpdateResult) -> dict[str, Any]:
    return {
        "version": update.version,
        "isUpdateAvailable": update.is_update_available,
        "isFailure": update.is_failure,
        "reason": update.reason,
    }


def report_to_json_obj(result: Result) -> dict[str, Any]:
    """
    将结果树转换为可 JSON 序列化的字典（键顺序固定）。
    """
    gradle = result.gradle
    return {
        "count": result.count,
        "current": _group_obj(result.current),
        "outdated": _group_obj(
            result.outdated,
            lambda d: {
                "available": {
                    "release": d.available.release,
                    "milestone": d.available.milestone,
                    "integration": d.available.integration,
                }
            },
        ),
        "exceeded": _group_obj(result.exceeded, lambda d: {"latest": d.latest}),
        "undeclared": _group_obj(result.undeclared),
        "unresolved": _group_obj(result.unresolved, lambda d: {"reason": d.reason}),
        "gradle": {
            "enabled": gradle.enabled,
            "running": _gradle_result_obj(gradle.running),
            "current": _gradle_result_obj(gradle.current),
            "releaseCandidate": _gradle_result_obj(gradle.release_candidate),
            "nightly": _gradle_result_obj(gradle.nightly),
        },
    }


def render_json(result: Result, *, context: ReportContext | None = None) -> bytes:
    """
    渲染 JSON 报告（单空格缩进，null 字段显式输出）。
    """
    return (json.dumps(report_to_json_obj(result), ensure_ascii=False, indent=" ") + "\n").encode("utf-8")


def _common_fields(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        "group": obj.get("group"),
        "name": obj.get("name"),
        "version": obj.get("version"),
        "project_url": obj.get("projectUrl"),
        "user_reason": obj.get("userReason"),
    }


def _gradle_result_from_obj(obj: dict[str, Any] | None) -> GradleUpdateResult:
    obj = obj or {}
    return GradleUpdateResult(
        version=str(obj.get("version") or ""),
        is_update_available=bool(obj.get("isUpdateAvailable")),
        is_failure=bool(obj.get("isFailure")),
        reason=str(obj.get("reason") or ""),
    )


def result_from_json_obj(data: dict[str, Any]) -> Result:
    """
    将 JSON 报告解析回结果树（render_json 的逆操作）。
    """

    def deps(section: str) -> list[dict[str, Any]]:
        return list((data.get(section) or {}).get("dependencies") or [])

    current = [Dependency(**_common_fields(o)) for o in deps("current")]
    outdated = [
        DependencyOutdated(
            **_common_fields(o),
            available=VersionAvailable(
                release=(o.get("available") or {}).get("release"),
                milestone=(o.get("available") or {}).get("milestone"),
                integration=(o.get("available") or {}).get("integration"),
            ),
        )
        for o in deps("outdated")
    ]
    exceeded = [DependencyLatest(**_common_fields(o), latest=str(o.get("latest") or "")) for o in deps("exceeded")]
    undeclared = [Dependency(**_common_fields(o)) for o in deps("undeclared")]
    unresolved = [
        DependencyUnresolved(**_common_fields(o), reason=str(o.get("reason") or "")) for o in deps("unresolved")
    ]

    gradle = data.get("gradle") or {}
    return Result(
        count=int(data.get("count") or 0),
        current=DependenciesGroup.of(current),
        outdated=DependenciesGroup.of(outdated),
        exceeded=DependenciesGroup.of(exceeded),
        undeclared=DependenciesGroup.of(undeclared),
        unresolved=DependenciesGroup.of(unresolved),
        gradle=GradleUpdateResults(
            enabled=bool(gradle.get("enabled")),
            running=_gradle_result_from_obj(gradle.get("running")),
            current=_gradle_result_from_obj(gradle.get("current")),
            release_candidate=_gradle_result_from_obj(gradle.get("releaseCandidate")),
            nightly=_gradle_result_from_obj(gradle.get("nightly")),
        ),
    )


def parse_json(payload: bytes | str) -> Result:
    """
    解析 render_json 输出的字节/字符串。
    """
    return result_from_json_obj(json.loads(payload))


def _xml_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _append(parent: ET.Element, name: str, value: Any) -> ET.Element:
    """
    追加文本子元素；None 输出为空元素而不是省略。
    """
    element = ET.SubElement(parent, name)
    element.text = _xml_text(value)
    return element


def _xml_dependency(parent: ET.Element, tag: str, dep: Any) -> ET.Element:
    element = ET.SubElement(parent, tag)
    for key, value in _dependency_obj(dep).items():
        _append(element, key, value)
    return element


def _xml_section(response: ET.Element, name: str, group: DependenciesGroup[Any]) -> ET.Element:
    section = ET.SubElement(response, name)
    _append(section, "count", group.count)
    return ET.SubElement(section, "dependencies")


def render_xml(result: Result, *, context: ReportContext | None = None) -> bytes:
    """
    渲染 XML 报告（standalone 文档，两空格缩进）。
    """
    response = ET.Element("response")
    _append(response, "count", result.count)

    parent = _xml_section(response, "current", result.current)
    for dep in result.current.dependencies:
        _xml_dependency(parent, "dependency", dep)

    parent = _xml_section(response, "outdated", result.outdated)
    for dep in result.outdated.dependencies:
        element = _xml_dependency(parent, "outdatedDependency", dep)
        available = ET.SubElement(element, "available")
        _append(available, "release", dep.available.release)
        _append(available, "milestone", dep.available.milestone)
        _append(available, "integration", dep.available.integration)

    parent = _xml_section(response, "exceeded", result.exceeded)
    for dep in result.exceeded.dependencies:
        element = _xml_dependency(parent, "exceededDependency", dep)
        _append(element, "latest", dep.latest)

    parent = _xml_section(response, "undeclared", result.undeclared)
    for dep in result.undeclared.dependencies:
        _xml_dependency(parent, "dependency", dep)

    parent = _xml_section(response, "unresolved", result.unresolved)
    for dep in result.unresolved.dependencies:
        element = _xml_dependency(parent, "unresolvedDependency", dep)
        _append(element, "reason", dep.reason)

    gradle = ET.SubElement(response, "gradle")
    _append(gradle, "enabled", result.gradle.enabled)
    for name, update in (
        ("running", result.gradle.running),
        ("current", result.gradle.current),
        ("releaseCandidate", result.gradle.release_candidate),
        ("nightly", result.gradle.nightly),
    ):
        channel = ET.SubElement(gradle, name)
        for key, value in _gradle_result_obj(update).items():
            _append(channel, key, value)

    ET.indent(response, space="  ")
    body = ET.tostring(response, encoding="unicode", short_empty_elements=True)
    return ('<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n' + body + "\n").encode("utf-8")


_HTML_HEAD = """<head>
<title>Project Dependency Updates Report</title>
<style>
   .body {
       font:100% verdana, arial, sans-serif;
       background-color:#fff
   }
   .currentInfo, .warningInfo {
       border-collapse: collapse;
   }
   .currentInfo td, .warningInfo td {
       border: 1px solid black;
       padding: 12px 15px;
   }
   .currentInfo tr:nth-child(even) { background-color: #E4FFB7; }
   .currentInfo tr:nth-child(odd) { background-color: #EFFFD2; }
   .warningInfo tr:nth-child(even) { background-color: #FFFF66; }
   .warningInfo tr:nth-child(odd) { background-color: #FFFFCC; }
   tr.header { cursor: pointer; }
</style>
<script>
document.addEventListener("DOMContentLoaded", function () {
  document.querySelectorAll("tr.header").forEach(function (header) {
    header.addEventListener("click", function () {
      var row = header.nextElementSibling;
      while (row && !row.classList.contains("header")) {
        row.hidden = !row.hidden;
        row = row.nextElementSibling;
      }
    });
  });
});
</script>
</head>"""


def _e(value: str | None) -> str:
    return html.escape(value or "")


def _link(url: str | None, text: str | None = None) -> str:
    if not url:
        return ""
    return f'<a target="_blank" href="{_e(url)}">{_e(text or url)}</a>'


def _version_cell(group: str | None, name: str | None, version: str | None) -> str:
    """
    版本单元格：版本号 + 指向 Maven Central 的链接。
    """
    if version is None:
        return ""
    url = f"https://central.sonatype.com/artifact/{group}/{name}/{version}/bundle"
    return f"{_e(version)} {_link(url, 'Sonatype')}"


def _row(cells: list[str]) -> str:
    return "<tr>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>"


def _html_table(css: str, title: str, columns: list[str], rows: list[list[str]], header_id: str = "") -> list[str]:
    id_attr = f' id="{header_id}"' if header_id else ""
    out = [f'<table class="{css}">']
    out.append(
        f'<tr class="header"{id_attr}><th colspan="{len(columns)}"><b>{title}</b></th></tr>'
    )
    out.append(_row([f"<b>{c}</b>" for c in columns]))
    out += [_row(r) for r in rows]
    out += ["</table>", "<br>"]
    return out


def _gradle_version_link(version: str | None) -> str:
    if not version:
        return _link("https://gradle.org/releases/", "unknown")
    return _link(f"https://docs.gradle.org/{version}/release-notes.html", version)


def render_html(result: Result, *, context: ReportContext) -> bytes:
    """
    渲染 HTML 报告。
    """
    revision = context.revision
    out: list[str] = ["<!doctype html>", '<html lang="en">', _HTML_HEAD, "<body>"]

    if result.count == 0:
        out.append("<p>No dependencies found.</p>")

    if result.current.dependencies:
        out.append("<h2>Current dependencies</h2>")
        out.append(f"<p>The following dependencies are using the latest {revision} version:</p>")
        rows = [
            [_e(d.name), _e(d.group), _link(d.project_url), _version_cell(d.group, d.name, d.version), _e(d.user_reason)]
            for d in result.current.dependencies
        ]
        out += _html_table(
            "currentInfo", "Current dependencies", ["Name", "Group", "URL", "Current Version", "Reason"], rows, "currentId"
        )

    if result.exceeded.dependencies:
        out.append("<h2>Exceeded dependencies</h2>")
        out.append(f"<p>The following dependencies exceed the version found at the {revision} revision level:</p>")
        rows = [
            [
                _e(d.name),
                _e(d.group),
                _link(d.project_url),
                _version_cell(d.group, d.name, d.version),
                _version_cell(d.group, d.name, d.latest),
                _e(d.user_reason),
            ]
            for d in result.exceeded.dependencies
        ]
        out += _html_table(
            "warningInfo",
            "Exceeded dependencies",
            ["Name", "Group", "URL", "Current Version", "Latest Version", "Reason"],
            rows,
        )

    if result.outdated.dependencies:
        out.append("<h2>Later dependencies</h2>")
        out.append(f"<p>The following dependencies have later {revision} versions:</p>")
        rows = [
            [
                _e(d.name),
                _e(d.group),
                _link(d.project_url),
                _version_cell(d.group, d.name, d.version),
                _version_cell(d.group, d.name, d.available.get(revision)),
                _e(d.user_reason),
            ]
            for d in result.outdated.dependencies
        ]
        out += _html_table(
            "warningInfo",
            "Later dependencies",
            ["Name", "Group", "URL", "Current Version", "Latest Version", "Reason"],
            rows,
        )

    if result.undeclared.dependencies:
        out.append("<h2>Undeclared dependencies</h2>")
        out.append(
            "<p>Failed to compare versions for the following dependencies because they were declared without version:</p>"
        )
        rows = [[_e(d.name), _e(d.group)] for d in result.undeclared.dependencies]
        out += _html_table("warningInfo", "Undeclared dependencies", ["Name", "Group"], rows)

    if result.unresolved.dependencies:
        out.append("<h2>Unresolved dependencies</h2>")
        out.append("<p>Failed to determine the latest version for the following dependencies:</p>")
        rows = [
            [_e(d.name), _e(d.group), _link(d.project_url), _version_cell(d.group, d.name, d.version), _e(d.user_reason)]
            for d in result.unresolved.dependencies
        ]
        out += _html_table(
            "warningInfo", "Unresolved dependencies", ["Name", "Group", "URL", "Current Version", "Reason"], rows
        )

    if result.gradle.enabled:
        channel = context.gradle_release_channel
        out.append(f"<h2>Gradle {channel.value} updates</h2>")
        out += [f"<p>{_e(line)}</p>" for line in gradle_failures(result.gradle, channel)]
        trail = gradle_breadcrumb(result.gradle, channel)
        suffix = ": UP-TO-DATE" if len(trail) == 1 else ""
        out.append(f"<p>Gradle: [{' -> '.join(_gradle_version_link(v) for v in trail)}{suffix}]</p>")
        out.append(
            '<p>For information about Gradle releases click <a target="_blank" '
            'href="https://gradle.org/releases/">here</a>.</p>'
        )

    out += ["</body>", "</html>"]
    return ("\n".join(out) + "\n").encode("utf-8")


class Reporter(NamedTuple):
    """
    一种内置报告格式：渲染函数 + 文件扩展名。
    """

    render: Callable[..., bytes]
    extension: str


REPORTERS: dict[str, Reporter] = {
    "text": Reporter(render_text, "txt"),
    "json": Reporter(render_json, "json"),
    "xml": Reporter(render_xml, "xml"),
    "html": Reporter(render_html, "html"),
}


def get_reporter(name: str) -> Reporter:
    """
    按名称获取报告格式；未知名称回退为纯文本。
    """
    return REPORTERS.get(name.strip(), REPORTERS["text"])
