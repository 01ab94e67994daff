from __future__ import annotations

from pathlib import Path

from gradle_lens.gradle_updates import disabled_gradle_update_results
from gradle_lens.report import DependenciesGroup, DependencyOutdated, Result, VersionAvailable
from gradle_lens.updater import UpdateRules, apply_updates_to_catalog, is_update_allowed

_CATALOG = """# shared versions
[versions]
kotlin = "1.9.22" # keep in sync with the plugin
okhttp = { strictly = "4.11.0" }

[libraries]
guava = "com.google.guava:guava:31.0-jre"
kotlin-stdlib = { module = "org.jetbrains.kotlin:kotlin-stdlib", version.ref = "kotlin" }
okhttp = { module = "com.squareup.okhttp3:okhttp", version.ref = "okhttp" }
slf4j = { module = "org.slf4j:slf4j-api", version = "2.0.9" }
spring = { module = "org.springframework:spring-core", version = "5.3.0" }
internal = { module = "com.corp:internal", version = "1.0" }

[plugins]
kotlin-jvm = { id = "org.jetbrains.kotlin.jvm", version.ref = "kotlin" }
"""


def _outdated(group: str, name: str, version: str, latest: str) -> DependencyOutdated:
    return DependencyOutdated(group, name, version, None, None, VersionAvailable(milestone=latest))


def _make_result() -> Result:
    """
    构造包含多种写法的 outdated 依赖，用于 updater 写回测试。
    """
    outdated = DependenciesGroup.of(
        [
            _outdated("com.google.guava", "guava", "31.0-jre", "31.1-jre"),
            _outdated("org.jetbrains.kotlin", "kotlin-stdlib", "1.9.22", "1.9.23"),
            _outdated("org.jetbrains.kotlin.jvm", "org.jetbrains.kotlin.jvm.gradle.plugin", "1.9.22", "1.9.23"),
            _outdated("com.squareup.okhttp3", "okhttp", "4.11.0", "4.12.0"),
            _outdated("org.slf4j", "slf4j-api", "2.0.9", "2.0.12"),
            _outdated("org.springframework", "spring-core", "5.3.0", "6.1.0"),
            _outdated("com.corp", "internal", "1.0", "1.1"),
        ]
    )
    empty = DependenciesGroup.of([])
    return Result(
        count=outdated.count,
        current=empty,
        outdated=outdated,
        exceeded=empty,
        undeclared=empty,
        unresolved=empty,
        gradle=disabled_gradle_update_results(),
    )


def test_apply_updates_preview_does_not_write(tmp_path: Path) -> None:
    """
    write=False 时只返回变更，不修改文件。
    """
    path = tmp_path / "libs.versions.toml"
    path.write_text(_CATALOG, encoding="utf-8")
    changes = apply_updates_to_catalog(path, _make_result(), rules=UpdateRules(), revision="milestone", write=False)
    assert changes
    assert path.read_text(encoding="utf-8") == _CATALOG


def test_apply_updates_rewrites_all_notations_and_keeps_comments(tmp_path: Path) -> None:
    """
    字符串记法、version 字段、version.ref 与富版本都能改写；共用的 ref 只改一次；注释保留。
    """
    path = tmp_path / "libs.versions.toml"
    path.write_text(_CATALOG, encoding="utf-8")
    rules = UpdateRules(ignored_groups=("com.corp",))
    changes = apply_updates_to_catalog(path, _make_result(), rules=rules, revision="milestone", write=True)

    by_alias = {c.alias: (c.before, c.after) for c in changes}
    assert by_alias == {
        "guava": ("31.0-jre", "31.1-jre"),
        "kotlin-stdlib": ("1.9.22", "1.9.23"),
        "okhttp": ("4.11.0", "4.12.0"),
        "slf4j": ("2.0.9", "2.0.12"),
        "kotlin-jvm": ("1.9.22", "1.9.23"),
    }

    text = path.read_text(encoding="utf-8")
    assert "# shared versions" in text
    assert 'kotlin = "1.9.23" # keep in sync with the plugin' in text
    assert 'okhttp = { strictly = "4.12.0" }' in text
    assert '"com.google.guava:guava:31.1-jre"' in text
    assert 'version = "2.0.12"' in text
    assert 'version = "5.3.0"' in text
    assert 'module = "com.corp:internal", version = "1.0"' in text


def test_is_update_allowed_major_and_minor_rules() -> None:
    """
    主版本变化需要 allow_major；次版本变化需要 allow_minor；补丁升级总是允许。
    """
    default = UpdateRules()
    assert not is_update_allowed("5.3.0", "6.1.0", rules=default)
    assert is_update_allowed("5.3.0", "6.1.0", rules=UpdateRules(allow_major=True))
    assert is_update_allowed("2.0.9", "2.1.0", rules=default)
    assert not is_update_allowed("2.0.9", "2.1.0", rules=UpdateRules(allow_minor=False))
    assert is_update_allowed("2.0.9", "2.0.12", rules=UpdateRules(allow_minor=False))
