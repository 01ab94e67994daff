from __future__ import annotations

from gradle_lens.aggregator import aggregate
from gradle_lens.classifier import classify
from gradle_lens.gradle_updates import disabled_gradle_update_results
from gradle_lens.models import Coordinate, Key
from gradle_lens.report import VersionAvailable


def _classification():
    """
    构造覆盖全部分组的分类结果（含重复 key）。
    """
    current = [
        Coordinate("g", "old", "1.0", "pinned"),
        Coordinate("g", "old", "1.1"),
        Coordinate("g", "same", "2.0"),
        Coordinate("g", "ahead", "9.0"),
        Coordinate("g", "bare", "none"),
        Coordinate("g", "broken", "1.0"),
    ]
    latest = {
        Key("g", "old"): Coordinate("g", "old", "2.0"),
        Key("g", "same"): Coordinate("g", "same", "2.0"),
        Key("g", "ahead"): Coordinate("g", "ahead", "3.0"),
    }
    return classify(current, latest, {Key("g", "broken")})


def test_aggregate_strips_suffixes_and_fills_latest() -> None:
    """
    outdated 中带 [N] 后缀的条目应恢复原名，并使用原名查找最新版本与项目主页。
    """
    result = aggregate(
        _classification(),
        project_urls={Key("g", "old"): "https://old.example"},
        gradle=disabled_gradle_update_results(),
        revision="release",
    )
    outdated = result.outdated.dependencies
    assert [(d.name, d.version) for d in outdated] == [("old", "1.0"), ("old", "1.1")]
    assert all(d.project_url == "https://old.example" for d in outdated)
    assert outdated[0].available == VersionAvailable(release="2.0")
    assert outdated[0].user_reason == "pinned"

    exceeded = result.exceeded.dependencies
    assert [(d.name, d.version, d.latest) for d in exceeded] == [("ahead", "9.0", "3.0")]
    assert [(d.name, d.version) for d in result.current.dependencies] == [("same", "2.0")]


def test_aggregate_count_is_sum_of_groups() -> None:
    """
    count 恒等于各分组数量之和。
    """
    result = aggregate(
        _classification(),
        project_urls={},
        gradle=disabled_gradle_update_results(),
        revision="milestone",
    )
    groups = (result.current, result.outdated, result.exceeded, result.undeclared, result.unresolved)
    assert all(g.count == len(g.dependencies) for g in groups)
    assert result.count == sum(g.count for g in groups) == 6


def test_aggregate_undeclared_and_unresolved_entries() -> None:
    """
    undeclared 只保留 group/name；unresolved 带上失败原因，没有原因时使用默认描述。
    """
    result = aggregate(
        _classification(),
        project_urls={},
        gradle=disabled_gradle_update_results(),
        revision="milestone",
        unresolved_reasons={},
    )
    undeclared = result.undeclared.dependencies
    assert len(undeclared) == 1
    assert (undeclared[0].group, undeclared[0].name, undeclared[0].version) == ("g", "bare", None)

    unresolved = result.unresolved.dependencies
    assert [(d.name, d.version, d.reason) for d in unresolved] == [("broken", "1.0", "no latest version resolved")]

    with_reason = aggregate(
        _classification(),
        project_urls={},
        gradle=disabled_gradle_update_results(),
        revision="milestone",
        unresolved_reasons={Key("g", "broken"): "http 503"},
    )
    assert with_reason.unresolved.dependencies[0].reason == "http 503"
