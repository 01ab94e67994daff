from __future__ import annotations

import pytest

from gradle_lens.versions import (
    CandidateFilter,
    compare_versions,
    is_dynamic_version,
    is_stable,
    pick_latest_version,
    release_status,
    version_sort_key,
)


@pytest.mark.parametrize(
    ("older", "newer"),
    [
        ("1.0", "2.0"),
        ("1.9", "1.10"),
        ("1.1", "1.1.0"),
        ("1.1-rc1", "1.1"),
        ("1.0-dev", "1.0-alpha"),
        ("1.0-alpha", "1.0-rc"),
        ("1.0-rc", "1.0-SNAPSHOT"),
        ("1.0-snapshot", "1.0-final"),
        ("1.0-final", "1.0-ga"),
        ("1.0-ga", "1.0-release"),
        ("1.0-release", "1.0-sp"),
        ("1.0-alpha", "1.0-beta"),
        ("1.0a", "1.0.1"),
        ("2.0.0-M1", "2.0.0"),
    ],
)
def test_compare_versions_orders_pairs(older: str, newer: str) -> None:
    """
    数字片段按数值比较，特殊限定词按固定顺序比较，多出的数字片段更高、多出的非数字片段更低。
    """
    assert compare_versions(older, newer) < 0
    assert compare_versions(newer, older) > 0


def test_compare_versions_equal_and_separator_insensitive() -> None:
    """
    相同版本返回 0；分隔符 . - _ + 视为等价。
    """
    assert compare_versions("1.2.3", "1.2.3") == 0
    assert compare_versions("1.2-3", "1.2.3") == 0
    assert compare_versions("1_2+3", "1.2.3") == 0


def test_version_sort_key_sorts_with_comparator() -> None:
    """
    version_sort_key 可直接用于 sorted。
    """
    versions = ["1.10", "1.2", "1.2-rc1", "1.9"]
    assert sorted(versions, key=version_sort_key) == ["1.2-rc1", "1.2", "1.9", "1.10"]


def test_release_status_and_stability() -> None:
    """
    SNAPSHOT 为 integration；纯数字或含 FINAL/GA/RELEASE 为 release；其余为 milestone。
    """
    assert release_status("1.0-SNAPSHOT") == "integration"
    assert release_status("1.0.0") == "release"
    assert release_status("5.3.0.RELEASE") == "release"
    assert release_status("2.0-rc-1") == "milestone"
    assert release_status("1.0-M2") == "milestone"
    assert is_stable("v1.2")
    assert not is_stable("1.0-beta")


def test_pick_latest_version_respects_revision() -> None:
    """
    release 只接受稳定版；milestone 额外接受预发布；integration 额外接受快照。
    """
    candidates = ["1.0", "1.1", "2.0-rc1", "2.1-SNAPSHOT"]
    assert pick_latest_version(candidates, revision="release") == "1.1"
    assert pick_latest_version(candidates, revision="milestone") == "2.0-rc1"
    assert pick_latest_version(candidates, revision="integration") == "2.1-SNAPSHOT"
    assert pick_latest_version(["1.0-SNAPSHOT"], revision="release") is None
    assert pick_latest_version([], revision="milestone") is None


@pytest.mark.parametrize("version", ["1.+", "+", "[1.0,2.0)", "(,1.0]", "latest.release"])
def test_is_dynamic_version_detects_dynamic_forms(version: str) -> None:
    """
    动态版本与范围无法直接比较。
    """
    assert is_dynamic_version(version)


def test_is_dynamic_version_accepts_plain_versions() -> None:
    """
    普通版本不是动态版本。
    """
    assert not is_dynamic_version("1.0.0")
    assert not is_dynamic_version("none")


def test_compare_versions_treats_non_decimal_digits_as_text() -> None:
    """
    上标数字等非十进制字符按普通字符串处理，不会抛异常。
    """
    assert compare_versions("1.0", "1.0²") > 0
    assert compare_versions("1.0²", "1.0²") == 0
    assert pick_latest_version(["1.0", "1.0²"], revision="milestone") == "1.0"


def test_pick_latest_version_skips_rejected_candidates() -> None:
    """
    accept 返回 False 的候选不参与比较。
    """
    candidates = ["1.0", "1.1", "1.2-jre7"]
    assert pick_latest_version(candidates, revision="milestone", accept=lambda v: not v.endswith("jre7")) == "1.1"
    assert pick_latest_version(candidates, revision="milestone", accept=lambda v: False) is None


def test_candidate_filter_rejects_unstable_unless_current_unstable() -> None:
    """
    reject_unstable 只在当前版本稳定时拒绝非稳定候选；拒绝正则不区分大小写。
    """
    rule = CandidateFilter(reject_patterns=("-m\\d+$",), reject_unstable=True)
    assert rule.active
    assert rule.rejects("2.0-rc1")
    assert not rule.rejects("2.0-rc1", current_stable=False)
    assert rule.rejects("2.0-M1", current_stable=False)
    assert not rule.rejects("2.0")
    assert not CandidateFilter().active
    assert CandidateFilter().cache_tag() == ""
    assert rule.cache_tag(current_stable=True) != rule.cache_tag(current_stable=False)
