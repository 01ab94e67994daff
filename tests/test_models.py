from __future__ import annotations

from gradle_lens.models import NONE, Coordinate, Key, ResolvedStatus


def test_coordinate_replaces_missing_fields_with_none_marker() -> None:
    """
    group/artifact/version 为 None 时应以 "none" 代替。
    """
    c = Coordinate("g", "a", None)
    assert c.version == NONE
    assert c.is_undeclared
    assert Coordinate(None, None, None).key == Key(NONE, NONE)  # type: ignore[arg-type]


def test_coordinate_equality_ignores_user_reason() -> None:
    """
    user_reason 不参与相等性与哈希。
    """
    a = Coordinate("g", "a", "1.0", "pinned for java 8")
    b = Coordinate("g", "a", "1.0")
    assert a == b
    assert len({a, b}) == 1


def test_coordinate_ordering_is_group_artifact_version() -> None:
    """
    排序按 group、artifact，再按版本字符串。
    """
    items = [
        Coordinate("b", "x", "1.0"),
        Coordinate("a", "y", "1.0"),
        Coordinate("a", "x", "2.0"),
        Coordinate("a", "x", "10.0"),
    ]
    assert [str(c) for c in sorted(items)] == ["a:x:10.0", "a:x:2.0", "a:y:1.0", "b:x:1.0"]


def test_resolved_status_latest_coordinate_keeps_key_and_reason() -> None:
    """
    latest_coordinate 应保留 key 与 user_reason，仅替换版本。
    """
    status = ResolvedStatus(Coordinate("g", "a", "1.0", "why"), "2.0")
    latest = status.latest_coordinate
    assert latest.key == Key("g", "a")
    assert latest.version == "2.0"
    assert latest.user_reason == "why"
    assert str(Key("g", "a")) == "g:a"
