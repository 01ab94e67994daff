from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal, Union

NONE = "none"

Revision = Literal["release", "milestone", "integration"]

REVISIONS: tuple[str, ...] = ("release", "milestone", "integration")


class ReleaseChannel(str, Enum):
    """
    Gradle 自身的发布通道（取值即版本 API 路径中的 id）。
    """

    CURRENT = "current"
    RELEASE_CANDIDATE = "release-candidate"
    NIGHTLY = "nightly"


@dataclass(frozen=True, slots=True, order=True)
class Key:
    """
    依赖的 group:artifact 标识（忽略版本）。
    """

    group: str
    artifact: str

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}"


@dataclass(frozen=True, slots=True, order=True)
class Coordinate:
    """
    依赖坐标；group/artifact/version 为 None 时以 "none" 代替。

    相等性与哈希只看 (group, artifact, version)，user_reason 不参与比较；
    排序按 group、artifact，再按版本字符串（字典序）。
    """

    group: str
    artifact: str
    version: str
    user_reason: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        for name in ("group", "artifact", "version"):
            if getattr(self, name) is None:
                object.__setattr__(self, name, NONE)

    @property
    def key(self) -> Key:
        return Key(self.group, self.artifact)

    @property
    def is_undeclared(self) -> bool:
        return self.version == NONE

    def with_version(self, version: str | None) -> Coordinate:
        """
        返回同 key、同 user_reason 但版本不同的新坐标。
        """
        return Coordinate(self.group, self.artifact, version, self.user_reason)

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}"


@dataclass(frozen=True, slots=True)
class ResolvedStatus:
    """
    成功解析的依赖状态：当前坐标 + 找到的最新版本 + 项目主页。
    """

    coordinate: Coordinate
    latest_version: str
    project_url: str | None = None

    @property
    def latest_coordinate(self) -> Coordinate:
        return self.coordinate.with_version(self.latest_version)


@dataclass(frozen=True, slots=True)
class UnresolvedStatus:
    """
    解析失败的依赖状态，reason 为失败原因描述。
    """

    coordinate: Coordinate
    reason: str


DependencyStatus = Union[ResolvedStatus, UnresolvedStatus]
