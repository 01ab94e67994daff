from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Callable, Iterable

from gradle_lens.models import Revision

_SEPARATOR_RE = re.compile(r"[.\-_+]")
_PART_RE = re.compile(r"\d+|\D+")
_STABLE_RE = re.compile(r"^[0-9,.v-]+(-r)?$")

# dev 低于任何普通字符串，其余都高于普通字符串。
_SPECIAL_MEANINGS = {
    "dev": -1,
    "rc": 1,
    "snapshot": 2,
    "final": 3,
    "ga": 4,
    "release": 5,
    "sp": 6,
}

_ACCEPTED_STATUSES: dict[str, frozenset[str]] = {
    "release": frozenset({"release"}),
    "milestone": frozenset({"release", "milestone"}),
    "integration": frozenset({"release", "milestone", "integration"}),
}


@dataclass(frozen=True, slots=True)
class VersionPart:
    """
    版本号中的一个片段；numeric 为 None 表示非数字片段。
    """

    text: str
    numeric: int | None


def parse_version(version: str) -> tuple[VersionPart, ...]:
    """
    将版本字符串拆分为片段：按 . - _ + 分隔，并在数字/非数字交界处再拆分。
    """
    parts: list[VersionPart] = []
    for chunk in _SEPARATOR_RE.split(version):
        for text in _PART_RE.findall(chunk):
            parts.append(VersionPart(text=text, numeric=int(text) if text.isdecimal() else None))
    return tuple(parts)


def _compare_parts(a: VersionPart, b: VersionPart) -> int:
    """
    比较两个同位置的片段。
    """
    if a.numeric is not None and b.numeric is not None:
        return (a.numeric > b.numeric) - (a.numeric < b.numeric)
    if a.numeric is not None:
        return 1
    if b.numeric is not None:
        return -1

    special_a = _SPECIAL_MEANINGS.get(a.text.lower())
    special_b = _SPECIAL_MEANINGS.get(b.text.lower())
    if special_a is not None or special_b is not None:
        diff = (special_a or 0) - (special_b or 0)
        return (diff > 0) - (diff < 0)
    return (a.text > b.text) - (a.text < b.text)


def compare_versions(a: str, b: str) -> int:
    """
    对两个版本字符串做全序比较，返回负数/0/正数。

    规则：数字片段按数值比较且高于非数字片段；特殊限定词
    dev < 普通字符串 < rc < snapshot < final < ga < release < sp（不区分大小写），
    其余非数字片段按字典序（区分大小写）；公共片段都相等时，多出的数字片段
    使版本更高（1.1 < 1.1.0），多出的非数字片段使版本更低（1.1-rc1 < 1.1）。
    """
    if a == b:
        return 0
    parts_a = parse_version(a)
    parts_b = parse_version(b)
    for part_a, part_b in zip(parts_a, parts_b):
        if part_a.text == part_b.text:
            continue
        result = _compare_parts(part_a, part_b)
        if result != 0:
            return result

    shared = min(len(parts_a), len(parts_b))
    if len(parts_a) > shared:
        return 1 if parts_a[shared].numeric is not None else -1
    if len(parts_b) > shared:
        return -1 if parts_b[shared].numeric is not None else 1
    return 0


version_sort_key = cmp_to_key(compare_versions)


def is_stable(version: str) -> bool:
    """
    判断版本是否为稳定版（包含 RELEASE/FINAL/GA，或仅由数字、点、v、- 组成）。
    """
    upper = version.upper()
    if any(keyword in upper for keyword in ("RELEASE", "FINAL", "GA")):
        return True
    return _STABLE_RE.match(version) is not None


def release_status(version: str) -> Revision:
    """
    推断版本所处的修订级别：SNAPSHOT 为 integration，稳定版为 release，其余为 milestone。
    """
    if "SNAPSHOT" in version.upper():
        return "integration"
    if is_stable(version):
        return "release"
    return "milestone"


def pick_latest_version(
    candidates: Iterable[str],
    *,
    revision: Revision,
    accept: Callable[[str], bool] | None = None,
) -> str | None:
    """
    从候选版本中挑选符合修订级别的最新版本；没有候选时返回 None。

    accept 返回 False 的候选在比较前就被剔除。
    """
    accepted = _ACCEPTED_STATUSES.get(revision, _ACCEPTED_STATUSES["milestone"])
    eligible = [
        v for v in candidates if v and release_status(v) in accepted and (accept is None or accept(v))
    ]
    if not eligible:
        return None
    return max(eligible, key=version_sort_key)


def is_dynamic_version(version: str) -> bool:
    """
    判断版本是否为无法直接比较的动态版本或范围（1.+、[1.0,2.0)、latest.release）。
    """
    if version.endswith("+"):
        return True
    if version[:1] in {"[", "(", "]"} or version[-1:] in {"]", ")", "["}:
        return True
    return version.startswith("latest.")


@dataclass(frozen=True, slots=True)
class CandidateFilter:
    """
    候选版本的拒绝规则。

    - reject_patterns：正则列表，候选版本命中任意一条即被拒绝（re.search，不区分大小写）。
    - reject_unstable：拒绝非稳定候选，除非当前版本本身就不稳定。
    """

    reject_patterns: tuple[str, ...] = ()
    reject_unstable: bool = False

    @property
    def active(self) -> bool:
        return bool(self.reject_patterns) or self.reject_unstable

    def rejects(self, candidate: str, *, current_stable: bool = True) -> bool:
        if self.reject_unstable and current_stable and not is_stable(candidate):
            return True
        return any(re.search(p, candidate, re.IGNORECASE) for p in self.reject_patterns)

    def cache_tag(self, *, current_stable: bool = True) -> str:
        """
        规则在缓存 scope 中的标识；同一规则与同一稳定性得到同一标识。
        """
        if not self.active:
            return ""
        parts = [f"reject={','.join(self.reject_patterns)}"]
        if self.reject_unstable and current_stable:
            parts.append("stable-only")
        return ";".join(parts)
