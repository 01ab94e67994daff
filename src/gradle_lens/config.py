from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from gradle_lens.gradle_updates import DEFAULT_VERSIONS_API
from gradle_lens.index_client import MAVEN_CENTRAL, RepositoryAuth, RepositorySettings
from gradle_lens.models import REVISIONS, ReleaseChannel, Revision
from gradle_lens.versions import CandidateFilter

DEFAULT_OUTPUT_DIR = "build/dependencyUpdates"
DEFAULT_REPORT_FILE_NAME = "report"
DEFAULT_OUTPUT_FORMATTER = "text"


class ConfigError(ValueError):
    """
    配置值非法（未知的修订级别或发布通道等）。
    """


@dataclass(frozen=True, slots=True)
class AppConfig:
    """
    gradle-lens 的运行配置（可来自配置文件、环境变量与 CLI 参数合并）。
    """

    repositories: RepositorySettings = field(default_factory=RepositorySettings)
    revision: Revision = "milestone"
    gradle_release_channel: ReleaseChannel = ReleaseChannel.RELEASE_CANDIDATE
    output_formatter: str = DEFAULT_OUTPUT_FORMATTER
    output_dir: str = DEFAULT_OUTPUT_DIR
    report_file_name: str = DEFAULT_REPORT_FILE_NAME
    check_for_gradle_update: bool = True
    gradle_versions_api_base_url: str = DEFAULT_VERSIONS_API
    offline: bool = False
    max_concurrency: int = 20
    cache_ttl_s: int = 24 * 60 * 60
    use_cache: bool = True
    refresh: bool = False
    exclude: tuple[str, ...] = ()
    candidate_filter: CandidateFilter = field(default_factory=CandidateFilter)


def parse_revision(value: str) -> Revision:
    """
    校验修订级别字符串；非法时抛 ConfigError。
    """
    normalized = value.strip().lower()
    if normalized not in REVISIONS:
        raise ConfigError(f"unknown revision {value!r}, expected one of: {', '.join(REVISIONS)}")
    return normalized  # type: ignore[return-value]


def parse_release_channel(value: str | ReleaseChannel) -> ReleaseChannel:
    """
    校验 Gradle 发布通道；非法时抛 ConfigError。
    """
    if isinstance(value, ReleaseChannel):
        return value
    try:
        return ReleaseChannel(value.strip().lower())
    except ValueError:
        expected = ", ".join(c.value for c in ReleaseChannel)
        raise ConfigError(f"unknown gradle release channel {value!r}, expected one of: {expected}") from None


def parse_reject_patterns(patterns: list[str]) -> tuple[str, ...]:
    """
    校验候选版本拒绝正则；无法编译时抛 ConfigError。
    """
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            raise ConfigError(f"invalid reject_versions pattern {pattern!r}: {exc}") from None
    return tuple(patterns)


def _find_default_config_file(cwd: Path) -> Path | None:
    """
    在当前目录查找默认配置文件路径。
    """
    candidates = [
        ".gradle-lens.toml",
        ".gradle-lens.yaml",
        ".gradle-lens.yml",
        "gradle-lens.toml",
        "gradle-lens.yaml",
        "gradle-lens.yml",
    ]
    for name in candidates:
        p = cwd / name
        if p.exists() and p.is_file():
            return p
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    """
    读取 YAML 配置文件（需要 PyYAML）。
    """
    import yaml

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _load_config_file(path: Path) -> dict[str, Any]:
    """
    读取 .toml 或 .yaml 配置文件，返回配置字典。
    """
    suffix = path.suffix.lower()
    if suffix == ".toml":
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"{path}: {exc}") from exc
        return data if isinstance(data, dict) else {}
    if suffix in {".yaml", ".yml"}:
        return _load_yaml(path)
    return {}


def _env_list(key: str) -> list[str]:
    """
    从环境变量读取列表（逗号分隔）。
    """
    value = os.environ.get(key)
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def load_config(config_path: str | None) -> AppConfig:
    """
    从配置文件与环境变量加载 AppConfig。
    """
    config_data: dict[str, Any] = {}
    if config_path:
        config_data = _load_config_file(Path(config_path))
    else:
        default = _find_default_config_file(Path.cwd())
        if default:
            config_data = _load_config_file(default)

    tool_cfg = config_data.get("gradle_lens") if isinstance(config_data, dict) else {}
    if not isinstance(tool_cfg, dict):
        tool_cfg = {}

    urls = tuple(
        _env_list("GRADLE_LENS_REPOSITORIES") or _as_list(tool_cfg.get("repositories")) or [MAVEN_CENTRAL]
    )

    bearer = os.environ.get("GRADLE_LENS_BEARER_TOKEN") or str(tool_cfg.get("bearer_token") or "") or None
    basic_user = os.environ.get("GRADLE_LENS_BASIC_USERNAME") or str(tool_cfg.get("basic_username") or "") or None
    basic_pass = os.environ.get("GRADLE_LENS_BASIC_PASSWORD") or str(tool_cfg.get("basic_password") or "") or None
    auth = None
    if bearer or (basic_user is not None and basic_pass is not None):
        auth = RepositoryAuth(bearer_token=bearer, basic_username=basic_user, basic_password=basic_pass)

    settings = RepositorySettings(
        urls=urls,
        timeout_s=float(tool_cfg.get("timeout_s") or 10.0),
        retries=int(tool_cfg.get("retries") if "retries" in tool_cfg else 2),
        auth=auth,
    )

    revision = parse_revision(os.environ.get("GRADLE_LENS_REVISION") or str(tool_cfg.get("revision") or "milestone"))
    channel = parse_release_channel(str(tool_cfg.get("gradle_release_channel") or ReleaseChannel.RELEASE_CANDIDATE.value))
    output_dir = os.environ.get("GRADLE_LENS_OUTPUT_DIR") or str(tool_cfg.get("output_dir") or DEFAULT_OUTPUT_DIR)

    candidate_filter = CandidateFilter(
        reject_patterns=parse_reject_patterns(
            _env_list("GRADLE_LENS_REJECT_VERSIONS") or _as_list(tool_cfg.get("reject_versions"))
        ),
        reject_unstable=bool(tool_cfg.get("reject_unstable") or False),
    )

    output_formatter = tool_cfg.get("output_formatter")
    if isinstance(output_formatter, list):
        output_formatter = ",".join(str(v) for v in output_formatter)
    if output_formatter is None:
        output_formatter = DEFAULT_OUTPUT_FORMATTER

    return AppConfig(
        repositories=settings,
        revision=revision,
        gradle_release_channel=channel,
        output_formatter=str(output_formatter),
        output_dir=output_dir,
        report_file_name=str(tool_cfg.get("report_file_name") or DEFAULT_REPORT_FILE_NAME),
        check_for_gradle_update=bool(tool_cfg.get("check_for_gradle_update", True)),
        gradle_versions_api_base_url=str(tool_cfg.get("gradle_versions_api_base_url") or DEFAULT_VERSIONS_API),
        offline=bool(tool_cfg.get("offline") or False),
        max_concurrency=int(tool_cfg.get("max_concurrency") or 20),
        cache_ttl_s=int(tool_cfg.get("cache_ttl_s") if "cache_ttl_s" in tool_cfg else 24 * 60 * 60),
        use_cache=bool(tool_cfg.get("use_cache") if "use_cache" in tool_cfg else True),
        refresh=bool(tool_cfg.get("refresh") or False),
        exclude=tuple(_as_list(tool_cfg.get("exclude"))),
        candidate_filter=candidate_filter,
    )
