from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path
import sys

import structlog

from gradle_lens.catalog import DEFAULT_CATALOG, CatalogError, parse_dependency_notation
from gradle_lens.config import (
    AppConfig,
    ConfigError,
    load_config,
    parse_reject_patterns,
    parse_release_channel,
    parse_revision,
)
from gradle_lens.index_client import RepositoryAuth
from gradle_lens.log import setup_logging
from gradle_lens.models import REVISIONS, ReleaseChannel

log = structlog.get_logger("gradle_lens.cli")


def build_parser() -> argparse.ArgumentParser:
    """
    构建 gradle-lens 的命令行参数解析器。
    """
    parser = argparse.ArgumentParser(prog="gradle-lens")
    parser.add_argument(
        "--version",
        action="store_true",
        help="输出版本号并退出",
    )
    parser.add_argument("--config", help="配置文件路径（.toml 或 .yaml）")
    parser.add_argument(
        "--catalog",
        default=str(DEFAULT_CATALOG),
        help=f"版本目录路径（默认：{DEFAULT_CATALOG}）",
    )
    parser.add_argument(
        "--repository",
        action="append",
        default=[],
        help="Maven 仓库 URL（可重复，按顺序查询）",
    )
    parser.add_argument("--bearer-token", help="私有仓库 Bearer Token（谨慎使用）")
    parser.add_argument("--basic-username", help="私有仓库 Basic 用户名（谨慎使用）")
    parser.add_argument("--basic-password", help="私有仓库 Basic 密码（谨慎使用）")
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="排除不检查的依赖，group:artifact 或整个 group（可重复）",
    )
    parser.add_argument("--no-cache", action="store_true", help="禁用本地缓存")
    parser.add_argument("--refresh", action="store_true", help="忽略缓存并强制重新查询")
    parser.add_argument("--cache-ttl", type=int, help="缓存 TTL 秒数（0 表示永不过期）")
    parser.add_argument("--max-concurrency", type=int, help="最大并发请求数")
    parser.add_argument("--offline", action="store_true", help="离线模式：只使用缓存，不访问网络")
    parser.add_argument("--revision", choices=list(REVISIONS), help="最新版本的修订级别（默认 milestone）")
    parser.add_argument(
        "--gradle-release-channel",
        choices=[c.value for c in ReleaseChannel],
        help="Gradle 自身的发布通道（默认 release-candidate）",
    )
    parser.add_argument(
        "--reject-version",
        action="append",
        default=[],
        help="拒绝匹配该正则的候选版本（可重复，不区分大小写）",
    )
    parser.add_argument(
        "--reject-unstable",
        action="store_true",
        help="拒绝非稳定候选版本，除非当前版本本身就不稳定",
    )
    parser.add_argument("--log-level", help="日志级别（覆盖 GRADLE_LENS_LOG_LEVEL）")

    subparsers = parser.add_subparsers(dest="command")

    check = subparsers.add_parser("check", help="检查依赖版本并输出报告")
    check.add_argument(
        "--dependency",
        action="append",
        default=[],
        help="额外检查的依赖 group:artifact[:version]（可重复）",
    )
    check.add_argument("--output-formatter", help="报告文件格式，逗号分隔：text,json,xml,html；空字符串表示不写文件")
    check.add_argument("--output-dir", help="报告目录（默认 build/dependencyUpdates）")
    check.add_argument("--report-file-name", help="报告文件名（不含扩展名，默认 report）")
    check.add_argument("--no-gradle-check", action="store_true", help="不检查 Gradle 自身更新")
    check.add_argument("--gradle-version", help="当前 Gradle 版本（默认读取 gradle-wrapper.properties）")
    check.add_argument("--project-dir", help="项目根目录（默认为版本目录的上两级）")
    check.add_argument("--quiet", action="store_true", help="不在 stdout 输出纯文本报告")

    update = subparsers.add_parser("update", help="按策略更新版本目录中的依赖版本")
    update.add_argument("--report", help="使用已有的 JSON 报告（默认重新检查）")
    update.add_argument("--write", action="store_true", help="写回版本目录（默认仅预览）")
    update.add_argument("--allow-major", action="store_true", help="允许跨主版本升级")
    update.add_argument("--no-minor", action="store_true", help="禁止跨次版本升级")
    update.add_argument("--ignore-group", action="append", default=[], help="不更新的 group（可重复）")
    update.add_argument("--output", help="将变更预览输出到文件（默认 stdout）")

    return parser


def _merge_cli_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """
    将 CLI 参数覆盖合并到 AppConfig。
    """
    repositories = cfg.repositories
    auth: RepositoryAuth | None = repositories.auth
    if args.bearer_token or args.basic_username or args.basic_password:
        auth = RepositoryAuth(
            bearer_token=args.bearer_token,
            basic_username=args.basic_username,
            basic_password=args.basic_password,
        )
    urls = tuple(args.repository) if args.repository else repositories.urls
    repositories = replace(repositories, urls=urls, auth=auth)

    cfg = replace(
        cfg,
        repositories=repositories,
        exclude=tuple([*cfg.exclude, *(args.exclude or [])]),
        use_cache=cfg.use_cache and not bool(args.no_cache),
        refresh=cfg.refresh or bool(args.refresh),
        offline=cfg.offline or bool(args.offline),
        cache_ttl_s=cfg.cache_ttl_s if args.cache_ttl is None else int(args.cache_ttl),
        max_concurrency=cfg.max_concurrency if args.max_concurrency is None else int(args.max_concurrency),
        revision=cfg.revision if args.revision is None else parse_revision(args.revision),
        gradle_release_channel=(
            cfg.gradle_release_channel
            if args.gradle_release_channel is None
            else parse_release_channel(args.gradle_release_channel)
        ),
    )

    candidate_filter = replace(
        cfg.candidate_filter,
        reject_patterns=parse_reject_patterns([*cfg.candidate_filter.reject_patterns, *(args.reject_version or [])]),
        reject_unstable=cfg.candidate_filter.reject_unstable or bool(args.reject_unstable),
    )
    cfg = replace(cfg, candidate_filter=candidate_filter)

    if args.command == "check":
        cfg = replace(
            cfg,
            output_formatter=cfg.output_formatter if args.output_formatter is None else args.output_formatter,
            output_dir=args.output_dir or cfg.output_dir,
            report_file_name=args.report_file_name or cfg.report_file_name,
            check_for_gradle_update=cfg.check_for_gradle_update and not bool(args.no_gradle_check),
        )
    return cfg


def _run_check_command(args: argparse.Namespace, cfg: AppConfig, catalog_path: Path) -> int:
    from gradle_lens.app import run_check
    from gradle_lens.reporter import write_reports

    try:
        extra = [parse_dependency_notation(d) for d in args.dependency]
    except ValueError as exc:
        print(f"gradle-lens: {exc}", file=sys.stderr)
        return 2

    outcome = run_check(
        catalog_path,
        config=cfg,
        extra_dependencies=extra,
        project_dir=Path(args.project_dir) if args.project_dir else None,
        gradle_version=args.gradle_version,
    )
    reports = write_reports(
        outcome.result,
        context=outcome.context,
        output_formatter=cfg.output_formatter,
        output_dir=cfg.output_dir,
        report_file_name=cfg.report_file_name,
        quiet=bool(args.quiet),
    )
    return 1 if reports.failures else 0


def _run_update_command(args: argparse.Namespace, cfg: AppConfig, catalog_path: Path) -> int:
    from gradle_lens.updater import UpdateRules, apply_updates_to_catalog

    if args.report:
        from gradle_lens.formatters import parse_json

        result = parse_json(Path(args.report).read_bytes())
    else:
        from gradle_lens.app import run_check

        result = run_check(catalog_path, config=replace(cfg, check_for_gradle_update=False)).result

    rules = UpdateRules(
        allow_major=bool(args.allow_major),
        allow_minor=not bool(args.no_minor),
        ignored_groups=tuple(args.ignore_group or ()),
    )
    changes = apply_updates_to_catalog(
        catalog_path,
        result,
        rules=rules,
        revision=cfg.revision,
        write=bool(args.write),
    )
    lines = [f"{ch.alias} ({ch.module}) {ch.before} -> {ch.after}" for ch in changes]
    if not lines:
        lines.append("没有可写回的变更。")
    text = "\n".join(lines) + "\n"
    output_path = getattr(args, "output", None)
    if output_path:
        Path(output_path).write_text(text, encoding="utf-8")
    else:
        print(text, end="")
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    gradle-lens 命令行入口。
    """
    args = build_parser().parse_args(argv)

    if args.version:
        from gradle_lens import __version__

        print(__version__)
        return 0

    setup_logging(args.log_level)

    if args.command is None:
        try:
            from gradle_lens.tui import run_tui
        except ImportError:
            print("gradle-lens: TUI 依赖未安装，请使用子命令。", file=sys.stderr)
            return 2
        return run_tui(Path(args.catalog), config_path=args.config)

    try:
        cfg = _merge_cli_overrides(load_config(args.config), args)
    except ConfigError as exc:
        print(f"gradle-lens: 配置错误：{exc}", file=sys.stderr)
        return 2

    catalog_path = Path(args.catalog)

    if args.command == "check":
        try:
            return _run_check_command(args, cfg, catalog_path)
        except CatalogError as exc:
            print(f"gradle-lens: 解析版本目录失败：{exc}", file=sys.stderr)
            return 1

    if args.command == "update":
        try:
            return _run_update_command(args, cfg, catalog_path)
        except (CatalogError, OSError, ValueError) as exc:
            log.debug("cli.update_failed", exc_info=True)
            print(f"gradle-lens: 更新失败：{exc}", file=sys.stderr)
            return 1

    print(f"gradle-lens: 未知子命令 {args.command!r}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
