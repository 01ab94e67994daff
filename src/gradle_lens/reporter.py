from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

import structlog
from rich.console import Console

from gradle_lens.formatters import ReportContext, get_reporter, render_text
from gradle_lens.report import Result

log = structlog.get_logger("gradle_lens.reporter")


@dataclass(frozen=True, slots=True)
class ReportOutcome:
    """
    报告输出结果：成功写出的文件与失败的格式。
    """

    written: tuple[Path, ...]
    failures: tuple[tuple[str, str], ...]


def parse_output_formatters(value: str) -> list[str]:
    """
    解析逗号分隔的格式列表，去掉空白项。
    """
    return [name.strip() for name in value.split(",") if name.strip()]


def write_reports(
    result: Result,
    *,
    context: ReportContext,
    output_formatter: str,
    output_dir: str | Path,
    report_file_name: str,
    stdout: TextIO | None = None,
    quiet: bool = False,
) -> ReportOutcome:
    """
    纯文本报告总是写到 stdout（quiet 时跳过）；再按格式列表逐个写文件
    <output_dir>/<report_file_name>.<ext>。单个格式写入失败只记录日志，不影响其他格式。
    """
    out = stdout or sys.stdout
    if not quiet:
        out.write(render_text(result, context=context).decode("utf-8"))
        out.flush()

    names = parse_output_formatters(output_formatter)
    if not names:
        log.info("reporter.skip_file_output", reason="outputFormatter is empty")
        return ReportOutcome(written=(), failures=())

    console = Console(stderr=True)
    directory = Path(output_dir)
    written: list[Path] = []
    failures: list[tuple[str, str]] = []
    for name in names:
        reporter = get_reporter(name)
        path = directory / f"{report_file_name}.{reporter.extension}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(reporter.render(result, context=context))
        except OSError as exc:
            log.error("reporter.write_failed", formatter=name, path=str(path), error=str(exc))
            failures.append((name, str(exc)))
            continue
        written.append(path)
        if not quiet:
            console.print(f"Generated report file {path}", highlight=False)

    return ReportOutcome(written=tuple(written), failures=tuple(failures))
