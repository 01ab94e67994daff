from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.screen import ModalScreen
from textual.widgets import DataTable, Footer, Header, Label, Static, TextArea

from gradle_lens.app import CheckOutcome, check_catalog
from gradle_lens.config import load_config
from gradle_lens.formatters import ReportContext, render_text
from gradle_lens.models import Revision
from gradle_lens.report import Result
from gradle_lens.updater import UpdateRules, apply_updates_to_catalog


@dataclass(frozen=True, slots=True)
class ReportRow:
    """
    表格中的一行（把结果树的各分组摊平）。
    """

    status: str
    module: str
    current: str
    latest: str
    project_url: str
    reason: str


def report_rows(result: Result, *, revision: Revision) -> list[ReportRow]:
    """
    将结果树按 outdated、exceeded、unresolved、undeclared、current 的顺序摊平为行。
    """
    rows: list[ReportRow] = []
    for dep in result.outdated.dependencies:
        available = dep.available.get(revision) or ""
        rows.append(
            ReportRow("outdated", f"{dep.group}:{dep.name}", dep.version or "", available, dep.project_url or "", dep.user_reason or "")
        )
    for dep in result.exceeded.dependencies:
        rows.append(
            ReportRow("exceeded", f"{dep.group}:{dep.name}", dep.version or "", dep.latest, dep.project_url or "", dep.user_reason or "")
        )
    for dep in result.unresolved.dependencies:
        rows.append(ReportRow("unresolved", f"{dep.group}:{dep.name}", dep.version or "", "", dep.project_url or "", dep.reason))
    for dep in result.undeclared.dependencies:
        rows.append(ReportRow("undeclared", f"{dep.group}:{dep.name}", "", "", "", ""))
    for dep in result.current.dependencies:
        rows.append(
            ReportRow("current", f"{dep.group}:{dep.name}", dep.version or "", dep.version or "", dep.project_url or "", dep.user_reason or "")
        )
    return rows


class TextPreview(ModalScreen[bool]):
    """
    用于展示文本并确认的弹窗。
    """

    def __init__(self, title: str, text: str, *, confirm_label: str) -> None:
        super().__init__()
        self._title = title
        self._text = text
        self._confirm_label = confirm_label

    BINDINGS = [
        Binding("escape", "dismiss(False)", "取消"),
        Binding("enter", "dismiss(True)", "确认"),
    ]

    def compose(self) -> ComposeResult:
        yield Header(show_clock=False)
        yield Label(self._title)
        yield TextArea(text=self._text, read_only=True)
        yield Footer()


class GradleLensApp(App[None]):
    """
    gradle-lens 的 TUI 应用。
    """

    CSS = """
    DataTable {
        height: 1fr;
    }
    #details {
        height: 10;
        border: solid $primary;
        padding: 1;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "退出"),
        Binding("r", "refresh", "刷新"),
        Binding("t", "show_report", "文本报告"),
        Binding("u", "update_preview", "更新预览/写回"),
    ]

    def __init__(self, catalog_path: Path, *, config_path: str | None = None) -> None:
        super().__init__()
        self._catalog_path = catalog_path
        self._config_path = config_path
        self._outcome: CheckOutcome | None = None
        self._rows: list[ReportRow] = []

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            yield DataTable(id="table")
        yield Static(id="details")
        yield Footer()

    async def on_mount(self) -> None:
        table = self.query_one("#table", DataTable)
        table.add_columns("状态", "依赖", "当前", "最新")
        self.query_one("#details", Static).update("按 r 刷新；t 查看文本报告；u 预览/写回更新。")
        await self._load_report(refresh=False)

    async def _load_report(self, *, refresh: bool) -> None:
        cfg = replace(load_config(self._config_path), refresh=refresh)
        self.query_one("#details", Static).update("正在检查依赖，请稍候…")
        outcome = await check_catalog(self._catalog_path, config=cfg)
        self._outcome = outcome
        self._rows = report_rows(outcome.result, revision=outcome.context.revision)
        self._render_table()
        self.query_one("#details", Static).update(
            f"完成：共 {outcome.result.count} 个依赖，缓存命中 {outcome.stats.cache_hits}，发起查询 {outcome.stats.fetched}。"
        )

    def _render_table(self) -> None:
        table = self.query_one("#table", DataTable)
        table.clear()
        for row in self._rows:
            table.add_row(row.status, row.module, row.current or "-", row.latest or "-")

    def _selected_row(self) -> ReportRow | None:
        table = self.query_one("#table", DataTable)
        if table.cursor_row is None:
            return None
        row_index = table.cursor_row
        if row_index < 0 or row_index >= len(self._rows):
            return None
        return self._rows[row_index]

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        row = self._selected_row()
        if not row:
            return
        details = [
            f"依赖：{row.module}",
            f"状态：{row.status}",
            f"当前：{row.current or '-'}",
            f"最新：{row.latest or '-'}",
            f"主页：{row.project_url or '-'}",
            f"原因：{row.reason or '-'}",
        ]
        self.query_one("#details", Static).update("\n".join(details))

    async def action_refresh(self) -> None:
        await self._load_report(refresh=True)

    async def action_show_report(self) -> None:
        if self._outcome is None:
            return
        text = render_text(self._outcome.result, context=self._outcome.context).decode("utf-8")
        self.push_screen(TextPreview("文本报告（Enter 关闭）", text, confirm_label="关闭"))

    async def action_update_preview(self) -> None:
        if self._outcome is None:
            return
        outcome = self._outcome
        context: ReportContext = outcome.context
        rules = UpdateRules()
        changes = apply_updates_to_catalog(
            self._catalog_path, outcome.result, rules=rules, revision=context.revision, write=False
        )
        if not changes:
            self.push_screen(TextPreview("更新预览", "没有可写回的变更。\n", confirm_label="关闭"))
            return
        preview = "\n".join(f"{c.alias} ({c.module}) {c.before} -> {c.after}" for c in changes)

        def on_confirm(confirm: bool | None) -> None:
            if not confirm:
                return
            apply_updates_to_catalog(
                self._catalog_path, outcome.result, rules=rules, revision=context.revision, write=True
            )
            self.run_worker(self._load_report(refresh=True), exclusive=True)

        self.push_screen(
            TextPreview("更新预览（Enter 写回 / Esc 取消）", preview + "\n", confirm_label="写回"),
            callback=on_confirm,
        )


def run_tui(catalog_path: Path, *, config_path: str | None = None) -> int:
    """
    运行 TUI（无子命令时的默认入口）。
    """
    app = GradleLensApp(catalog_path, config_path=config_path)
    app.run()
    return 0
