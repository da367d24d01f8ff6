"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from image_reduct.core.config import OutputConfig, SessionConfig
from image_reduct.core.exceptions import ImageReductError, InvalidConfigurationError
from image_reduct.core.formats import TARGET_FORMATS
from image_reduct.core.models import STATUS_DONE, STATUS_ERROR
from image_reduct.core.output_manager import OutputManager
from image_reduct.core.progress import ProgressUpdate
from image_reduct.processing.capabilities import CapabilityProbe, probe_capabilities
from image_reduct.processing.session import BatchSession
from image_reduct.utils.formatting import format_percent, format_size
from image_reduct.utils.logging import setup_logging

app = typer.Typer(help="本地批量图片压缩工具：转换为 WebP / AVIF 并打包下载。")
console = Console()

SAVE_MODES = ("files", "zip", "both")


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("转换图片", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.message and update.item_status in (STATUS_DONE, STATUS_ERROR):
            progress.log(update.message)

    return callback


def _render_summary(session: BatchSession) -> Table:
    table = Table(title="转换结果")
    table.add_column("文件")
    table.add_column("状态")
    table.add_column("原始大小", justify="right")
    table.add_column("压缩后", justify="right")
    table.add_column("节省", justify="right")
    table.add_column("尺寸", justify="right")

    for item in session.items:
        if item.output is not None:
            output = item.output
            dims = f"{output.width}x{output.height}" if output.width and output.height else "-"
            table.add_row(
                item.name,
                "[green]完成[/green]",
                format_size(item.original_size),
                format_size(output.compressed_size),
                f"-{format_percent(output.savings)}",
                dims,
            )
        else:
            table.add_row(
                item.name,
                f"[red]{item.error_message or item.status}[/red]",
                format_size(item.original_size),
                "-",
                "-",
                "-",
            )
    return table


@app.command("convert")
def convert_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件或目录，可指定多个"),
    output: Path = typer.Option(Path("."), "--output", "-o", help="输出目录"),
    target_format: Optional[str] = typer.Option(
        None, "--format", "-f", help="目标格式 webp / avif，默认按环境能力选择"
    ),
    quality: float = typer.Option(1.0, "--quality", "-q", min=0.0, max=1.0, help="质量 0.0~1.0，1.0 对应编码质量 90"),
    max_width: Optional[int] = typer.Option(None, "--max-width", min=1, help="最大宽度"),
    max_height: Optional[int] = typer.Option(None, "--max-height", min=1, help="最大高度"),
    save_mode: str = typer.Option("files", "--save", help="保存方式 files / zip / both"),
    conflict_strategy: str = typer.Option("rename", "--on-conflict", help="文件名冲突策略 overwrite / skip / rename"),
    allow_recursive: bool = typer.Option(True, "--recursive/--no-recursive", help="是否递归扫描目录"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """转换图片并保存结果。"""

    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    if save_mode not in SAVE_MODES:
        raise typer.BadParameter(f"保存方式必须为 {' / '.join(SAVE_MODES)}")

    session = BatchSession.start(SessionConfig(allow_recursive=allow_recursive))
    try:
        options = session.make_options(
            quality=quality,
            target_format=target_format,
            max_width=max_width,
            max_height=max_height,
        )
        output_manager = OutputManager(
            OutputConfig(output_dir=output.expanduser().resolve(), conflict_strategy=conflict_strategy)
        )
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    items = session.submit_paths(source)
    if not items:
        typer.echo("没有找到可处理的图片。")
        raise typer.Exit(code=1)

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )
    session.scheduler.progress_callback = _build_progress_callback(progress)
    with progress:
        session.run(options)

    console.print(_render_summary(session))

    stats = session.stats()
    if stats.completed == 0:
        typer.echo(f"处理完成：成功 0 张，失败 {stats.failed} 张。")
        return

    if save_mode in ("files", "both"):
        for item in session.items:
            if item.status != STATUS_DONE:
                continue
            try:
                decision = session.export_item(item.id, output_manager)
            except ImageReductError as exc:
                typer.echo(f"保存失败：{exc}", err=True)
                raise typer.Exit(code=1) from exc
            if decision.note:
                typer.echo(decision.note)
    if save_mode in ("zip", "both"):
        try:
            decision = session.export_archive(output_manager)
        except ImageReductError as exc:
            typer.echo(f"打包失败：{exc}", err=True)
            raise typer.Exit(code=1) from exc
        typer.echo(f"ZIP 文件：{decision.destination}")

    typer.echo(
        f"处理完成：成功 {stats.completed} 张，失败 {stats.failed} 张，"
        f"共节省 {format_size(stats.saved_bytes)}（{format_percent(stats.savings)}）。"
    )
    typer.echo(f"输出目录：{output_manager.output_dir}")


@app.command("probe")
def probe_cli() -> None:
    """显示当前环境支持编码的格式。"""

    setup_logging(logging.WARNING)
    report = probe_capabilities(CapabilityProbe())

    table = Table(title="编码能力")
    table.add_column("格式")
    table.add_column("MIME")
    table.add_column("支持")
    for fmt in TARGET_FORMATS.values():
        table.add_row(fmt.key, fmt.mime, "是" if report.supports(fmt) else "否")
    console.print(table)
    typer.echo(f"默认格式：{report.default_format.key}")


if __name__ == "__main__":
    app()
