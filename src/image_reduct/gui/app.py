"""Tkinter 图形界面实现。"""

from __future__ import annotations

import logging
import queue
import threading
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from typing import Optional

from PIL import ImageTk

from image_reduct.core.config import BatchOptions, OutputConfig
from image_reduct.core.exceptions import ImageReductError, InvalidConfigurationError
from image_reduct.core.formats import TARGET_FORMATS
from image_reduct.core.models import STATUS_DONE, STATUS_PROCESSING, Item
from image_reduct.core.output_manager import OutputManager
from image_reduct.core.progress import ProgressUpdate
from image_reduct.core.scanner import IMAGE_EXTENSIONS
from image_reduct.processing.session import BatchSession
from image_reduct.utils.formatting import format_percent, format_size
from image_reduct.utils.logging import setup_logging

LOGGER = logging.getLogger(__name__)

STATUS_LABELS = {
    "pending": "待处理",
    "processing": "处理中",
    "done": "完成",
    "error": "失败",
}


class TextWidgetHandler(logging.Handler):
    """Logging handler that writes records into a Tk Text widget."""

    def __init__(self, widget: tk.Text) -> None:
        super().__init__()
        self._widget = widget

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401 - standard logging handler signature
        message = self.format(record)
        # Schedule UI update on main thread
        self._widget.after(0, self._write, message)

    def _write(self, message: str) -> None:
        if not self._widget.winfo_exists():
            return
        self._widget.configure(state=tk.NORMAL)
        self._widget.insert(tk.END, message + "\n")
        self._widget.configure(state=tk.DISABLED)
        self._widget.see(tk.END)


def describe_item(item: Item) -> str:
    """列表中单行展示的文字。"""

    parts = [f"[{STATUS_LABELS.get(item.status, item.status)}]", item.name, format_size(item.original_size)]
    if item.output is not None:
        parts.append(f"-> {format_size(item.output.compressed_size)} (-{format_percent(item.output.savings)})")
    elif item.error_message:
        parts.append(item.error_message)
    return "  ".join(parts)


class ImageReductApp(tk.Tk):
    """Tkinter 主窗口。"""

    def __init__(self, session: Optional[BatchSession] = None) -> None:
        super().__init__()
        self.title("Image Reduct")
        self.geometry("960x640")
        setup_logging()

        self.session = session or BatchSession.start()
        self.default_dir = Path.home()
        self._worker_thread: Optional[threading.Thread] = None
        self._event_queue: queue.Queue = queue.Queue()
        self._row_ids: list[str] = []
        self._preview_photo: Optional[ImageTk.PhotoImage] = None

        self._build_ui()

        self._log_handler = TextWidgetHandler(self.log_text)
        self._log_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
        logging.getLogger("image_reduct").addHandler(self._log_handler)

        self._refresh_items()
        self.after(200, self._poll_queue)

    # ---------------------- UI 构建 ---------------------- #

    def _build_ui(self) -> None:
        container = ttk.Frame(self, padding=12)
        container.pack(fill=tk.BOTH, expand=True)

        left = ttk.Frame(container)
        left.pack(side=tk.LEFT, fill=tk.Y, padx=(0, 12))
        right = ttk.Frame(container)
        right.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)

        self._build_settings_section(left)
        self._build_output_section(left)
        self._build_preview_section(left)
        self._build_items_section(right)
        self._build_progress_section(right)

    def _build_settings_section(self, parent: tk.Widget) -> None:
        frame = ttk.LabelFrame(parent, text="压缩设置", padding=8)
        frame.pack(fill=tk.X)

        capabilities = self.session.capabilities
        self.format_var = tk.StringVar(value=capabilities.default_format.key)
        ttk.Label(frame, text="格式:").grid(row=0, column=0, sticky=tk.W)
        for column, fmt in enumerate(TARGET_FORMATS.values(), start=1):
            ttk.Radiobutton(
                frame,
                text=fmt.key.upper(),
                value=fmt.key,
                variable=self.format_var,
                state=tk.NORMAL if capabilities.supports(fmt) else tk.DISABLED,
            ).grid(row=0, column=column, sticky=tk.W)
        unsupported = [fmt.key.upper() for fmt in TARGET_FORMATS.values() if not capabilities.supports(fmt)]
        if unsupported:
            ttk.Label(frame, text=f"当前环境不支持 {', '.join(unsupported)} 编码").grid(
                row=1, column=0, columnspan=3, sticky=tk.W
            )

        self.quality_var = tk.DoubleVar(value=1.0)
        self.quality_label_var = tk.StringVar(value="100%")
        ttk.Label(frame, text="质量:").grid(row=2, column=0, sticky=tk.W, pady=(6, 0))
        ttk.Scale(
            frame,
            from_=0.0,
            to=1.0,
            variable=self.quality_var,
            command=self._on_quality_changed,
        ).grid(row=2, column=1, columnspan=2, sticky=tk.EW, pady=(6, 0))
        ttk.Label(frame, textvariable=self.quality_label_var, width=5).grid(row=2, column=3, pady=(6, 0))

        self.max_width_var = tk.StringVar()
        self.max_height_var = tk.StringVar()
        ttk.Label(frame, text="最大宽度:").grid(row=3, column=0, sticky=tk.W, pady=(6, 0))
        ttk.Entry(frame, textvariable=self.max_width_var, width=8).grid(row=3, column=1, sticky=tk.W, pady=(6, 0))
        ttk.Label(frame, text="最大高度:").grid(row=4, column=0, sticky=tk.W)
        ttk.Entry(frame, textvariable=self.max_height_var, width=8).grid(row=4, column=1, sticky=tk.W)

    def _build_output_section(self, parent: tk.Widget) -> None:
        frame = ttk.LabelFrame(parent, text="输出配置", padding=8)
        frame.pack(fill=tk.X, pady=8)

        ttk.Label(frame, text="输出目录:").grid(row=0, column=0, sticky=tk.W)
        self.output_var = tk.StringVar(value=str(self.default_dir))
        ttk.Entry(frame, textvariable=self.output_var, width=28).grid(row=0, column=1, sticky=tk.EW, padx=4)
        ttk.Button(frame, text="选择", command=self._select_output).grid(row=0, column=2)

        ttk.Label(frame, text="冲突策略:").grid(row=1, column=0, sticky=tk.W, pady=4)
        self.conflict_var = tk.StringVar(value="rename")
        ttk.Combobox(
            frame, textvariable=self.conflict_var, values=("rename", "overwrite", "skip"), state="readonly", width=10
        ).grid(row=1, column=1, sticky=tk.W)

    def _build_preview_section(self, parent: tk.Widget) -> None:
        frame = ttk.LabelFrame(parent, text="预览", padding=8)
        frame.pack(fill=tk.BOTH, expand=True)
        self.preview_label = ttk.Label(frame, text="未选择图片")
        self.preview_label.pack(fill=tk.BOTH, expand=True)

    def _build_items_section(self, parent: tk.Widget) -> None:
        frame = ttk.LabelFrame(parent, text="图片列表", padding=8)
        frame.pack(fill=tk.BOTH, expand=True)

        self.stats_var = tk.StringVar(value="")
        ttk.Label(frame, textvariable=self.stats_var).pack(anchor=tk.W)

        self.item_listbox = tk.Listbox(frame, height=12, selectmode=tk.EXTENDED)
        self.item_listbox.pack(fill=tk.BOTH, expand=True, pady=4)
        self.item_listbox.bind("<<ListboxSelect>>", self._on_selection_changed)

        btn_frame = ttk.Frame(frame)
        btn_frame.pack(fill=tk.X)
        self.add_files_button = ttk.Button(btn_frame, text="添加图片", command=self._add_files)
        self.add_files_button.pack(side=tk.LEFT)
        self.add_dir_button = ttk.Button(btn_frame, text="添加目录", command=self._add_directory)
        self.add_dir_button.pack(side=tk.LEFT, padx=(4, 0))
        ttk.Button(btn_frame, text="移除选中", command=self._remove_selected).pack(side=tk.LEFT, padx=(4, 0))
        ttk.Button(btn_frame, text="重置选中", command=self._reset_selected).pack(side=tk.LEFT, padx=(4, 0))
        self.clear_button = ttk.Button(btn_frame, text="全部清空", command=self._clear_all)
        self.clear_button.pack(side=tk.LEFT, padx=(4, 0))

        self.convert_button = ttk.Button(btn_frame, text="全部转换", command=self._start_processing)
        self.convert_button.pack(side=tk.RIGHT)
        self.zip_button = ttk.Button(btn_frame, text="下载 ZIP", command=self._download_all)
        self.zip_button.pack(side=tk.RIGHT, padx=(0, 4))
        ttk.Button(btn_frame, text="下载选中", command=self._download_selected).pack(side=tk.RIGHT, padx=(0, 4))

    def _build_progress_section(self, parent: tk.Widget) -> None:
        frame = ttk.LabelFrame(parent, text="执行进度", padding=8)
        frame.pack(fill=tk.BOTH, expand=True, pady=(8, 0))

        self.progress_var = tk.DoubleVar(value=0.0)
        ttk.Progressbar(frame, variable=self.progress_var, maximum=100).pack(fill=tk.X, padx=4, pady=4)

        self.log_text = tk.Text(frame, height=8, state=tk.DISABLED)
        self.log_text.pack(fill=tk.BOTH, expand=True, padx=4)

    # ---------------------- 事件处理 ---------------------- #

    def _on_quality_changed(self, _value: str) -> None:
        self.quality_label_var.set(format_percent(self._snapped_quality()))

    def _snapped_quality(self) -> float:
        # 与滑块步长 0.05 对齐
        return min(1.0, max(0.0, round(self.quality_var.get() * 20) / 20))

    def _add_files(self) -> None:
        patterns = " ".join(f"*{ext}" for ext in sorted(IMAGE_EXTENSIONS))
        filenames = filedialog.askopenfilenames(
            title="选择图片", filetypes=[("图像文件", patterns)], initialdir=str(self.default_dir)
        )
        if not filenames:
            return
        paths = [Path(name) for name in filenames]
        self.default_dir = paths[0].parent
        self.session.submit_paths(paths)
        self._refresh_items()

    def _add_directory(self) -> None:
        path = filedialog.askdirectory(title="选择图片目录", initialdir=str(self.default_dir))
        if not path:
            return
        self.default_dir = Path(path)
        self.session.submit_paths([Path(path)])
        self._refresh_items()

    def _selected_items(self) -> list[Item]:
        selected: list[Item] = []
        for index in self.item_listbox.curselection():
            item = self.session.store.get(self._row_ids[index])
            if item is not None:
                selected.append(item)
        return selected

    def _remove_selected(self) -> None:
        for item in self._selected_items():
            if item.status == STATUS_PROCESSING:
                continue
            self.session.remove(item.id)
        self._refresh_items()

    def _reset_selected(self) -> None:
        if self._is_running():
            return
        for item in self._selected_items():
            try:
                self.session.reset(item.id)
            except ImageReductError as exc:
                LOGGER.info("%s", exc)
        self._refresh_items()

    def _clear_all(self) -> None:
        if self._is_running():
            messagebox.showinfo("提示", "任务正在执行中，请稍候。")
            return
        self.session.clear()
        self._refresh_items()

    def _select_output(self) -> None:
        path = filedialog.askdirectory(title="选择输出目录", initialdir=str(self.default_dir))
        if path:
            self.output_var.set(str(Path(path).resolve()))

    def _on_selection_changed(self, _event: tk.Event) -> None:
        selection = self._selected_items()
        if not selection:
            return
        thumbnail = selection[0].preview.thumbnail()
        if thumbnail is None:
            self._preview_photo = None
            self.preview_label.configure(image="", text="无法预览")
            return
        self._preview_photo = ImageTk.PhotoImage(thumbnail)
        self.preview_label.configure(image=self._preview_photo, text="")

    def _build_options(self) -> BatchOptions:
        return self.session.make_options(
            quality=self._snapped_quality(),
            target_format=self.format_var.get(),
            max_width=self._parse_bound(self.max_width_var.get(), "最大宽度"),
            max_height=self._parse_bound(self.max_height_var.get(), "最大高度"),
        )

    @staticmethod
    def _parse_bound(raw: str, label: str) -> Optional[int]:
        value = raw.strip()
        if not value:
            return None
        try:
            return int(value)
        except ValueError as exc:
            raise InvalidConfigurationError(f"{label}必须为正整数") from exc

    def _output_manager(self) -> OutputManager:
        return OutputManager(
            OutputConfig(output_dir=Path(self.output_var.get()).expanduser(), conflict_strategy=self.conflict_var.get())
        )

    def _is_running(self) -> bool:
        return self._worker_thread is not None and self._worker_thread.is_alive()

    def _start_processing(self) -> None:
        if self._is_running():
            messagebox.showinfo("提示", "任务正在执行中，请稍候。")
            return
        if not self.session.has_eligible():
            messagebox.showwarning("提示", "没有需要转换的图片。")
            return

        try:
            options = self._build_options()
        except InvalidConfigurationError as exc:
            messagebox.showerror("配置错误", str(exc))
            return

        self.progress_var.set(0)
        self._set_running(True)
        self._worker_thread = threading.Thread(target=self._run_pipeline_thread, args=(options,), daemon=True)
        self._worker_thread.start()

    def _run_pipeline_thread(self, options: BatchOptions) -> None:
        def progress_callback(update: ProgressUpdate) -> None:
            self._event_queue.put(("progress", update))

        self.session.scheduler.progress_callback = progress_callback
        try:
            self.session.run(options)
            self._event_queue.put(("done", None))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("批处理异常")
            self._event_queue.put(("error", str(exc)))

    def _download_selected(self) -> None:
        try:
            manager = self._output_manager()
            for item in self._selected_items():
                if item.status != STATUS_DONE:
                    continue
                decision = self.session.export_item(item.id, manager)
                self._append_log(f"已保存 {decision.destination}")
        except ImageReductError as exc:
            messagebox.showerror("保存失败", str(exc))

    def _download_all(self) -> None:
        if self.session.stats().completed == 0:
            messagebox.showinfo("提示", "还没有完成转换的图片。")
            return
        try:
            decision = self.session.export_archive(self._output_manager())
        except ImageReductError as exc:
            messagebox.showerror("打包失败", str(exc))
            return
        self._append_log(f"ZIP 已保存：{decision.destination}")

    def _poll_queue(self) -> None:
        try:
            while True:
                kind, payload = self._event_queue.get_nowait()
                if kind == "progress":
                    self._handle_progress(payload)
                elif kind == "done":
                    self._handle_done()
                elif kind == "error":
                    self._handle_error(payload)
        except queue.Empty:
            pass
        finally:
            self.after(200, self._poll_queue)

    def _handle_progress(self, update: ProgressUpdate) -> None:
        if update.total:
            self.progress_var.set((update.completed / update.total) * 100)
        self._refresh_items()

    def _handle_done(self) -> None:
        self._set_running(False)
        self._refresh_items()
        stats = self.session.stats()
        self._append_log(f"任务完成：成功 {stats.completed} 张，失败 {stats.failed} 张。")

    def _handle_error(self, message: str) -> None:
        self._set_running(False)
        self._append_log(f"任务异常：{message}")
        messagebox.showerror("错误", message)

    def _set_running(self, running: bool) -> None:
        state = tk.DISABLED if running else tk.NORMAL
        for button in (self.convert_button, self.clear_button, self.add_files_button, self.add_dir_button):
            button.configure(state=state)
        self.convert_button.configure(text="处理中..." if running else "全部转换")

    def _refresh_items(self) -> None:
        items = self.session.items
        selected_ids = {self._row_ids[i] for i in self.item_listbox.curselection() if i < len(self._row_ids)}
        self.item_listbox.delete(0, tk.END)
        self._row_ids = [item.id for item in items]
        for index, item in enumerate(items):
            self.item_listbox.insert(tk.END, describe_item(item))
            if item.id in selected_ids:
                self.item_listbox.selection_set(index)

        stats = self.session.stats()
        if stats.completed:
            self.stats_var.set(
                f"图片 {len(items)} 张，已节省 {format_size(stats.saved_bytes)}（{format_percent(stats.savings)}）"
            )
        else:
            self.stats_var.set(f"图片 {len(items)} 张")

    def _append_log(self, text: str) -> None:
        self.log_text.configure(state=tk.NORMAL)
        self.log_text.insert(tk.END, text + "\n")
        self.log_text.configure(state=tk.DISABLED)
        self.log_text.see(tk.END)


def run_gui() -> None:
    """启动 GUI 应用。"""

    app = ImageReductApp()
    app.mainloop()

if __name__ == "__main__":
    run_gui()
