from __future__ import annotations

from pathlib import Path

from PySide6.QtCore import QObject, Qt, QThread, Signal, QSettings
from PySide6.QtGui import QAction
from PySide6.QtWidgets import (
    QApplication,
    QCheckBox,
    QFileDialog,
    QFormLayout,
    QFrame,
    QGridLayout,
    QGroupBox,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QMainWindow,
    QPlainTextEdit,
    QProgressBar,
    QPushButton,
    QSpinBox,
    QVBoxLayout,
    QWidget,
)

from .codec import get_engine_status
from .config import ImageConfig, RunOptions, fast_config, load_config, merge_config
from .errors import ConfigError
from .optimize import optimize
from .report import format_issues, format_summary
from .state import RunContext


class OptimizeWorker(QObject):
    progress = Signal(int, str)
    failed = Signal(str)
    finished = Signal(object)

    def __init__(self, ctx: RunContext) -> None:
        super().__init__()
        self.ctx = ctx

    def run(self) -> None:
        try:
            optimize(self.ctx, self.on_file)
        except Exception as exc:
            self.failed.emit(str(exc) or repr(exc))
        finally:
            self.finished.emit(self.ctx)

    def on_file(self, index: int, total: int, name: str) -> None:
        percent = int((index - 1) * 100 / total)
        self.progress.emit(percent, name)


class DropArea(QFrame):
    dropped = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.setAcceptDrops(True)
        self.setFrameShape(QFrame.NoFrame)
        self.setMinimumHeight(110)
        self.setStyleSheet(
            "QFrame { border: 1px solid #d0d0d0; border-radius: 8px; background: #fafafa; }"
        )
        layout = QVBoxLayout()
        label = QLabel("Drop a built site folder here to optimise it")
        label.setAlignment(Qt.AlignCenter)
        layout.addWidget(label)
        self.setLayout(layout)

    def dragEnterEvent(self, event) -> None:
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
        else:
            event.ignore()

    def dropEvent(self, event) -> None:
        for url in event.mimeData().urls():
            path = Path(url.toLocalFile()) if url.toLocalFile() else None
            if path is not None and path.is_dir():
                self.dropped.emit(path)
                return


class MainWindow(QMainWindow):

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("Imgpack")
        self.resize(900, 600)
        self.thread: QThread | None = None
        self.worker: OptimizeWorker | None = None
        self.settings = QSettings("Imgpack", "Imgpack")
        self.drop_area = DropArea()
        self.site_line = QLineEdit()
        self.config_line = QLineEdit()
        self.exclude_line = QLineEdit()
        self.nowrite_checkbox = QCheckBox("Dry run (write nothing)")
        self.fast_checkbox = QCheckBox("Fast mode")
        self.embed_spin = QSpinBox()
        self.srcset_spin = QSpinBox()
        self.start_button = QPushButton("Optimise")
        self.progress_bar = QProgressBar()
        self.log_area = QPlainTextEdit()
        self.spin_overrides: dict[str, int] = {}
        self.setup_ui()

    def setup_ui(self) -> None:
        central = QWidget()
        layout = QVBoxLayout()
        layout.addWidget(self.drop_area)
        layout.addWidget(self.build_path_group())
        layout.addWidget(self.build_options_group())
        layout.addWidget(self.build_action_group())
        layout.addWidget(self.progress_bar)
        layout.addWidget(self.log_area)
        central.setLayout(layout)
        self.setCentralWidget(central)
        self.log_area.setReadOnly(True)
        self.progress_bar.setValue(0)
        defaults = ImageConfig()
        self.embed_spin.setRange(0, 1_000_000)
        self.embed_spin.setSuffix(" B")
        self.embed_spin.setValue(defaults.embed_size)
        self.srcset_spin.setRange(0, 100_000)
        self.srcset_spin.setSuffix(" px")
        self.srcset_spin.setValue(defaults.srcset_min_width)
        self.exclude_line.setPlaceholderText("e.g. blog/**")
        self.load_settings()
        self.fast_checkbox.toggled.connect(self.on_fast_toggled)
        self.embed_spin.valueChanged.connect(lambda value: self.on_spin_edited("embed_size", value))
        self.srcset_spin.valueChanged.connect(lambda value: self.on_spin_edited("srcset_min_width", value))
        self.start_button.clicked.connect(self.on_start)
        self.drop_area.dropped.connect(self.on_drop_dir)
        exit_action = QAction("Quit", self)
        exit_action.triggered.connect(self.close)
        self.menuBar().addAction(exit_action)

    def build_path_group(self) -> QGroupBox:
        group = QGroupBox("Paths")
        layout = QGridLayout()
        site_button = QPushButton("Choose site folder")
        config_button = QPushButton("Choose config file")
        site_button.clicked.connect(self.pick_site_dir)
        config_button.clicked.connect(self.pick_config_file)
        layout.addWidget(QLabel("Site folder"), 0, 0)
        layout.addWidget(self.site_line, 0, 1)
        layout.addWidget(site_button, 0, 2)
        layout.addWidget(QLabel("Config file"), 1, 0)
        layout.addWidget(self.config_line, 1, 1)
        layout.addWidget(config_button, 1, 2)
        layout.addWidget(QLabel("Exclude"), 2, 0)
        layout.addWidget(self.exclude_line, 2, 1)
        group.setLayout(layout)
        return group

    def build_options_group(self) -> QGroupBox:
        group = QGroupBox("Options")
        layout = QFormLayout()
        layout.addRow(self.nowrite_checkbox)
        layout.addRow(self.fast_checkbox)
        layout.addRow("Embed images up to", self.embed_spin)
        layout.addRow("Smallest srcset width", self.srcset_spin)
        group.setLayout(layout)
        return group

    def build_action_group(self) -> QWidget:
        group = QWidget()
        layout = QHBoxLayout()
        layout.addWidget(self.start_button)
        group.setLayout(layout)
        return group

    def pick_site_dir(self) -> None:
        default_dir = self.site_line.text().strip() or self.settings.value("site_dir", "")
        path = QFileDialog.getExistingDirectory(self, "Choose site folder", default_dir)
        if path:
            self.site_line.setText(path)
            self.settings.setValue("site_dir", path)

    def pick_config_file(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Choose config file", "", "JSON (*.json)")
        if path:
            self.config_line.setText(path)
            self.sync_spins_from_config()

    def on_fast_toggled(self, checked: bool) -> None:
        self.embed_spin.setEnabled(not checked)
        self.srcset_spin.setEnabled(not checked)

    def on_spin_edited(self, key: str, value: int) -> None:
        self.spin_overrides[key] = value

    def sync_spins_from_config(self) -> None:
        """Show the chosen config file's values; later edits override them again."""
        config_text = self.config_line.text().strip()
        try:
            config = load_config(Path(config_text)) if config_text else ImageConfig()
        except ConfigError as exc:
            self.append_log(str(exc))
            return
        for spin, value in (
            (self.embed_spin, config.embed_size),
            (self.srcset_spin, config.srcset_min_width),
        ):
            spin.blockSignals(True)
            spin.setValue(value)
            spin.blockSignals(False)
        self.spin_overrides.clear()

    def on_drop_dir(self, path: Path) -> None:
        if self.thread is not None:
            return
        self.site_line.setText(str(path))
        self.on_start()

    def on_start(self) -> None:
        if self.thread is not None:
            return
        site_text = self.site_line.text().strip()
        root = Path(site_text) if site_text else None
        if root is None or not root.is_dir():
            self.append_log("Choose an existing site folder")
            return
        config = self.build_config()
        if config is None:
            return
        self.settings.setValue("site_dir", str(root))
        options = RunOptions(
            root=root.resolve(),
            nowrite=self.nowrite_checkbox.isChecked(),
            exclude=self.exclude_line.text().strip() or None,
        )
        self.start_optimize(RunContext(options, config))

    def build_config(self) -> ImageConfig | None:
        config_text = self.config_line.text().strip()
        try:
            config = load_config(Path(config_text)) if config_text else ImageConfig()
        except ConfigError as exc:
            self.append_log(str(exc))
            return None
        if self.fast_checkbox.isChecked():
            return fast_config(config)
        return merge_config(config, self.spin_overrides)

    def start_optimize(self, ctx: RunContext) -> None:
        self.start_button.setEnabled(False)
        self.progress_bar.setValue(0)
        self.log_area.clear()
        self.append_log(self.format_engine_status(ctx.config))
        self.append_log(f"Optimising {ctx.root}{' (dry run)' if ctx.nowrite else ''}")
        self.thread = QThread()
        self.worker = OptimizeWorker(ctx)
        self.worker.moveToThread(self.thread)
        self.thread.started.connect(self.worker.run)
        self.worker.progress.connect(self.on_progress)
        self.worker.failed.connect(self.on_failed)
        self.worker.finished.connect(self.on_finished)
        self.worker.finished.connect(self.thread.quit)
        self.thread.finished.connect(self.on_thread_finished)
        self.thread.start()

    def on_progress(self, percent: int, name: str) -> None:
        self.progress_bar.setValue(percent)
        self.append_log(f"▶ {name}")

    def on_failed(self, message: str) -> None:
        self.append_log(f"Run aborted: {message}")

    def on_finished(self, ctx: RunContext) -> None:
        for line in format_summary(ctx):
            self.append_log(line)
        if ctx.issues:
            self.append_log(f"{ctx.issue_count} issue(s)")
            for line in format_issues(ctx):
                self.append_log(line)
        self.progress_bar.setValue(100)

    def on_thread_finished(self) -> None:
        self.start_button.setEnabled(True)
        self.thread = None
        self.worker = None

    def append_log(self, text: str) -> None:
        self.log_area.appendPlainText(text)

    def load_settings(self) -> None:
        site_dir = self.settings.value("site_dir", "")
        if site_dir:
            self.site_line.setText(site_dir)

    def format_engine_status(self, config: ImageConfig) -> str:
        status = get_engine_status(config)
        parts = [f"{key}={value}" for key, value in status.items()]
        return f"Encoders: {', '.join(parts)}"


def main() -> None:
    app = QApplication([])
    window = MainWindow()
    window.show()
    app.exec()
