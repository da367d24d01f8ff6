"""会话门面与命令行端到端测试。"""

from __future__ import annotations

import io
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import pytest
from PIL import Image, features
from typer.testing import CliRunner

from image_reduct.cli.main import app
from image_reduct.core.config import OutputConfig, SessionConfig
from image_reduct.core.exceptions import ImageReductError, InvalidConfigurationError, OutputWriteError
from image_reduct.core.formats import AVIF, WEBP
from image_reduct.core.models import STATUS_DONE, STATUS_ERROR, STATUS_PENDING
from image_reduct.core.output_manager import OutputManager
from image_reduct.processing.capabilities import CapabilityReport
from image_reduct.processing.session import BatchSession

requires_webp = pytest.mark.skipif(not features.check("webp"), reason="Pillow 未编译 WebP 支持")

WEBP_ONLY = CapabilityReport(frozenset({"webp"}))


def _make_session() -> BatchSession:
    return BatchSession(WEBP_ONLY, config=SessionConfig(pause_seconds=0), sleep=lambda _: None)


def _write_images(directory: Path) -> None:
    directory.mkdir()
    Image.new("RGB", (120, 80), "orange").save(directory / "sunset.png")
    Image.new("RGB", (64, 64), "blue").save(directory / "sky.jpg")
    (directory / "broken.png").write_text("not an image")
    (directory / "readme.txt").write_text("ignored")


def test_make_options_follows_capabilities() -> None:
    session = _make_session()

    options = session.make_options()
    assert options.target_format is WEBP
    assert options.encoder_quality == pytest.approx(0.9)

    with pytest.raises(InvalidConfigurationError):
        session.make_options(target_format="avif")
    with pytest.raises(InvalidConfigurationError):
        session.make_options(target_format=AVIF)


@requires_webp
def test_session_end_to_end(tmp_path: Path) -> None:
    source_dir = tmp_path / "input"
    _write_images(source_dir)
    session = _make_session()

    items = session.submit_paths([source_dir])
    assert [item.name for item in items] == ["broken.png", "sky.jpg", "sunset.png"]
    assert session.has_eligible()

    session.run(session.make_options(quality=0.75, max_width=60))

    by_name = {item.name: item for item in session.items}
    assert by_name["broken.png"].status == STATUS_ERROR
    assert by_name["broken.png"].error_message.startswith("platform-error")
    assert by_name["sunset.png"].status == STATUS_DONE
    assert (by_name["sunset.png"].output.width, by_name["sunset.png"].output.height) == (60, 40)
    assert session.stats().completed == 2
    assert session.has_eligible()

    manager = OutputManager(OutputConfig(output_dir=tmp_path / "out"))
    decision = session.export_item(by_name["sunset.png"].id, manager)
    assert decision.destination == (tmp_path / "out" / "sunset.webp").resolve()
    with Image.open(decision.destination) as img:
        assert img.format == "WEBP"

    with pytest.raises(ImageReductError):
        session.export_item(by_name["broken.png"].id, manager)

    archive = session.export_archive(manager, now=datetime(2025, 1, 2, 3, 4, tzinfo=timezone.utc))
    assert archive.destination.name == "imagereduct_202501020304.zip"
    with zipfile.ZipFile(archive.destination) as bundle:
        assert bundle.namelist() == ["sky.webp", "sunset.webp"]


@requires_webp
def test_remove_reset_and_clear(tmp_path: Path) -> None:
    source_dir = tmp_path / "input"
    _write_images(source_dir)
    session = _make_session()
    session.submit_paths([source_dir])
    broken = session.items[0]

    assert session.remove(broken.id)
    assert broken.preview.released
    session.run()
    assert not session.has_eligible()

    done = session.items[0]
    pending = session.reset(done.id)
    assert pending.status == STATUS_PENDING
    assert session.has_eligible()

    previews = [item.preview for item in session.items]
    assert session.clear() == 2
    assert all(preview.released for preview in previews)
    with pytest.raises(ImageReductError):
        session.build_archive()


def test_build_archive_requires_done_items() -> None:
    session = _make_session()

    with pytest.raises(ImageReductError):
        session.build_archive()


@requires_webp
def test_cli_convert_writes_files_and_zip(tmp_path: Path) -> None:
    source_dir = tmp_path / "input"
    _write_images(source_dir)
    output_dir = tmp_path / "out"

    result = CliRunner().invoke(
        app,
        ["convert", str(source_dir), "--output", str(output_dir), "--format", "webp", "--save", "both"],
    )

    assert result.exit_code == 0, result.output
    assert (output_dir / "sunset.webp").exists()
    assert (output_dir / "sky.webp").exists()
    archives = list(output_dir.glob("imagereduct_*.zip"))
    assert len(archives) == 1
    with zipfile.ZipFile(archives[0]) as bundle:
        assert sorted(bundle.namelist()) == ["sky.webp", "sunset.webp"]
        with Image.open(io.BytesIO(bundle.read("sky.webp"))) as img:
            assert img.size == (64, 64)


@requires_webp
def test_cli_convert_reports_write_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source_dir = tmp_path / "input"
    _write_images(source_dir)

    def failing_save(self, filename, data):
        raise OutputWriteError(f"写入文件失败: {filename}")

    monkeypatch.setattr(OutputManager, "save_bytes", failing_save)

    result = CliRunner().invoke(
        app,
        ["convert", str(source_dir), "--output", str(tmp_path / "out"), "--format", "webp", "--save", "files"],
    )

    assert result.exit_code == 1
    assert not isinstance(result.exception, OutputWriteError)


def test_cli_rejects_unknown_format(tmp_path: Path) -> None:
    source_dir = tmp_path / "input"
    source_dir.mkdir()

    result = CliRunner().invoke(app, ["convert", str(source_dir), "--format", "gif"])

    assert result.exit_code != 0


def test_cli_probe_lists_formats() -> None:
    result = CliRunner().invoke(app, ["probe"])

    assert result.exit_code == 0
    assert "webp" in result.output
    assert "avif" in result.output
