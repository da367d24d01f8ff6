"""打包、输出命名与写入测试。"""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from image_reduct.core.config import OutputConfig
from image_reduct.core.exceptions import ArchiveError, InvalidConfigurationError
from image_reduct.core.formats import AVIF, WEBP, get_format
from image_reduct.core.models import EncodedOutput, Item, PreviewHandle, SourceFile
from image_reduct.core.output_manager import OutputManager, archive_filename, output_filename
from image_reduct.core.scanner import collect_image_paths
from image_reduct.processing.archive import bundle, collect_entries
from image_reduct.processing.lifecycle import begin, complete, fail
from image_reduct.utils.formatting import format_percent, format_size


def _item(name: str, fmt: str | None, payload: bytes = b"payload") -> Item:
    source = SourceFile(name=name, data=b"s" * 100)
    item = Item(id=name, source=source, preview=PreviewHandle(source))
    processing = begin(item)
    if fmt is None:
        return fail(processing, "platform-error: x")
    return complete(processing, EncodedOutput(data=payload, format=fmt, width=1, height=1, original_size=100))


def test_output_filename_keeps_stem() -> None:
    assert output_filename("photo.png", AVIF) == "photo.avif"
    assert output_filename("holiday.final.JPG", WEBP) == "holiday.final.webp"
    assert output_filename("noext", WEBP) == "noext.webp"


def test_archive_filename_uses_compact_timestamp() -> None:
    moment = datetime(2024, 3, 5, 7, 9, 42, tzinfo=timezone.utc)

    assert archive_filename(moment) == "imagereduct_202403050709.zip"
    assert archive_filename().startswith("imagereduct_")


def test_get_format_is_case_insensitive() -> None:
    assert get_format(" AVIF ") is AVIF
    with pytest.raises(InvalidConfigurationError):
        get_format("jpeg")


def test_collect_entries_only_includes_done_items() -> None:
    items = [_item("a.png", "webp", b"aaa"), _item("b.png", None), _item("c.jpg", "avif", b"ccc")]

    assert collect_entries(items) == [("a.webp", b"aaa"), ("c.avif", b"ccc")]


def test_bundle_is_deterministic_and_readable() -> None:
    entries = [("a.webp", b"first"), ("b.webp", b"second" * 100)]

    first = bundle(entries)
    second = bundle(entries)

    assert first == second
    with zipfile.ZipFile(io.BytesIO(first)) as archive:
        assert archive.namelist() == ["a.webp", "b.webp"]
        assert archive.read("b.webp") == b"second" * 100


@pytest.mark.filterwarnings("ignore:Duplicate name")
def test_bundle_passes_duplicate_names_through(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="image_reduct.processing.archive"):
        data = bundle([("x.avif", b"one"), ("y.avif", b"mid"), ("x.avif", b"two")])

    duplicates = [record for record in caplog.records if "重名" in record.getMessage()]
    assert len(duplicates) == 1
    assert "x.avif" in duplicates[0].getMessage()

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        assert archive.namelist() == ["x.avif", "y.avif", "x.avif"]


def test_bundle_failure_raises_archive_error(monkeypatch: pytest.MonkeyPatch) -> None:
    items = [_item("a.png", "webp")]

    def broken_writestr(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(zipfile.ZipFile, "writestr", broken_writestr)

    with pytest.raises(ArchiveError):
        bundle(collect_entries(items))
    assert items[0].status == "done"


def test_output_manager_conflict_strategies(tmp_path: Path) -> None:
    (tmp_path / "a.webp").write_bytes(b"old")

    renamed = OutputManager(OutputConfig(output_dir=tmp_path)).save_bytes("a.webp", b"new")
    assert renamed.action == "rename"
    assert renamed.destination == tmp_path / "a_1.webp"
    assert (tmp_path / "a_1.webp").read_bytes() == b"new"

    skipped = OutputManager(OutputConfig(output_dir=tmp_path, conflict_strategy="skip")).save_bytes("a.webp", b"x")
    assert skipped.action == "skip"
    assert (tmp_path / "a.webp").read_bytes() == b"old"

    overwritten = OutputManager(OutputConfig(output_dir=tmp_path, conflict_strategy="overwrite")).save_bytes(
        "a.webp", b"newest"
    )
    assert overwritten.action == "overwrite"
    assert (tmp_path / "a.webp").read_bytes() == b"newest"


def test_output_manager_rejects_unknown_strategy(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigurationError):
        OutputManager(OutputConfig(output_dir=tmp_path, conflict_strategy="merge"))


def test_scanner_keeps_only_images(tmp_path: Path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "b.PNG").write_bytes(b"x")
    (tmp_path / "a.jpg").write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("hello")
    (tmp_path / "nested" / "c.webp").write_bytes(b"x")

    recursive = collect_image_paths([tmp_path])
    flat = collect_image_paths([tmp_path], recursive=False)

    assert [p.name for p in recursive] == ["a.jpg", "b.PNG", "c.webp"]
    assert [p.name for p in flat] == ["a.jpg", "b.PNG"]
    assert collect_image_paths([tmp_path / "a.jpg", tmp_path]) == [
        (tmp_path / "a.jpg").resolve(),
        (tmp_path / "b.PNG").resolve(),
        (tmp_path / "nested" / "c.webp").resolve(),
    ]


@pytest.mark.parametrize(
    ("size", "expected"),
    [(0, "0 B"), (500, "500 B"), (1024, "1 KB"), (1536, "1.5 KB"), (5 * 1024 * 1024, "5 MB")],
)
def test_format_size(size: int, expected: str) -> None:
    assert format_size(size) == expected


def test_format_percent_rounds() -> None:
    assert format_percent(0.5333) == "53%"
    assert format_percent(0) == "0%"
