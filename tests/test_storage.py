from __future__ import annotations

import io
import os
import time
from pathlib import Path

import pytest

from conversion_service.domain.contracts import PdfUpload
from conversion_service.domain.errors import ConversionFailed, UnsafePathError
from conversion_service.domain.service import ConversionService, output_name_for
from conversion_service.domain.storage import FileStore


@pytest.fixture
def store(tmp_path: Path) -> FileStore:
    file_store = FileStore(tmp_path / "uploads", tmp_path / "outputs")
    file_store.ensure_directories()
    return file_store


def _age(path: Path, seconds: float) -> None:
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


def test_save_upload_uses_unique_names(store):
    first = store.save_upload("scan.pdf", io.BytesIO(b"one"))
    second = store.save_upload("scan.pdf", io.BytesIO(b"two"))
    assert first != second
    assert first.parent == store.uploads_dir
    assert first.read_bytes() == b"one"
    assert first.suffix == ".pdf"


def test_output_path_stays_inside_outputs(store):
    assert store.output_path("doc.docx") == (store.outputs_dir / "doc.docx").resolve()
    with pytest.raises(UnsafePathError):
        store.output_path("../uploads/doc.docx")


def test_listing_info_and_stats(store):
    older = store.outputs_dir / "older.docx"
    newer = store.outputs_dir / "newer.DOCX"
    older.write_bytes(b"a" * 10)
    newer.write_bytes(b"b" * 20)
    (store.outputs_dir / "ignored.txt").write_text("skip")
    _age(older, 60)

    names = [item.name for item in store.list_outputs()]
    assert names == ["newer.DOCX", "older.docx"]

    info = store.file_info("older.docx")
    assert info is not None and info.size == 10
    assert store.file_info("absent.docx") is None

    stats = store.directory_stats()
    assert (stats.exists, stats.file_count, stats.total_size) == (True, 3, 34)
    assert FileStore(store.uploads_dir, store.outputs_dir / "nope").directory_stats().exists is False


def test_delete_output(store):
    (store.outputs_dir / "gone.docx").write_bytes(b"x")
    assert store.delete_output("gone.docx") is True
    assert store.delete_output("gone.docx") is False


def test_cleanup_removes_only_old_files(store):
    stale_upload = store.uploads_dir / "stale.pdf"
    stale_output = store.outputs_dir / "stale.docx"
    fresh_output = store.outputs_dir / "fresh.docx"
    for path in (stale_upload, stale_output, fresh_output):
        path.write_bytes(b"data")
    _age(stale_upload, 3600)
    _age(stale_output, 3600)

    removed = store.cleanup_old_files(max_age_ms=60_000)

    assert removed == 2
    assert fresh_output.exists()
    assert not stale_output.exists()
    assert not stale_upload.exists()


def test_discard_tolerates_missing_files(store):
    store.discard(store.uploads_dir / "never-written.pdf")


def test_output_name_strips_pdf_suffix_and_directories():
    assert output_name_for("Quarterly Report.PDF", 42) == "Quarterly Report-42.docx"
    assert output_name_for("C:\\scans\\invoice.pdf", 7) == "invoice-7.docx"
    assert output_name_for("notes", 1) == "notes-1.docx"


class RecordingConverter:
    def __init__(self, fail_on: str | None = None) -> None:
        self.fail_on = fail_on

    def convert(self, pdf_path: Path, docx_path: Path) -> str:
        if self.fail_on and self.fail_on in docx_path.name:
            raise ConversionFailed("engine refused document")
        docx_path.write_bytes(pdf_path.read_bytes())
        return ""


def _upload(name: str) -> PdfUpload:
    content = b"%PDF " + name.encode()
    return PdfUpload(filename=name, content_type="application/pdf", size=len(content), stream=io.BytesIO(content))


def test_service_batch_collects_failures_and_discards_uploads(store):
    service = ConversionService(store, RecordingConverter(fail_on="bad"))

    outcome = service.convert_batch([_upload("good.pdf"), _upload("bad.pdf"), _upload("fine.pdf")])

    assert outcome.total == 3
    assert [r.original_file for r in outcome.results] == ["good.pdf", "fine.pdf"]
    assert [(e.original_file, e.error) for e in outcome.errors] == [("bad.pdf", "engine refused document")]
    assert list(store.uploads_dir.iterdir()) == []
    assert len({r.output.name for r in outcome.results}) == 2


def test_service_single_conversion_propagates_failure(store):
    service = ConversionService(store, RecordingConverter(fail_on="bad"))
    with pytest.raises(ConversionFailed):
        service.convert_single(_upload("bad.pdf"))
    assert list(store.uploads_dir.iterdir()) == []

    result = service.convert_single(_upload("ok.pdf"))
    assert result.output.path.read_bytes() == b"%PDF ok.pdf"
