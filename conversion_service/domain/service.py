"""Conversion service orchestrating upload storage, the converter, and cleanup."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePath
from typing import Protocol, Sequence

from ..metrics import CONVERSIONS
from .contracts import PdfUpload
from .errors import ConversionError
from .storage import FileStore, StoredFile

logger = logging.getLogger(__name__)


class Converter(Protocol):
    def convert(self, pdf_path: Path, docx_path: Path) -> str: ...


@dataclass(slots=True)
class ConversionResult:
    """A successfully converted document."""

    original_file: str
    output: StoredFile
    converted_at: datetime


@dataclass(slots=True)
class FailedConversion:
    original_file: str
    error: str


@dataclass(slots=True)
class BatchOutcome:
    results: list[ConversionResult] = field(default_factory=list)
    errors: list[FailedConversion] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results) + len(self.errors)


def output_name_for(original_name: str, stamp_ms: int) -> str:
    """Derive ``<base>-<stamp>.docx`` from the client's original PDF name."""
    base = PurePath(original_name.replace("\\", "/")).name
    if base.lower().endswith(".pdf"):
        base = base[: -len(".pdf")]
    return f"{base}-{stamp_ms}.docx"


class ConversionService:
    """PDF to DOCX workflows backed by local storage and an external engine."""

    def __init__(self, store: FileStore, converter: Converter) -> None:
        """Store dependencies used to persist uploads and run conversions."""
        self._store = store
        self._converter = converter

    @property
    def store(self) -> FileStore:
        return self._store

    def _convert_saved(self, source: Path, original_name: str, stamp_ms: int) -> ConversionResult:
        target = self._store.output_path(output_name_for(original_name, stamp_ms))
        try:
            self._converter.convert(source, target)
        except ConversionError:
            CONVERSIONS.labels(status="failed").inc()
            raise
        CONVERSIONS.labels(status="success").inc()
        return ConversionResult(
            original_file=original_name,
            output=StoredFile.from_path(target),
            converted_at=datetime.now(timezone.utc),
        )

    def convert_single(self, upload: PdfUpload) -> ConversionResult:
        """Convert one uploaded PDF; the uploaded copy is always discarded afterwards."""
        source = self._store.save_upload(upload.filename, upload.stream)
        try:
            return self._convert_saved(source, upload.filename, int(time.time() * 1000))
        finally:
            self._store.discard(source)

    def convert_batch(self, uploads: Sequence[PdfUpload]) -> BatchOutcome:
        """Convert each upload independently, collecting per-file failures."""
        outcome = BatchOutcome()
        saved: list[Path] = []
        started_ms = int(time.time() * 1000)
        try:
            for index, upload in enumerate(uploads):
                source = self._store.save_upload(upload.filename, upload.stream)
                saved.append(source)
                try:
                    outcome.results.append(
                        self._convert_saved(source, upload.filename, started_ms + index)
                    )
                except ConversionError as exc:
                    logger.error("error converting file %s: %s", upload.filename, exc)
                    outcome.errors.append(FailedConversion(upload.filename, str(exc)))
        finally:
            for source in saved:
                self._store.discard(source)
        return outcome
