"""Filesystem storage for uploaded PDFs and converted documents."""

from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from .errors import UnsafePathError
from .validation import MEGABYTE, generate_unique_filename

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StoredFile:
    """Metadata snapshot of a file on disk."""

    name: str
    path: Path
    size: int
    created: datetime
    modified: datetime

    @property
    def size_mb(self) -> str:
        return f"{self.size / MEGABYTE:.2f}"

    @classmethod
    def from_path(cls, path: Path) -> "StoredFile":
        stat = path.stat()
        return cls(
            name=path.name,
            path=path,
            size=stat.st_size,
            created=datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc),
            modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


@dataclass(slots=True)
class DirectoryStats:
    exists: bool
    file_count: int = 0
    total_size: int = 0

    @property
    def total_size_mb(self) -> str:
        return f"{self.total_size / MEGABYTE:.2f}"


class FileStore:
    """Owns the upload and output directories used by the conversion workflow."""

    def __init__(self, uploads_dir: Path, outputs_dir: Path) -> None:
        self._uploads_dir = Path(uploads_dir)
        self._outputs_dir = Path(outputs_dir)

    @property
    def uploads_dir(self) -> Path:
        return self._uploads_dir

    @property
    def outputs_dir(self) -> Path:
        return self._outputs_dir

    def ensure_directories(self) -> None:
        for directory in (self._uploads_dir, self._outputs_dir):
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info("created directory %s", directory)

    def save_upload(self, original_name: str, stream: BinaryIO) -> Path:
        """Copy an uploaded stream into the uploads directory under a unique name."""
        target = self._uploads_dir / generate_unique_filename(original_name)
        with target.open("wb") as handle:
            shutil.copyfileobj(stream, handle)
        return target

    def output_path(self, name: str) -> Path:
        """Resolve ``name`` inside the outputs directory, refusing anything outside it."""
        base = self._outputs_dir.resolve()
        candidate = (base / name).resolve()
        if candidate.parent != base:
            raise UnsafePathError(name)
        return candidate

    def list_outputs(self, extension: str | None = ".docx") -> list[StoredFile]:
        """Return output files, newest first."""
        if not self._outputs_dir.exists():
            return []
        files = []
        for path in self._outputs_dir.iterdir():
            if not path.is_file():
                continue
            if extension and not path.name.lower().endswith(extension.lower()):
                continue
            files.append(StoredFile.from_path(path))
        files.sort(key=lambda item: item.modified, reverse=True)
        return files

    def file_info(self, name: str) -> StoredFile | None:
        path = self.output_path(name)
        if not path.is_file():
            return None
        return StoredFile.from_path(path)

    def delete_output(self, name: str) -> bool:
        path = self.output_path(name)
        if not path.is_file():
            return False
        path.unlink()
        logger.info("deleted output file %s", name)
        return True

    def directory_stats(self, directory: Path | None = None) -> DirectoryStats:
        directory = directory or self._outputs_dir
        if not directory.exists():
            return DirectoryStats(exists=False)
        stats = DirectoryStats(exists=True)
        for path in directory.iterdir():
            if path.is_file():
                stats.file_count += 1
                stats.total_size += path.stat().st_size
        return stats

    def discard(self, path: Path) -> None:
        """Remove a temporary file, logging rather than failing the request."""
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not remove temporary file %s: %s", path, exc)
        else:
            logger.debug("cleaned up temporary file %s", path)

    def cleanup_old_files(self, max_age_ms: int, now: float | None = None) -> int:
        """Delete files older than ``max_age_ms`` from both directories."""
        now = time.time() if now is None else now
        cutoff = now - max_age_ms / 1000
        removed = 0
        for directory in (self._uploads_dir, self._outputs_dir):
            if not directory.exists():
                continue
            for path in directory.iterdir():
                try:
                    if path.is_file() and path.stat().st_mtime < cutoff:
                        path.unlink()
                        removed += 1
                except OSError as exc:
                    logger.warning("error processing file %s during cleanup: %s", path, exc)
        if removed:
            logger.info("cleaned up %d old files", removed)
        return removed
