"""Upload and filename validation rules."""

from __future__ import annotations

import random
import re
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Sequence

from .contracts import PdfUpload

MEGABYTE = 1024 * 1024
MAX_FILENAME_LENGTH = 255
ALLOWED_MIME_TYPES = frozenset({"application/pdf"})
ALLOWED_EXTENSIONS = frozenset({".pdf"})
DANGEROUS_PATTERN = re.compile(r'[<>:"|?*\x00-\x1f]')
_UNSAFE_STORAGE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass(slots=True)
class BatchValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _megabytes(size: int) -> str:
    return f"{size / MEGABYTE:.2f}"


def validate_pdf_upload(upload: PdfUpload, max_file_size: int) -> list[str]:
    """Return every reason ``upload`` cannot be accepted (empty when valid)."""
    errors: list[str] = []
    if upload.size > max_file_size:
        errors.append(
            f"File size ({_megabytes(upload.size)}MB) exceeds maximum limit of "
            f"{max_file_size // MEGABYTE}MB"
        )
    if upload.content_type not in ALLOWED_MIME_TYPES:
        errors.append(f"Invalid file type: {upload.content_type}. Only PDF files are allowed")
    extension = PurePath(upload.filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        errors.append(f"Invalid file extension: {extension}. Only .pdf files are allowed")
    if upload.size == 0:
        errors.append("File appears to be empty or corrupted")
    if len(upload.filename) > MAX_FILENAME_LENGTH:
        errors.append(f"Filename is too long (maximum {MAX_FILENAME_LENGTH} characters)")
    if DANGEROUS_PATTERN.search(upload.filename):
        errors.append("Filename contains invalid characters")
    return errors


def validate_batch(
    uploads: Sequence[PdfUpload],
    *,
    max_files: int,
    max_file_size: int,
    max_total_size: int,
) -> BatchValidation:
    """Validate a multi-file upload as a whole and file by file."""
    outcome = BatchValidation()
    if not uploads:
        outcome.errors.append("No PDF files uploaded")
        return outcome
    if len(uploads) > max_files:
        outcome.errors.append(f"Too many files uploaded. Maximum allowed: {max_files}")
        return outcome

    total_size = sum(upload.size for upload in uploads)
    if total_size > max_total_size:
        outcome.errors.append(
            f"Total file size ({_megabytes(total_size)}MB) exceeds maximum limit of "
            f"{max_total_size // MEGABYTE}MB"
        )

    duplicates = [name for name, count in Counter(u.filename for u in uploads).items() if count > 1]
    if duplicates:
        outcome.warnings.append(f"Duplicate filenames detected: {', '.join(duplicates)}")

    for index, upload in enumerate(uploads, start=1):
        problems = validate_pdf_upload(upload, max_file_size)
        if problems:
            outcome.errors.append(f"File {index} ({upload.filename}): {', '.join(problems)}")
    return outcome


def validate_filename(filename: str) -> bool:
    """Return ``True`` when ``filename`` is a bare, safe name inside a storage directory."""
    if not filename:
        return False
    if ".." in filename or "/" in filename or "\\" in filename:
        return False
    if DANGEROUS_PATTERN.search(filename):
        return False
    return len(filename) <= MAX_FILENAME_LENGTH


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_STORAGE_CHARS.sub("_", filename)


def generate_unique_filename(original_name: str, prefix: str = "pdf") -> str:
    """Build a collision-resistant storage name that keeps the original extension."""
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    extension = PurePath(sanitize_filename(original_name)).suffix
    return f"{prefix}-{suffix}{extension}"
