"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO


@dataclass(slots=True)
class PdfUpload:
    """A single uploaded file as received from the HTTP layer."""

    filename: str
    content_type: str | None
    size: int
    stream: BinaryIO
