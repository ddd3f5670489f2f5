"""Download and file management routes for converted documents."""

from __future__ import annotations

import math
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from pydantic import BaseModel

from ..config import Settings
from ..domain.errors import UnsafePathError
from ..domain.storage import FileStore, StoredFile
from ..domain.validation import validate_filename
from .dependencies import get_app_settings, get_store

router = APIRouter(tags=["files"])

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class FileEntry(BaseModel):
    filename: str
    size: str
    created: datetime
    modified: datetime
    download_url: str

    @classmethod
    def from_domain(cls, stored: StoredFile, base_path: str) -> "FileEntry":
        return cls(
            filename=stored.name,
            size=f"{stored.size_mb} MB",
            created=stored.created,
            modified=stored.modified,
            download_url=f"{base_path}/download/{stored.name}",
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class StorageSummary(BaseModel):
    total_files: int
    total_size: str


class FileListResponse(BaseModel):
    files: list[FileEntry]
    pagination: Pagination
    stats: StorageSummary


class FileInfoResponse(BaseModel):
    data: FileEntry


class DeleteResponse(BaseModel):
    success: bool = True
    message: str = "File deleted successfully"
    filename: str


def _checked_name(filename: str) -> str:
    if not validate_filename(filename):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid filename: filename contains invalid characters",
        )
    return filename


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="The requested file does not exist",
    )


def _forbidden() -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid file path")


@router.get("/download/{filename}")
def download(filename: str, store: FileStore = Depends(get_store)) -> FileResponse:
    """Stream a converted DOCX document back to the client."""
    _checked_name(filename)
    try:
        path = store.output_path(filename)
    except UnsafePathError as exc:
        raise _forbidden() from exc
    if not path.is_file():
        raise _not_found()
    if not filename.lower().endswith(".docx"):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only DOCX files can be downloaded",
        )
    return FileResponse(path, media_type=DOCX_MEDIA_TYPE, filename=filename)


@router.get("/files", response_model=FileListResponse)
def list_files(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    store: FileStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> FileListResponse:
    """Return converted documents, newest first, one page at a time."""
    files = store.list_outputs(".docx")
    stats = store.directory_stats()
    pages = math.ceil(len(files) / limit)
    start = (page - 1) * limit
    return FileListResponse(
        files=[FileEntry.from_domain(item, settings.api_base_path) for item in files[start:start + limit]],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=len(files),
            pages=pages,
            has_next=page < pages,
            has_prev=page > 1,
        ),
        stats=StorageSummary(total_files=stats.file_count, total_size=f"{stats.total_size_mb} MB"),
    )


@router.get("/files/{filename}/info", response_model=FileInfoResponse)
def file_info(
    filename: str,
    store: FileStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> FileInfoResponse:
    _checked_name(filename)
    try:
        stored = store.file_info(filename)
    except UnsafePathError as exc:
        raise _forbidden() from exc
    if stored is None:
        raise _not_found()
    return FileInfoResponse(data=FileEntry.from_domain(stored, settings.api_base_path))


@router.delete("/files/{filename}", response_model=DeleteResponse)
def delete_file(filename: str, store: FileStore = Depends(get_store)) -> DeleteResponse:
    _checked_name(filename)
    try:
        deleted = store.delete_output(filename)
    except UnsafePathError as exc:
        raise _forbidden() from exc
    if not deleted:
        raise _not_found()
    return DeleteResponse(filename=filename)
