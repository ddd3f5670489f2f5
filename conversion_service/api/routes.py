"""HTTP route definitions for PDF conversion."""

from __future__ import annotations

import logging
import os
from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile, status
from pydantic import BaseModel

from ..config import Settings
from ..domain.contracts import PdfUpload
from ..domain.service import BatchOutcome, ConversionResult, ConversionService
from ..domain.validation import validate_batch, validate_pdf_upload
from .dependencies import get_app_settings, get_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["conversion"])


class ConvertedFile(BaseModel):
    """Serialised representation of a `ConversionResult`."""

    original_file: str
    converted_file: str
    file_size: str
    download_url: str
    timestamp: datetime

    @classmethod
    def from_domain(cls, result: ConversionResult, base_path: str) -> "ConvertedFile":
        """Build a response model from the domain result."""
        return cls(
            original_file=result.original_file,
            converted_file=result.output.name,
            file_size=f"{result.output.size_mb} MB",
            download_url=f"{base_path}/download/{result.output.name}",
            timestamp=result.converted_at,
        )


class ConvertResponse(BaseModel):
    success: bool = True
    message: str = "PDF converted successfully to DOCX"
    data: ConvertedFile


class FailedFile(BaseModel):
    original_file: str
    error: str
    status: str = "failed"


class BatchSummary(BaseModel):
    total_files: int
    successful: int
    failed: int


class BatchConvertResponse(BaseModel):
    """Outcome of a multi-file conversion, including partial failures."""

    success: bool
    message: str
    summary: BatchSummary
    results: list[ConvertedFile]
    errors: list[FailedFile]

    @classmethod
    def from_domain(cls, outcome: BatchOutcome, base_path: str) -> "BatchConvertResponse":
        succeeded, failed = len(outcome.results), len(outcome.errors)
        if failed:
            message = f"{succeeded} files converted successfully, {failed} failed"
        else:
            message = f"All {succeeded} files converted successfully"
        return cls(
            success=failed == 0,
            message=message,
            summary=BatchSummary(total_files=outcome.total, successful=succeeded, failed=failed),
            results=[ConvertedFile.from_domain(result, base_path) for result in outcome.results],
            errors=[FailedFile(original_file=e.original_file, error=e.error) for e in outcome.errors],
        )


def _to_upload(upload: UploadFile) -> PdfUpload:
    size = upload.size
    if size is None:
        upload.file.seek(0, os.SEEK_END)
        size = upload.file.tell()
        upload.file.seek(0)
    return PdfUpload(
        filename=upload.filename or "",
        content_type=upload.content_type,
        size=size,
        stream=upload.file,
    )


@router.post("/convert", response_model=ConvertResponse)
def convert(
    pdf: UploadFile | None = File(default=None),
    service: ConversionService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
) -> ConvertResponse:
    """Convert a single PDF uploaded in the ``pdf`` form field."""
    if pdf is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No file uploaded. Please upload a PDF file using the "pdf" field',
        )
    upload = _to_upload(pdf)
    problems = validate_pdf_upload(upload, settings.max_file_size)
    if problems:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "File validation failed", "details": problems},
        )
    result = service.convert_single(upload)
    return ConvertResponse(data=ConvertedFile.from_domain(result, settings.api_base_path))


@router.post("/convert-batch", response_model=BatchConvertResponse)
def convert_batch(
    response: Response,
    pdfs: list[UploadFile] | None = File(default=None),
    service: ConversionService = Depends(get_service),
    settings: Settings = Depends(get_app_settings),
) -> BatchConvertResponse:
    """Convert every PDF uploaded in the ``pdfs`` form field."""
    if not pdfs:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='No PDF files uploaded. Please upload PDF files using the "pdfs" field',
        )
    uploads = [_to_upload(item) for item in pdfs]
    validation = validate_batch(
        uploads,
        max_files=settings.max_files_per_request,
        max_file_size=settings.max_file_size,
        max_total_size=settings.max_total_size,
    )
    if not validation.ok:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "Batch validation failed",
                "details": validation.errors,
                "warnings": validation.warnings,
            },
        )
    for warning in validation.warnings:
        logger.warning("batch upload warning: %s", warning)

    outcome = service.convert_batch(uploads)
    if not outcome.errors:
        response.status_code = status.HTTP_200_OK
    elif outcome.results:
        response.status_code = status.HTTP_207_MULTI_STATUS
    else:
        response.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return BatchConvertResponse.from_domain(outcome, settings.api_base_path)
