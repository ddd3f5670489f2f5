"""Subprocess bridge to the external pdf2docx conversion engine."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path

from ..config import Settings
from .errors import ConversionFailed, ConversionTimeout, ConverterUnavailable, InputFileError

logger = logging.getLogger(__name__)


class PdfConverter:
    """Runs ``<python> -m <module> <command> <pdf> <docx>`` for each conversion."""

    def __init__(
        self,
        executable: str,
        *,
        module: str = "pdf2docx.main",
        command: str = "convert",
        timeout_seconds: float = 300.0,
    ) -> None:
        self._executable = executable
        self._module = module
        self._command = command
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "PdfConverter":
        return cls(
            settings.python_executable,
            module=settings.python_module,
            command=settings.python_command,
            timeout_seconds=settings.conversion_timeout_ms / 1000,
        )

    def build_command(self, pdf_path: Path, docx_path: Path) -> list[str]:
        return [self._executable, "-m", self._module, self._command, str(pdf_path), str(docx_path)]

    def convert(self, pdf_path: Path, docx_path: Path) -> str:
        """Convert ``pdf_path`` into ``docx_path`` and return the engine's stdout."""
        if not pdf_path.is_file():
            raise InputFileError("Input PDF file not found")
        if not os.access(pdf_path, os.R_OK):
            raise InputFileError("Input PDF file is not readable")

        logger.info("converting %s to %s", pdf_path, docx_path)
        try:
            completed = subprocess.run(
                self.build_command(pdf_path, docx_path),
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ConversionTimeout(
                "Conversion timeout: Process took too long to complete"
            ) from exc
        except OSError as exc:
            raise ConverterUnavailable(f"Failed to start converter process: {exc}") from exc

        if completed.returncode != 0:
            detail = completed.stderr.strip() or "Unknown error"
            raise ConversionFailed(
                f"Converter process exited with code {completed.returncode}. Error: {detail}"
            )
        if not docx_path.exists():
            raise ConversionFailed("Conversion completed but output file was not created")
        if docx_path.stat().st_size == 0:
            raise ConversionFailed("Conversion completed but output file is empty")
        return completed.stdout

    def check_environment(self) -> bool:
        """Return ``True`` when the interpreter can import and run the engine module."""
        try:
            completed = subprocess.run(
                [self._executable, "-m", self._module, "--help"],
                capture_output=True,
                text=True,
                timeout=30,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("conversion engine not available: %s", exc)
            return False
        if completed.returncode != 0:
            logger.warning("conversion engine not available: %s", completed.stderr.strip())
            return False
        return True
