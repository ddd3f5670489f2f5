"""Failures raised while turning an uploaded PDF into a DOCX document."""

from __future__ import annotations


class ConversionError(Exception):
    """Base class for conversion failures surfaced to API clients."""

    status_code: int = 500
    title: str = "Conversion failed"


class InputFileError(ConversionError):
    """The PDF handed to the converter is missing or unreadable."""


class ConversionFailed(ConversionError):
    """The converter ran but did not produce a usable document."""


class ConversionTimeout(ConversionError):
    status_code = 504
    title = "Request Timeout"


class ConverterUnavailable(ConversionError):
    """The converter process could not be started at all."""

    status_code = 503
    title = "Conversion Service Unavailable"


class UnsafePathError(ValueError):
    """A requested file would resolve outside of its storage directory."""
