"""PDF to DOCX conversion service."""
