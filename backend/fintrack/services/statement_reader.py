"""
Statement file intake: format checks and normalization to row-oriented text.

Only comma-separated text and spreadsheets are accepted. Spreadsheets are
rendered back to CSV so the classifier always sees the same representation.
"""
import io
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from fintrack.config import settings
from fintrack.errors import InvalidInputError

logger = logging.getLogger(__name__)

CSV_MIME_TYPES = {
    'text/csv',
    'application/csv',
    'text/plain',  # CSV files may be detected as plain text
}
SPREADSHEET_MIME_TYPES = {
    'application/vnd.ms-excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
}
SPREADSHEET_EXTENSIONS = {'.xls', '.xlsx'}


def file_extension(filename: str) -> str:
    return Path(filename or "").suffix.lower()


def is_spreadsheet(filename: str, mime_type: Optional[str] = None) -> bool:
    if file_extension(filename) in SPREADSHEET_EXTENSIONS:
        return True
    return (mime_type or "").lower() in SPREADSHEET_MIME_TYPES


def validate_upload(file_bytes: bytes, filename: str, mime_type: Optional[str] = None) -> None:
    """
    Reject empty, oversized or unsupported uploads before any parsing.

    Raises:
        InvalidInputError: If the upload cannot be imported
    """
    if not file_bytes:
        raise InvalidInputError("No file uploaded or the file is empty")

    if len(file_bytes) > settings.MAX_UPLOAD_SIZE:
        max_mb = settings.MAX_UPLOAD_SIZE / (1024 * 1024)
        raise InvalidInputError(f"File too large. Maximum size is {max_mb:.0f}MB")

    extension = file_extension(filename)
    mime = (mime_type or "").lower()
    if extension in settings.ALLOWED_IMPORT_EXTENSIONS:
        return
    if not extension and mime in CSV_MIME_TYPES | SPREADSHEET_MIME_TYPES:
        return
    raise InvalidInputError("Unsupported file format. Please upload CSV or Excel file.")


def _decode_text(file_bytes: bytes) -> str:
    try:
        return file_bytes.decode('utf-8-sig')
    except UnicodeDecodeError:
        # Bank exports are often Windows-1252/latin-1
        return file_bytes.decode('latin-1')


def _spreadsheet_to_csv(file_bytes: bytes, filename: str) -> str:
    try:
        xls = pd.ExcelFile(io.BytesIO(file_bytes))
        sheet_name = xls.sheet_names[0]
        df = pd.read_excel(xls, sheet_name, header=None, dtype=str)
    except Exception as e:
        logger.warning(f"Could not read spreadsheet '{filename}': {e}")
        raise InvalidInputError(f"Could not read spreadsheet: {e}") from e

    df = df.dropna(how="all")
    return df.to_csv(index=False, header=False)


def read_statement_text(file_bytes: bytes, filename: str, mime_type: Optional[str] = None) -> str:
    """
    Validate an upload and normalize it to CSV text.

    Returns:
        The statement as comma-separated rows
    """
    validate_upload(file_bytes, filename, mime_type)

    if is_spreadsheet(filename, mime_type):
        text = _spreadsheet_to_csv(file_bytes, filename)
    else:
        text = _decode_text(file_bytes)

    if not text.strip():
        raise InvalidInputError("The uploaded file contains no rows")
    return text
