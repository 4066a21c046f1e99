import io

import pandas as pd
import pytest

from fintrack.errors import InvalidInputError
from fintrack.services.statement_reader import is_spreadsheet, read_statement_text, validate_upload


def test_csv_is_decoded_with_bom_and_latin1_fallback():
    assert read_statement_text("\ufeffDate,Amount\n".encode("utf-8"), "a.csv") == "Date,Amount\n"
    assert read_statement_text("Caf\xe9,1\n".encode("latin-1"), "a.csv") == "Caf\xe9,1\n"


def test_extensionless_upload_falls_back_to_mime_type():
    validate_upload(b"Date,Amount\n", "statement", "text/csv")

    with pytest.raises(InvalidInputError, match="Unsupported file format"):
        validate_upload(b"Date,Amount\n", "statement", "application/octet-stream")


def test_empty_upload_is_rejected():
    with pytest.raises(InvalidInputError):
        validate_upload(b"", "statement.csv")


def test_whitespace_only_statement_has_no_rows():
    with pytest.raises(InvalidInputError, match="no rows"):
        read_statement_text(b"\n  \n", "statement.csv")


def test_spreadsheet_is_rendered_as_csv():
    buffer = io.BytesIO()
    pd.DataFrame([["Date", "Narration"], ["2024-01-05", "SWIGGY"], [None, None]]).to_excel(
        buffer, index=False, header=False
    )

    text = read_statement_text(buffer.getvalue(), "statement.XLSX")

    assert is_spreadsheet("statement.XLSX")
    assert text.splitlines() == ["Date,Narration", "2024-01-05,SWIGGY"]


def test_corrupt_spreadsheet_is_invalid_input():
    with pytest.raises(InvalidInputError, match="Could not read spreadsheet"):
        read_statement_text(b"not really a workbook", "statement.xlsx")
