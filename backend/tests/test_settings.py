import pytest
from pydantic import ValidationError

from fintrack.config import Settings


def test_import_extensions_are_normalized():
    config = Settings(ALLOWED_IMPORT_EXTENSIONS="CSV, .xlsx,,csv")

    assert config.ALLOWED_IMPORT_EXTENSIONS == [".csv", ".xlsx"]


def test_defaults_cover_statement_formats():
    config = Settings()

    assert set(config.ALLOWED_IMPORT_EXTENSIONS) >= {".csv", ".xls", ".xlsx"}
    assert config.default_category_for("income") == config.DEFAULT_INCOME_CATEGORY
    assert config.default_category_for("expense") == config.DEFAULT_EXPENSE_CATEGORY


@pytest.mark.parametrize("field", ["MAX_UPLOAD_SIZE", "SUGGESTION_CONCURRENCY", "CLASSIFIER_TIMEOUT"])
def test_non_positive_limits_are_rejected(field):
    with pytest.raises(ValidationError):
        Settings(**{field: 0})


def test_cors_origins_list_strips_whitespace():
    config = Settings(CORS_ORIGINS="http://a.test, http://b.test")

    assert config.cors_origins_list == ["http://a.test", "http://b.test"]
