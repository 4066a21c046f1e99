from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    # Database configuration
    DATABASE_URL: str = "sqlite:///./fintrack.db"

    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Statement upload restrictions
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB in bytes
    ALLOWED_IMPORT_EXTENSIONS: List[str] = Field(
        default_factory=lambda: [".csv", ".xls", ".xlsx"]
    )
    IMPORT_RATE_LIMIT: str = "30/minute"

    # Statement classifier (Ollama)
    OLLAMA_URL: str = "http://ollama:11434"
    OLLAMA_MODEL: str = "mistral"
    CLASSIFIER_TIMEOUT: int = 120  # Whole statements are slow on CPU inference
    SUGGESTION_CONCURRENCY: int = 4

    # Fallback categories when a suggestion cannot be used
    DEFAULT_INCOME_CATEGORY: str = "Other Income"
    DEFAULT_EXPENSE_CATEGORY: str = "Others"

    @field_validator("MAX_UPLOAD_SIZE", "SUGGESTION_CONCURRENCY", "CLASSIFIER_TIMEOUT")
    @classmethod
    def _validate_positive(cls, value):
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("ALLOWED_IMPORT_EXTENSIONS", mode="before")
    @classmethod
    def _split_extensions(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            cleaned = []
            for item in value:
                if item is None:
                    continue
                text = str(item).strip().lower()
                if not text:
                    continue
                if not text.startswith("."):
                    text = f".{text}"
                if text not in cleaned:
                    cleaned.append(text)
            return cleaned
        return value

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def default_category_for(self, transaction_type: str) -> str:
        """Fallback category name for a transaction type."""
        if transaction_type == "income":
            return self.DEFAULT_INCOME_CATEGORY
        return self.DEFAULT_EXPENSE_CATEGORY

    class Config:
        env_file = ".env"
        extra = "ignore"  # Ignore extra environment variables not defined in the model


settings = Settings()
