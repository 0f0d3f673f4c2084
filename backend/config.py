from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "Symptom Trends"
    DATABASE_URL: str = "sqlite:///data/symptoms.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:8050",
        "https://localhost:8050",
    ]
    SYMPTOM_API_BASE_URL: str = "http://localhost:8050/api"
    SYMPTOM_API_TIMEOUT_SECONDS: int = 30
    CATALOG_CACHE_TTL_SECONDS: int = 300
    DATE_INDEX_CACHE_TTL_SECONDS: int = 300
    LOG_CACHE_TTL_SECONDS: int | None = None  # logs are invalidated on writes
    DATE_KEY_FORMAT: str = "%m-%d-%Y"
    CHART_LABEL_FORMAT: str = "%b %d %Y"
    REDUCTION_TOP_N: int = 5
    SEED_DEFAULT_SYMPTOMS: bool = True
    SECURITY_HEADERS_ENABLED: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    def validate_runtime_configuration(self) -> None:
        errors: list[str] = []
        if self.CATALOG_CACHE_TTL_SECONDS <= 0:
            errors.append("CATALOG_CACHE_TTL_SECONDS must be positive")
        if self.DATE_INDEX_CACHE_TTL_SECONDS <= 0:
            errors.append("DATE_INDEX_CACHE_TTL_SECONDS must be positive")
        if self.LOG_CACHE_TTL_SECONDS is not None and self.LOG_CACHE_TTL_SECONDS <= 0:
            errors.append("LOG_CACHE_TTL_SECONDS must be positive when set")
        if self.REDUCTION_TOP_N < 1:
            errors.append("REDUCTION_TOP_N must be at least 1")
        if self.is_production_like and not (self.SYMPTOM_API_BASE_URL or "").strip():
            errors.append("SYMPTOM_API_BASE_URL must be set in production-like environments")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Invalid configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
