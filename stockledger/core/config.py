"""
Stock Ledger Configuration
Core settings for the stock ledger application
"""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Application settings"""

    # Application Info
    APP_NAME: str = "Stock Ledger API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./stockledger.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # CORS
    ALLOWED_HOSTS: list = ["*"]  # Change in production
    CORS_ORIGINS: list = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "app.log"
    ERROR_LOG_FILE: str = "error.log"
    LOG_TO_FILE: bool = False

    # API Configuration
    API_V1_STR: str = "/api/v1"
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_URL: str = "/openapi.json"

    # Transaction Settings
    REFERENCE_MAX_ATTEMPTS: int = 5
    ATOMIC_COMPLETION: bool = False  # wrap all lines + status write in one DB transaction
    MAX_TRANSACTION_LINES: int = 999

    # Demand Forecasting
    FORECAST_ESTIMATOR: str = "mean_rate"  # mean_rate, linear_trend
    FORECAST_LOOKBACK_DAYS: int = 60
    FORECAST_HISTORY_LIMIT: int = 200
    FORECAST_COVERAGE_DAYS: int = 30
    FORECAST_SAFE_SHORTAGE_DAYS: int = 60
    FORECAST_SAFE_MIN_LEVEL_DAYS: int = 21
    FORECAST_RUN_OUT_DAYS: int = 45
    FORECAST_HIGH_CONFIDENCE_MIN: int = 20
    FORECAST_LOW_CONFIDENCE_BELOW: int = 5
    FORECAST_MONITOR_FACTOR: float = 2.0
    FORECAST_STALE_MONITOR_FACTOR: float = 1.5
    FORECAST_NO_SHORTAGE_DAYS: int = 999

    # Notifications
    NOTIFY_STOCK_CHANGES: bool = True

    @field_validator("FORECAST_ESTIMATOR")
    @classmethod
    def validate_estimator(cls, v: str) -> str:
        """Only the registered estimator strategies are accepted"""
        if v not in ("mean_rate", "linear_trend"):
            raise ValueError("FORECAST_ESTIMATOR must be 'mean_rate' or 'linear_trend'")
        return v

    @field_validator("LOG_DIR", mode="before")
    @classmethod
    def coerce_log_dir(cls, v):
        return Path(v) if isinstance(v, str) else v

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


# Global settings instance
settings = Settings()

# Database connection string for SQLAlchemy
DATABASE_URL = settings.DATABASE_URL
