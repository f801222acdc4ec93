"""Application configuration.

Environment variables override all defaults.
Shelf-life bands and import rules live here so the engine and the API agree.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env for local development (no-op if the file is missing)
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./pharmastock.db")

    # CORS (specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _split_csv(
        os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        )
    )

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Shelf-life bands (days remaining until expiry)
    # < 0 expired, 0..CRITICAL critical, ..WARNING warning, beyond normal
    SHELF_LIFE_CRITICAL_DAYS: int = int(os.getenv("SHELF_LIFE_CRITICAL_DAYS", "30"))
    SHELF_LIFE_WARNING_DAYS: int = int(os.getenv("SHELF_LIFE_WARNING_DAYS", "90"))

    # Expiring-stock report window
    EXPIRY_REPORT_DAYS: int = int(os.getenv("EXPIRY_REPORT_DAYS", "90"))

    # Bulk import
    IMPORT_DATE_FORMAT: str = os.getenv("IMPORT_DATE_FORMAT", "%d-%m-%Y")
    MAX_IMPORT_BYTES: int = int(os.getenv("MAX_IMPORT_BYTES", str(2 * 1024 * 1024)))

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"


settings = Settings()
