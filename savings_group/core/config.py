from pydantic_settings import BaseSettings
from typing import Optional
from pathlib import Path

# Find .env file - check savings_group/ directory first, then project root
BASE_DIR = Path(__file__).resolve().parent.parent.parent
PACKAGE_ENV = BASE_DIR / "savings_group" / ".env"
ROOT_ENV = BASE_DIR / ".env"

# Use savings_group/.env if it exists, otherwise try root .env
env_file = str(PACKAGE_ENV) if PACKAGE_ENV.exists() else (str(ROOT_ENV) if ROOT_ENV.exists() else ".env")


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'savings_group.db'}"
    DATABASE_ECHO: bool = False

    # Scheduler
    SCHEDULER_INTERVAL_MINUTES: int = 60
    SCHEDULER_ENABLED: bool = True

    # Ledger rules
    PENALTY_DUE_DAYS: int = 7
    LEDGER_DEFAULT_LIMIT: int = 100
    LEDGER_MAX_LIMIT: int = 500
    # When False, an installment repaid late stays "late" and never counts
    # toward loan closure (reference behaviour).
    LATE_INSTALLMENT_SETTLES_LOAN: bool = True

    # Audit
    AUDIT_LOG_DIR: Optional[str] = None

    # Application
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = env_file
        case_sensitive = True


settings = Settings()

# Derived paths
LOGS_DIR = Path(settings.AUDIT_LOG_DIR) if settings.AUDIT_LOG_DIR else BASE_DIR / "logs"
