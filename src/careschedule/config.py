"""
CareSchedule Configuration

Configuration class for the care activity scheduling engine.
"""
import os
from pathlib import Path
from urllib.parse import quote_plus
from dotenv import load_dotenv

# Load .env file from project root
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)


class Config:
    """Configuration class for CareSchedule API"""

    # Base paths
    BASE_DIR = Path(__file__).parent.parent.parent
    MIGRATIONS_DIR = Path(__file__).parent / "migrations"

    # Database settings
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "careschedule")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    POSTGRES_DSN = os.getenv("POSTGRES_DSN", "")

    DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "2"))
    DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "10"))

    # API settings
    API_HOST = os.getenv("API_HOST", "127.0.0.1")
    API_PORT = int(os.getenv("API_PORT", "8100"))
    DEBUG = os.getenv("DEBUG", "false").lower() == "true"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # JWT settings (tokens are issued by the identity provider)
    JWT_SECRET = os.getenv("JWT_SECRET", "careschedule-secret-key-change-in-production")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

    # Scheduling
    SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "UTC")
    RECURRENCE_MAX_OCCURRENCES = int(os.getenv("RECURRENCE_MAX_OCCURRENCES", "52"))
    RECURRENCE_HORIZON_DAYS = int(os.getenv("RECURRENCE_HORIZON_DAYS", "366"))
    UPCOMING_DEFAULT_DAYS = int(os.getenv("UPCOMING_DEFAULT_DAYS", "7"))

    # Overdue monitor
    OVERDUE_POLL_INTERVAL = int(os.getenv("OVERDUE_POLL_INTERVAL", "300"))
    OVERDUE_MONITOR_ENABLED = os.getenv("OVERDUE_MONITOR_ENABLED", "true").lower() == "true"

    # Change feed webhook (optional)
    SCHEDULE_WEBHOOK_URL = os.getenv("SCHEDULE_WEBHOOK_URL", "")
    SCHEDULE_WEBHOOK_SECRET = os.getenv("SCHEDULE_WEBHOOK_SECRET", "")

    @staticmethod
    def get_postgres_dsn() -> str:
        """Get PostgreSQL DSN with password handling"""
        if Config.POSTGRES_DSN:
            return Config.POSTGRES_DSN
        if Config.DB_PASSWORD:
            password = quote_plus(Config.DB_PASSWORD)
            return f"postgresql://{Config.DB_USER}:{password}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
        return f"postgresql://{Config.DB_USER}@{Config.DB_HOST}:{Config.DB_PORT}/{Config.DB_NAME}"
