import os

# Настройки PostgreSQL
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "consulting")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "db")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{POSTGRES_USER}:{POSTGRES_PASSWORD}@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

# Auth
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
SUPERADMIN_TOKEN = os.getenv("SUPERADMIN_TOKEN")

# Настройки среды
ENVIRONMENT = os.getenv("ENVIRONMENT", "production").lower()
DEBUG = ENVIRONMENT in ["development", "dev"]

# Настройки retry для базы данных
DB_RETRY_ATTEMPTS = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
DB_RETRY_DELAY = float(os.getenv("DB_RETRY_DELAY", "1.0"))
DB_RETRY_BACKOFF_FACTOR = float(os.getenv("DB_RETRY_BACKOFF_FACTOR", "2.0"))

# Настройки логирования
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json" if not DEBUG else "text")

# Настройки приложения
APP_NAME = os.getenv("APP_NAME", "Consulting Sessions API")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

# Consulting sessions
SESSION_TIMEZONE = os.getenv("SESSION_TIMEZONE", "America/Sao_Paulo")
JOIN_WINDOW_LEAD_MINUTES = int(os.getenv("JOIN_WINDOW_LEAD_MINUTES", "5"))
MIN_SESSION_DURATION_MINUTES = int(os.getenv("MIN_SESSION_DURATION_MINUTES", "15"))
MAX_SESSION_DURATION_MINUTES = int(os.getenv("MAX_SESSION_DURATION_MINUTES", "240"))
COMPLETION_SWEEP_INTERVAL_SECONDS = int(
    os.getenv("COMPLETION_SWEEP_INTERVAL_SECONDS", "0")
)

# Notifications
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10.0"))
NOTIFICATION_RETRY_ATTEMPTS = int(os.getenv("NOTIFICATION_RETRY_ATTEMPTS", "3"))

# Rate limits
RATE_LIMIT_ENROLL = os.getenv("RATE_LIMIT_ENROLL", "20/minute")
RATE_LIMIT_LIST = os.getenv("RATE_LIMIT_LIST", "60/minute")


# Валидация критичных настроек
def validate_config():
    """Валидация конфигурации при запуске"""
    errors = []

    if not JWT_SECRET_KEY:
        errors.append("JWT_SECRET_KEY is required")

    if not DATABASE_URL:
        errors.append("DATABASE_URL or POSTGRES_HOST is required")

    if DB_RETRY_ATTEMPTS < 1:
        errors.append("DB_RETRY_ATTEMPTS must be >= 1")

    if DB_RETRY_DELAY < 0:
        errors.append("DB_RETRY_DELAY must be >= 0")

    if JOIN_WINDOW_LEAD_MINUTES < 0:
        errors.append("JOIN_WINDOW_LEAD_MINUTES must be >= 0")

    if not 0 < MIN_SESSION_DURATION_MINUTES <= MAX_SESSION_DURATION_MINUTES:
        errors.append(
            "MIN_SESSION_DURATION_MINUTES must be positive and <= MAX_SESSION_DURATION_MINUTES"
        )

    if COMPLETION_SWEEP_INTERVAL_SECONDS < 0:
        errors.append("COMPLETION_SWEEP_INTERVAL_SECONDS must be >= 0")

    if NOTIFICATION_RETRY_ATTEMPTS < 1:
        errors.append("NOTIFICATION_RETRY_ATTEMPTS must be >= 1")

    try:
        from zoneinfo import ZoneInfo

        ZoneInfo(SESSION_TIMEZONE)
    except Exception:
        errors.append(f"SESSION_TIMEZONE '{SESSION_TIMEZONE}' is not a known timezone")

    if errors:
        raise ValueError(f"Configuration errors: {'; '.join(errors)}")
