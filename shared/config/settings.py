import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Database
DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost") # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "ecommerce")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = _env_bool("DB_ECHO", "false")
ORDER_SCHEMA = os.getenv("ORDER_SCHEMA", "order_schema")

# Collaborators
PRODUCT_URL = os.getenv("PRODUCT_URL", "http://localhost:8001")
MEDIA_URL = os.getenv("MEDIA_URL", "http://localhost:8005")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10.0"))

# Post-checkout status progression (jitter window, milliseconds)
STATUS_UPDATE_MIN_DELAY_MS = int(os.getenv("STATUS_UPDATE_MIN_DELAY_MS", "30000"))
STATUS_UPDATE_MAX_DELAY_MS = int(os.getenv("STATUS_UPDATE_MAX_DELAY_MS", "120000"))

CHECKOUT_RATE_LIMIT = os.getenv("CHECKOUT_RATE_LIMIT", "10/minute")

# Observability
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
OTEL_TRACING_ENABLED = _env_bool("OTEL_TRACING_ENABLED", "true")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
