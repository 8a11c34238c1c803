"""
Environment driven settings for the fulfillment engine.

Values are read once at import time. A local .env file is honoured so the
cluster can run without exporting every variable by hand.
"""
import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")  # In Docker, this will be 'postgres'
DB_PORT = os.getenv("POSTGRES_PORT", "5433")
DB_NAME = os.getenv("POSTGRES_DB", "storefront")

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)
DB_ECHO = _flag("DB_ECHO", "false")

# Payment terms
INVOICE_TERM_DAYS = int(os.getenv("INVOICE_TERM_DAYS", "14"))
DEFAULT_DEPOSIT_AMOUNT = Decimal(os.getenv("DEFAULT_DEPOSIT_AMOUNT", "30.00"))
DEFAULT_REMAINING_AMOUNT = Decimal(os.getenv("DEFAULT_REMAINING_AMOUNT", "270.00"))

# Reminder sweep (the interval is policy; correctness never depends on it)
REMINDER_SWEEP_MINUTES = int(os.getenv("REMINDER_SWEEP_MINUTES", "30"))
ENABLE_REMINDER_TICKER = _flag("ENABLE_REMINDER_TICKER", "false")

# Outbound collaborators
NOTIFICATION_RENDER_URL = os.getenv("NOTIFICATION_RENDER_URL", "http://localhost:8010/render")
NOTIFICATION_SEND_URL = os.getenv("NOTIFICATION_SEND_URL", "http://localhost:8010/send")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10"))
PAYMENT_LINK_URL = os.getenv("PAYMENT_LINK_URL", "http://localhost:8011/payment-links")
SITE_URL = os.getenv("SITE_URL", "http://localhost:3000").rstrip("/")

# Observability exporters. Logging is always configured.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
TRACING_ENABLED = _flag("TRACING_ENABLED", "true")
HTTP_METRICS_ENABLED = _flag("HTTP_METRICS_ENABLED", "true")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
