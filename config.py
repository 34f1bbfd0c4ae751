"""
config.py
---------
Central configuration module. Loads all environment variables
from the .env file and exposes them as typed constants.
"""

import os
from dotenv import load_dotenv

load_dotenv()


# ── Telegram (operator surface + notifications) ──────────
TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

# ── PostgreSQL ────────────────────────────────────────────
DB_HOST: str = os.getenv("DB_HOST", "localhost")
DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
DB_NAME: str = os.getenv("DB_NAME", "ln_autopay")
DB_USER: str = os.getenv("DB_USER", "autopay_user")
DB_PASS: str = os.getenv("DB_PASS", "")

DATABASE_URL: str = (
    f"postgresql://{DB_USER}:{DB_PASS}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# ── phoenixd (used when no node connection is stored) ────
PHOENIXD_URL: str = os.getenv("PHOENIXD_URL", "http://phoenixd:9740")
PHOENIXD_PASSWORD: str = os.getenv("PHOENIXD_PASSWORD", "")

# ── Scheduler ─────────────────────────────────────────────
SCHEDULER_INTERVAL_SECONDS: int = int(os.getenv("SCHEDULER_INTERVAL_SECONDS", "60"))
PAYMENT_DELAY_SECONDS: float = float(os.getenv("PAYMENT_DELAY_SECONDS", "1.0"))
DEFAULT_TIME_OF_DAY: str = "09:00"

# ── Outbound HTTP timeouts (seconds) ─────────────────────
GATEWAY_TIMEOUT_SECONDS: float = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "60"))
LNURL_TIMEOUT_SECONDS: float = float(os.getenv("LNURL_TIMEOUT_SECONDS", "10"))

# ── Notifications ─────────────────────────────────────────
NOTIFY_ON_FAILURE: bool = os.getenv("NOTIFY_ON_FAILURE", "false").lower() in ("1", "true", "yes")

# ── Security ──────────────────────────────────────────────
_raw_ids = os.getenv("ALLOWED_USER_IDS", "")
ALLOWED_USER_IDS: list[int] = (
    [int(uid.strip()) for uid in _raw_ids.split(",") if uid.strip()]
    if _raw_ids
    else []
)

# ── Rate Limiting ─────────────────────────────────────────
RATE_LIMIT_MESSAGES: int = int(os.getenv("RATE_LIMIT_MESSAGES", "30"))
RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))

# ── Logging ───────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
