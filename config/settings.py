"""
Tradeflow – Django Settings (Infrastructure Only)
==================================================
Django is the persistence and configuration container for Tradeflow.
Engines register as Django apps; everything environment-specific is
read from TRADEFLOW_* variables.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get(
    "TRADEFLOW_SECRET_KEY", "tradeflow-dev-key-replace-before-deployment",
)

DEBUG = os.environ.get("TRADEFLOW_DEBUG", "1") == "1"

ALLOWED_HOSTS = []

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    # ── Tradeflow modules ─────────────────────────────────
    "core.numbering_store",
    "engines.inventory",
    "engines.sales",
]

MIDDLEWARE = []

# ── Database ──────────────────────────────────────────────────
# SQLite for development. Production sets engine and name explicitly.
DATABASES = {
    "default": {
        "ENGINE": os.environ.get("TRADEFLOW_DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": os.environ.get("TRADEFLOW_DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": os.environ.get("TRADEFLOW_DB_USER", ""),
        "PASSWORD": os.environ.get("TRADEFLOW_DB_PASSWORD", ""),
        "HOST": os.environ.get("TRADEFLOW_DB_HOST", ""),
        "PORT": os.environ.get("TRADEFLOW_DB_PORT", ""),
    }
}

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Tradeflow ─────────────────────────────────────────────────
# CLAMP: outbound movements larger than stock on hand take what is left.
# REJECT: they are refused with INSUFFICIENT_STOCK.
TRADEFLOW_OUTBOUND_POLICY = os.environ.get("TRADEFLOW_OUTBOUND_POLICY", "CLAMP")

# Days between invoice date and due date when no due date is given.
TRADEFLOW_PAYMENT_TERM_DAYS = int(os.environ.get("TRADEFLOW_PAYMENT_TERM_DAYS", "30"))

# ── Logging ───────────────────────────────────────────────────
LOG_LEVEL = os.environ.get("TRADEFLOW_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "tradeflow": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": True,
        },
    },
}
