"""Django settings for the loyalty orders service.

All values come from environment variables read once at startup. The
rewards provider settings are frozen into ``RewardsConfig`` by
``apps.orders.providers`` and injected into the HTTP adapter.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent  # .../web


def env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "apps.users",
    "apps.orders",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "loyalty.urls"
WSGI_APPLICATION = "loyalty.wsgi.application"

# ---- Database ----
if os.getenv("DATABASE_ENGINE", "sqlite") == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DATABASE_NAME", "orders"),
            "USER": os.getenv("DATABASE_USER", "app"),
            "PASSWORD": os.getenv("DATABASE_PASSWORD", "app"),
            "HOST": os.getenv("DATABASE_HOST", "orders-db"),
            "PORT": os.getenv("DATABASE_PORT", "5432"),
            "CONN_MAX_AGE": int(os.getenv("DATABASE_CONN_MAX_AGE", "60")),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DATABASE_NAME", str(BASE_DIR / "db.sqlite3")),
            # Writers queue on the file lock instead of failing at once
            "OPTIONS": {"timeout": int(os.getenv("DATABASE_TIMEOUT_SECS", "20"))},
            # File-backed test database so threaded tests share real locking
            "TEST": {"NAME": os.getenv("DATABASE_TEST_NAME", str(BASE_DIR / "test_db.sqlite3"))},
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
USE_TZ = True
TIME_ZONE = "UTC"

# ---- API ----
API_MAX_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_THROTTLE_RATES": {
        "orders_create": os.getenv("THROTTLE_ORDERS_CREATE", "600/min"),
        "orders_detail": os.getenv("THROTTLE_ORDERS_DETAIL", "1200/min"),
        "rewards_evaluate": os.getenv("THROTTLE_REWARDS_EVALUATE", "600/min"),
        "users_detail": os.getenv("THROTTLE_USERS_DETAIL", "1200/min"),
    },
}

# ---- Rewards provider ----
USE_HTTP_ADAPTERS = env_bool("USE_HTTP_ADAPTERS", True)
REWARDS_BASE_URL = os.getenv("REWARDS_BASE_URL", "http://rewards:9002")
REWARDS_API_KEY = os.getenv("REWARDS_API_KEY", "")
REWARDS_TIMEOUT_SECS = float(os.getenv("REWARDS_TIMEOUT_SECS", "3.0"))
REWARDS_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("REWARDS_CIRCUIT_FAIL_THRESHOLD", "5"))
REWARDS_CIRCUIT_RESET_TIMEOUT = float(os.getenv("REWARDS_CIRCUIT_RESET_TIMEOUT", "30.0"))
# Flat discount granted by RewardsStub when USE_HTTP_ADAPTERS is off
REWARDS_STUB_DISCOUNT = os.getenv("REWARDS_STUB_DISCOUNT", "0")

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "django.request": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}
