"""
Django settings for the POS order engine backend.

Values that differ between environments are read from environment
variables; everything engine-specific lives in the POS_ENGINE dict and is
read through outlets.config.EngineSettings.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")

DEBUG = os.environ.get("DJANGO_DEBUG", "True").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "channels",
    "core_backend",
    "outlets",
    "tables",
    "orders",
    "kds",
    "payments",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = None

ASGI_APPLICATION = "core_backend.asgi.application"

# Database
if os.environ.get("POS_DB_ENGINE", "sqlite") == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("POS_DB_NAME", "pos_engine"),
            "USER": os.environ.get("POS_DB_USER", "postgres"),
            "PASSWORD": os.environ.get("POS_DB_PASSWORD", ""),
            "HOST": os.environ.get("POS_DB_HOST", "localhost"),
            "PORT": os.environ.get("POS_DB_PORT", "5432"),
            "OPTIONS": {"connect_timeout": 5},
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.environ.get("POS_DB_NAME", str(BASE_DIR / "db.sqlite3")),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = os.environ.get("POS_TIME_ZONE", "Africa/Abidjan")
LANGUAGE_CODE = "en-us"
USE_I18N = True

# Channels: redis when available, in-process otherwise (dev and tests)
REDIS_URL = os.environ.get("REDIS_URL")
if REDIS_URL:
    CHANNEL_LAYERS = {
        "default": {
            "BACKEND": "channels_redis.core.RedisChannelLayer",
            "CONFIG": {"hosts": [REDIS_URL]},
        }
    }
else:
    CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}

REST_FRAMEWORK = {
    "COERCE_DECIMAL_TO_STRING": True,
}

# Engine configuration (see outlets.config.EngineSettings)
POS_ENGINE = {
    "DEFAULT_CURRENCY": os.environ.get("POS_DEFAULT_CURRENCY", "XOF"),
    # BCEAO note/coin ladder, largest first
    "CASH_DENOMINATIONS": [10000, 5000, 2000, 1000, 500, 250, 200, 100, 50, 25, 10, 5],
    "SPLIT_EPSILON": "0.01",
    "CASH_LIKE_METHODS": ["cash"],
    "REFERENCE_REQUIRED_METHODS": ["mobile_money"],
    "FOLIO_GATEWAY": os.environ.get("POS_FOLIO_GATEWAY", "payments.folio.InMemoryFolioGateway"),
    "ORDER_NUMBER_PREFIX": "POS",
    # covers: light <= 8 < normal <= 15 < heavy <= 20 < overloaded
    "SERVER_LOAD_THRESHOLDS": {"light": 8, "normal": 15, "heavy": 20},
}

LOG_LEVEL = os.environ.get("POS_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        "orders": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "payments": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "kds": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "tables": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "outlets": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
