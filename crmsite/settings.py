"""Settings for the CRM sandbox project hosting ``secure_dml``."""

from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, []),
    PERMISSIONS_STAFF_BYPASS=(bool, False),
    SECURE_DML_ATOMIC=(bool, True),
    LOG_LEVEL=(str, "INFO"),
)
environ.Env.read_env(BASE_DIR / ".env")

SECRET_KEY = env("SECRET_KEY")
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env("ALLOWED_HOSTS")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "secure_dml",
    "apps.crm",
]

MIDDLEWARE = [
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "secure_dml.middleware.SecureDmlMiddleware",
]

ROOT_URLCONF = "crmsite.urls"
TEMPLATES = []

DATABASES = {
    "default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"),
}

USE_TZ = True
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# secure_dml
PERMISSIONS_STAFF_BYPASS = env("PERMISSIONS_STAFF_BYPASS")
SECURE_DML_ATOMIC = env("SECURE_DML_ATOMIC")
SECURE_DML_EXEMPT_FIELDS = ()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
    },
    "loggers": {
        "secure_dml": {
            "handlers": ["console"],
            "level": env("LOG_LEVEL"),
        },
    },
}
