from .settings import *

# SECURITY WARNING: keep the secret key used in production/stage secret!
SECRET_KEY = get_random_secret_key()  # pragma: allowlist secret

DEBUG = True

ALLOWED_HOSTS = ["*"]

INTERNAL_IPS = ["127.0.0.1", "::1"]

DATABASES = {
    "default": {
        "NAME": get_env("BUGDB_DB_NAME", default="bugdb"),
        "USER": get_env("BUGDB_DB_USER", default="bugdb_app_user"),
        "PASSWORD": get_env("BUGDB_DB_PASSWORD", default="passw0rd"),
        "HOST": get_env("BUGDB_DB_HOST", default="postgres"),
        "PORT": get_env("BUGDB_DB_PORT", default="5432"),
        "ENGINE": "django.db.backends.postgresql",
        "ATOMIC_REQUESTS": True,  # perform HTTP requests as atomic transactions
        "OPTIONS": {
            # prevent libpq from automatically trying to connect to the db via GSSAPI
            "gssencmode": "disable",
        },
    }
}

STATIC_ROOT = "/var/www/bugdb/static/"
STATIC_URL = "/static/"

# Email configuration

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# Setup rotation logging into filesystem
LOG_FILE_SIZE_1KB = 1024
LOG_FILE_SIZE_1MB = LOG_FILE_SIZE_1KB * LOG_FILE_SIZE_1KB
LOG_FILE_COUNT = 3
LOG_FILE_PATH = get_env("BUGDB_LOG_PATH", default=str(BASE_DIR / "log"))

LOGGING["handlers"]["celery"] = {
    "class": "logging.handlers.RotatingFileHandler",
    "formatter": "verbose_celery",
    "filename": f"{LOG_FILE_PATH}/local-celery.log",
    "maxBytes": LOG_FILE_SIZE_1MB,
    "backupCount": LOG_FILE_COUNT,
}
