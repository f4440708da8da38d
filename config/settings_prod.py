import ssl

from .settings import *

# django secret key provided by the deployment
SECRET_KEY = get_env("DJANGO_SECRET_KEY")

# We trust the proxy to strip the X-Forwarded-Proto header and to set it to "https" if
# the request came over HTTPS from the client to the proxy.
USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

ALLOWED_HOSTS += get_env("BUGDB_ALLOWED_HOSTS", default="[]", is_json=True)

DATABASES = {
    "default": {
        "NAME": get_env("BUGDB_DB_NAME", default="bugdb"),
        "USER": get_env("BUGDB_DB_USER"),
        "PASSWORD": get_env("BUGDB_DB_PASSWORD"),
        "HOST": get_env("BUGDB_DB_HOST"),
        "PORT": get_env("BUGDB_DB_PORT", default="5432"),
        "ENGINE": "django.db.backends.postgresql",
        "ATOMIC_REQUESTS": True,
        "OPTIONS": {"sslmode": "require"},
        "CONN_MAX_AGE": 120,
    }
}

LOGOUT_REDIRECT_URL = "/"
LOGIN_REDIRECT_URL = "/"

STATIC_ROOT = "/opt/app-root/static/"
STATIC_URL = "/static/"

EMAIL_USE_TLS = True

# Celery settings

REDIS_PASSWORD = get_env("BUGDB_REDIS_PASSWORD")
CELERY_BROKER_URL = f"rediss://:{REDIS_PASSWORD}@redis:6379/"
CELERY_BROKER_USE_SSL = {
    "ssl_keyfile": "/opt/app-root/etc/redis/certs/bugdb-redis.key",
    "ssl_certfile": "/opt/app-root/etc/redis/certs/bugdb-redis.crt",
    "ssl_ca_certs": "/opt/app-root/etc/redis/certs/bugdb-redis-ca.crt",
    "ssl_cert_reqs": ssl.CERT_REQUIRED,
}
