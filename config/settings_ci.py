from .settings import *

DEBUG = True

ALLOWED_HOSTS = ["*"]

INTERNAL_IPS = ["127.0.0.1", "::1"]

DATABASES = {
    "default": {
        "NAME": BASE_DIR / "bugdb-ci.sqlite3",
        "ENGINE": "django.db.backends.sqlite3",
        "ATOMIC_REQUESTS": True,  # perform HTTP requests as atomic transactions
    }
}

STATIC_ROOT = BASE_DIR / "static"
STATIC_URL = "/static/"

# run the tasks in place instead of sending them to the broker
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"
CELERY_BEAT_SCHEDULE = {}

# Email configuration

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

DATA_DIR = "/tmp/bugdb-ci-data"
URLBASE = "http://bugdb-service:8000/"
INSIDERGROUP = "insiders"
TIMETRACKINGGROUP = "timetrackers"
