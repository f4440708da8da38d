"""
Django base settings for bugdb


"""
import socket
from pathlib import Path

from celery.schedules import crontab
from django.core.management.utils import get_random_secret_key

from bugdb.helpers import get_env

DEBUG: bool = get_env("BUGDB_DEBUG", default="False", is_bool=True)

SECRET_KEY = get_random_secret_key()  # pragma: allowlist secret

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

ALLOWED_HOSTS = [
    # Allow local host's IP address and hostname for health probes
    socket.gethostname(),
    socket.gethostbyname(socket.gethostname()),
]

BUGDB_MAINTAINER = get_env("BUGDB_MAINTAINER", default="bugdb-admin@localhost")
# Mail these people on uncaught exceptions that result in 500 errors
ADMINS = [("bugdb maintainers", BUGDB_MAINTAINER)]

# Email settings - override for specific environments as needed
MAILFROM = get_env("BUGDB_MAILFROM", default="bugzilla-daemon")
SERVER_EMAIL = f"bugdb <{BUGDB_MAINTAINER}>"
DEFAULT_FROM_EMAIL = MAILFROM
EMAIL_PORT = get_env("BUGDB_EMAIL_PORT", default="25", is_int=True)
EMAIL_HOST = get_env("BUGDB_EMAIL_SERVER", default="localhost")
EMAIL_USE_TLS = get_env("BUGDB_EMAIL_USE_TLS", default="False", is_bool=True)

DEFAULT_AUTO_FIELD = "django.db.models.AutoField"

BLACKLISTED_HTTP_METHODS = ()
READONLY_MODE: bool = get_env("BUGDB_READONLY_MODE", default="False", is_bool=True)

# Site parameters

# base URL of the installation used in the mails
URLBASE = get_env("BUGDB_URLBASE", default="http://localhost:8000/")
# directory of the collected statistics
DATA_DIR = get_env("BUGDB_DATA_DIR", default=str(BASE_DIR / "data"))

USEQACONTACT: bool = get_env("BUGDB_USEQACONTACT", default="False", is_bool=True)
USETARGETMILESTONE: bool = get_env(
    "BUGDB_USETARGETMILESTONE", default="False", is_bool=True
)
MUSTHAVEMILESTONEONACCEPT: bool = get_env(
    "BUGDB_MUSTHAVEMILESTONEONACCEPT", default="False", is_bool=True
)
USEBUGALIASES: bool = get_env("BUGDB_USEBUGALIASES", default="True", is_bool=True)
USEVISIBILITYGROUPS: bool = get_env(
    "BUGDB_USEVISIBILITYGROUPS", default="False", is_bool=True
)
STRICT_ISOLATION: bool = get_env(
    "BUGDB_STRICT_ISOLATION", default="False", is_bool=True
)
LETSUBMITTERCHOOSEPRIORITY: bool = get_env(
    "BUGDB_LETSUBMITTERCHOOSEPRIORITY", default="True", is_bool=True
)
COMMENTONCHANGE_RESOLUTION: bool = get_env(
    "BUGDB_COMMENTONCHANGE_RESOLUTION", default="False", is_bool=True
)
COMMENTONDUPLICATE: bool = get_env(
    "BUGDB_COMMENTONDUPLICATE", default="False", is_bool=True
)
NORESOLVEONOPENBLOCKERS: bool = get_env(
    "BUGDB_NORESOLVEONOPENBLOCKERS", default="False", is_bool=True
)
USEVOTES: bool = get_env("BUGDB_USEVOTES", default="True", is_bool=True)

# groups whose members see the private data and the time tracking
INSIDERGROUP = get_env("BUGDB_INSIDERGROUP", default="")
TIMETRACKINGGROUP = get_env("BUGDB_TIMETRACKINGGROUP", default="")
# logins receiving the mail of every bug change
GLOBALWATCHERS = get_env("BUGDB_GLOBALWATCHERS", default="")

EMAILSUFFIX = get_env("BUGDB_EMAILSUFFIX", default="")
EMAILREGEXP = get_env(
    "BUGDB_EMAILREGEXP", default=r"^[\w\.\+\-=]+@[\w\.\-]+\.[\w\-]+$"
)
# empty disables the account self-creation
CREATEEMAILREGEXP = get_env("BUGDB_CREATEEMAILREGEXP", default=".*")

DEFAULTPRIORITY = get_env("BUGDB_DEFAULTPRIORITY", default="P2")
DEFAULTSEVERITY = get_env("BUGDB_DEFAULTSEVERITY", default="normal")
DEFAULTPLATFORM = get_env("BUGDB_DEFAULTPLATFORM", default="All")
DEFAULTOPSYS = get_env("BUGDB_DEFAULTOPSYS", default="All")
MAXUSERMATCHES = get_env("BUGDB_MAXUSERMATCHES", default="1000", is_int=True)

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_celery_results",
    "django_extensions",
    "rest_framework",
    "django_filters",
    "bugdb",
    "apps.bugmail",
    "apps.whine",
    "apps.workflows",
    "collectors.stats",
    "drf_spectacular",
    "rest_framework_simplejwt",
    "rest_framework_simplejwt.token_blacklist",
    "corsheaders",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django.middleware.gzip.GZipMiddleware",
]

AUTHENTICATION_BACKENDS = [
    "django.contrib.auth.backends.ModelBackend",
]

REST_FRAMEWORK = {
    "DEFAULT_FILTER_BACKENDS": ["django_filters.rest_framework.DjangoFilterBackend"],
    "DEFAULT_AUTHENTICATION_CLASSES": ("bugdb.auth.BugdbTokenAuthentication",),
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_PAGINATION_CLASS": "bugdb.pagination.HardLimitOffsetPagination",
    "PAGE_SIZE": 100,
    "MAX_PAGE_SIZE": 1000,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "bugdb.exception_handlers.exception_handler",
}

SIMPLE_JWT = {
    "ROTATE_REFRESH_TOKENS": False,
    "BLACKLIST_AFTER_ROTATION": True,
    "UPDATE_LAST_LOGIN": True,
}

ROOT_URLCONF = "config.urls"

STATIC_URL = "/static/"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# the passwords are checked by the account creation itself
AUTH_PASSWORD_VALIDATORS = []


# Internationalization
# https://docs.djangoproject.com/en/3.1/topics/i18n/
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Celery application definition
CELERY_BROKER_URL = get_env("BUGDB_CELERY_BROKER_URL", default="redis://redis:6379/")
CELERY_RESULT_BACKEND = "django-db"

# Retry tasks due to database failures instead of immediately re-raising exceptions
CELERY_RESULT_BACKEND_ALWAYS_RETRY = True
CELERY_RESULT_BACKEND_MAX_RETRIES = 2
CELERY_RESULT_EXTENDED = True
CELERY_TASK_TRACK_STARTED = True

CELERY_TASK_SOFT_TIME_LIMIT = 3600
CELERY_TASK_IGNORE_RESULT = False
CELERY_BEAT_SCHEDULE = {
    "collect_stats": {
        "task": "collectors.stats.tasks.collect_stats",
        # Every day right after the midnight UTC
        "schedule": crontab(hour=0, minute=5),
    },
    "collect_series_data": {
        "task": "collectors.stats.tasks.collect_series_data",
        "schedule": crontab(hour=0, minute=15),
    },
    "run_whines": {
        "task": "apps.whine.tasks.run_whines",
        # the whine schedules are planned with the minute precision
        "schedule": crontab(minute="*/15"),
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose_celery": {
            "()": "bugdb.helpers.TaskFormatter",
            "format": "%(asctime)s [%(levelname)s] %(task_name)s%(task_id)s: %(message)s",
        },
        "verbose": {
            # exact format is not important, this is the minimum information
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "verbose"},
        "celery": {
            "level": "WARNING",
            "class": "logging.StreamHandler",
            "formatter": "verbose_celery",
        },
    },
    "loggers": {
        "django.utils.autoreload": {
            "level": "ERROR",
            "handlers": ["console"],
        },
        "django": {
            "level": "WARNING",
            "handlers": ["console"],
        },
        "celery": {"handlers": ["celery"], "level": "INFO", "propagate": True},
        "bugdb": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        "api_req": {"level": "WARNING", "handlers": ["console"], "propagate": False},
        # app loggers
        **{
            app_name: {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": True,
            }
            for app_name in [
                "apps.bugmail",
                "apps.whine",
                "apps.workflows",
            ]
        },
        # Collectors loggers
        **{
            collector_name: {
                "level": "WARNING",
                "handlers": ["celery"],
                "propagate": True,
            }
            for collector_name in [
                "collectors.stats",
            ]
        },
    },
}

if DEBUG:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.dummy.DummyCache",
        }
    }

# Settings for the drf-spectacular package
SPECTACULAR_SETTINGS = {
    "TITLE": "bugdb API",
    "DESCRIPTION": "REST API autogenerated docs for the bugdb and its components",
    "VERSION": "1.0.0",
    "SWAGGER_UI_SETTINGS": {"supportedSubmitMethods": []},
    "SERVE_AUTHENTICATION": [
        "bugdb.auth.BugdbTokenAuthentication",
    ],
    "POSTPROCESSING_HOOKS": [
        "drf_spectacular.hooks.postprocess_schema_enums",
    ],
}

CORS_ALLOWED_ORIGINS = get_env("BUGDB_CORS_ALLOWED_ORIGINS", default="[]", is_json=True)
CORS_ALLOW_CREDENTIALS = True
