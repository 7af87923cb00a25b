from decouple import config as _config

from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK
from .base import *  # noqa

DEBUG = True

# In dev, allow the browsable API and relaxed CORS
CORS_ALLOW_ALL_ORIGINS = True

# Email backend for dev
EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# Khalti's sandbox host unless explicitly overridden
KHALTI_BASE_URL = _config("KHALTI_BASE_URL", default="https://dev.khalti.com/api/v2/")

# Optional Redis cache for local parity
_REDIS_URL = _config("REDIS_URL", default="")
if _REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": _REDIS_URL,
        }
    }
    SESSION_ENGINE = "django.contrib.sessions.backends.cached_db"

REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = [
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
]

# Verbose domain logs locally
LOGGING = {
    **LOGGING,  # noqa: F405
    "loggers": {
        "elixa.cart": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
        "elixa.orders": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
        "elixa.payments": {"handlers": ["console"], "level": "DEBUG", "propagate": False},
    },
}
