from .base import *  # noqa
from .base import BASE_DIR
from .base import REST_FRAMEWORK as BASE_REST_FRAMEWORK

# Test settings: force SQLite for reliability and speed
DEBUG = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "test_db.sqlite3",
    }
}

# Keep emails in memory
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Hashing speed over strength in tests
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# Plain static storage; no manifest needed in tests
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

KHALTI_SECRET_KEY = "test-secret-key"
KHALTI_BASE_URL = "https://khalti.test/api/v2/"
FRONTEND_URL = "http://frontend.test"

# Relax throttling for tests to reduce flakiness
REST_FRAMEWORK = {**BASE_REST_FRAMEWORK}
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {
    **BASE_REST_FRAMEWORK.get("DEFAULT_THROTTLE_RATES", {}),
    "user": "10000/min",
    "anon": "10000/min",
    "catalog": "10000/min",
    "cart": "10000/min",
    "cart_write": "10000/min",
    "orders": "10000/min",
    "payments": "10000/min",
}
