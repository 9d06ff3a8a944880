from .base import *  # noqa: F403
from .base import LOGGING
from .base import REST_FRAMEWORK
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = True
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="m2hV7ZbqJ0dKwQ4pX8rT3yLcN6sE1uGfA9oBiR5jW0vHkMzY7tPxDlCe2nSgUaQ3",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
# Stripe CLI forwards webhooks to localhost
ALLOWED_HOSTS = ["localhost", "0.0.0.0", "127.0.0.1"]  # noqa: S104

# CACHES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#caches
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "",
    },
}

# LOGGING
# ------------------------------------------------------------------------------
LOGGING["loggers"] = {
    "tierbill": {
        "level": "DEBUG",
        "handlers": ["console"],
        "propagate": False,
    },
}

# django-rest-framework
# -------------------------------------------------------------------------------
# Browsable API is handy when poking at the endpoints by hand
REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"] = (
    "rest_framework.renderers.JSONRenderer",
    "rest_framework.renderers.BrowsableAPIRenderer",
)
