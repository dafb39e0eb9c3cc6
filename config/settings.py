from pathlib import Path
import os
from datetime import timedelta

import sentry_sdk
from sentry_sdk.integrations.django import DjangoIntegration

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only")
DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"
APPEND_SLASH = True

ALLOWED_HOSTS = ["*", "localhost", "127.0.0.1"]

TENANT_PROVISIONING_TOKEN = os.getenv("TENANT_PROVISIONING_TOKEN", "")


INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.sessions",
    "django.contrib.messages",

    "rest_framework",
    "drf_spectacular",
    "django_filters",
    "corsheaders",

    "commons",   # health/time endpoints
    "tenants",   # empresas emissoras (tenant = RUC)
    "usuario",   # AUTH_USER_MODEL
    "fiscal.apps.FiscalConfig",
]


MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "commons.middleware.RequestLogMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "config.urls"

CORS_ALLOW_ALL_ORIGINS = True

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("PGDATABASE", "fiscaldados"),
        "USER": os.getenv("PGUSER", "postgres"),
        "PASSWORD": os.getenv("PGPASSWORD", ""),
        "HOST": os.getenv("PGHOST", "127.0.0.1"),
        "PORT": os.getenv("PGPORT", "5432"),
        "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
    }
}

AUTH_USER_MODEL = "usuario.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_FILTER_BACKENDS": ["django_filters.rest_framework.DjangoFilterBackend"],
    "DEFAULT_THROTTLE_CLASSES": ["rest_framework.throttling.UserRateThrottle"],
    "DEFAULT_THROTTLE_RATES": {"user": "60/min"},
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "SIGNING_KEY": SECRET_KEY,
    "AUTH_HEADER_TYPES": ("Bearer",),
}

LANGUAGE_CODE = "pt-br"
TIME_ZONE = "America/Lima"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"

# Blobs fiscais (XML, XML assinado, recibos/CDR). Chaves sempre prefixadas
# pelo tenant_id, ver fiscal.repositories.RepositorioArquivos.
MEDIA_ROOT = os.getenv("FISCAL_MEDIA_ROOT", str(BASE_DIR / "media"))
MEDIA_URL = "/media/"

SPECTACULAR_SETTINGS = {
    "TITLE": "GetStart Fiscal API",
    "VERSION": "1.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

sentry_sdk.init(
    dsn=os.getenv("SENTRY_DSN", ""),
    integrations=[DjangoIntegration()],
    traces_sample_rate=0.1,
    send_default_pii=False,
)

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
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

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "fiscal-default",
    }
}

# =============================
# Fiscal (autoridade tributária / reenvio / certificados)
# =============================
FISCAL = {
    # "homologacao" | "producao"
    "AMBIENTE": os.getenv("FISCAL_AMBIENTE", "homologacao"),
    # "mock" | "soap"
    "AUTORIDADE_CLIENT": os.getenv("FISCAL_AUTORIDADE_CLIENT", "mock"),
    "AUTORIDADE_TIMEOUT": int(os.getenv("FISCAL_AUTORIDADE_TIMEOUT", "60")),
    "REENVIO_MAX_TENTATIVAS": int(os.getenv("FISCAL_REENVIO_MAX_TENTATIVAS", "3")),
    "REENVIO_DELAY_INICIAL_MS": int(os.getenv("FISCAL_REENVIO_DELAY_INICIAL_MS", "1000")),
    "REENVIO_MULTIPLICADOR": float(os.getenv("FISCAL_REENVIO_MULTIPLICADOR", "2")),
    "REENVIO_INTERROMPER_NAO_RECUPERAVEL": os.getenv(
        "FISCAL_REENVIO_INTERROMPER_NAO_RECUPERAVEL", "0"
    ) == "1",
    # Chave Fernet (urlsafe base64, 32 bytes). Vazia → derivada do SECRET_KEY.
    "CHAVE_CIFRAGEM": os.getenv("FISCAL_CHAVE_CIFRAGEM", ""),
    "DIAS_ALERTA_VENCIMENTO_CERTIFICADO": 30,
    "SERIES_PADRAO": {
        "FATURA": "F001",
        "BOLETA": "B001",
        "NOTA_CREDITO": "NC01",
    },
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "class": "pythonjsonlogger.json.JsonFormatter",
        },
        "simple": {
            "format": "{levelname} {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "level": "INFO",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": True,
        },
        "fiscal": {
            "handlers": ["console"],
            "level": "DEBUG",
            "propagate": True,
        },
    },
}

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
SECURE_HSTS_SECONDS = 63072000
SECURE_CONTENT_TYPE_NOSNIFF = True
