"""
Django settings for the IT Support Desk - Base Configuration
Ticket lifecycle engine with after-commit notification fan-out.
"""

import os
from pathlib import Path
from typing import Any

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Application definition
DJANGO_APPS: list[str] = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

THIRD_PARTY_APPS: list[str] = [
    'rest_framework',
    'django_q',
]

LOCAL_APPS: list[str] = [
    'apps.common',
    'apps.users',
    'apps.tickets',
    'apps.notifications',  # 📨 In-app notifications & ticket emails
    'apps.audit',
]

INSTALLED_APPS: list[str] = DJANGO_APPS + THIRD_PARTY_APPS + LOCAL_APPS

MIDDLEWARE: list[str] = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# ===============================================================================
# DATABASE CONFIGURATION
# ===============================================================================

# Upper bound for any single statement; timeouts surface as OperationTimeoutError
TICKET_DB_TIMEOUT_SECONDS = int(os.environ.get('TICKET_DB_TIMEOUT_SECONDS', '10'))

DATABASES: dict[str, dict[str, Any]] = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.environ.get('DB_NAME', 'supportdesk'),
        'USER': os.environ.get('DB_USER', 'supportdesk'),
        'PASSWORD': os.environ.get('DB_PASSWORD', 'development_password'),
        'HOST': os.environ.get('DB_HOST', 'localhost'),
        'PORT': os.environ.get('DB_PORT', '5432'),
        'CONN_MAX_AGE': 60,  # Database connection pooling
        'OPTIONS': {
            'application_name': 'supportdesk',
            'connect_timeout': TICKET_DB_TIMEOUT_SECONDS,
            'options': f'-c statement_timeout={TICKET_DB_TIMEOUT_SECONDS * 1000}',
        },
    }
}

# ===============================================================================
# AUTHENTICATION & AUTHORIZATION
# ===============================================================================

AUTH_USER_MODEL = 'users.User'

AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
        'OPTIONS': {
            'min_length': 12,
        }
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# ===============================================================================
# INTERNATIONALIZATION & LOCALIZATION
# ===============================================================================

LANGUAGE_CODE = 'en'
TIME_ZONE = os.environ.get('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

# ===============================================================================
# STATIC FILES & MEDIA
# ===============================================================================

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

MEDIA_URL = '/media/'
MEDIA_ROOT = BASE_DIR / 'media'

# Ticket attachments are written through STORAGES["default"]
STORAGES: dict[str, dict[str, Any]] = {
    'default': {
        'BACKEND': 'django.core.files.storage.FileSystemStorage',
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.ManifestStaticFilesStorage',
    },
}

# ===============================================================================
# SESSION & COOKIE SETTINGS
# ===============================================================================

SESSION_COOKIE_AGE = 86400  # 24 hours
SESSION_COOKIE_HTTPONLY = True
CSRF_COOKIE_HTTPONLY = True
CSRF_TRUSTED_ORIGINS: list[str] = []

# ===============================================================================
# ADDITIONAL SECURITY SETTINGS
# ===============================================================================

SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = 'DENY'

# File upload security
FILE_UPLOAD_MAX_MEMORY_SIZE = 10485760  # 10MB
DATA_UPLOAD_MAX_MEMORY_SIZE = 10485760  # 10MB
FILE_UPLOAD_PERMISSIONS = 0o644

# ===============================================================================
# TICKET ATTACHMENT POLICY 🔒
# ===============================================================================

TICKET_ATTACHMENT_POLICY: dict[str, Any] = {
    'max_files': int(os.environ.get('TICKET_ATTACHMENT_MAX_FILES', '5')),
    'max_size_bytes': int(os.environ.get('TICKET_ATTACHMENT_MAX_SIZE_BYTES', '10485760')),
    'allowed_extensions': ['jpg', 'jpeg', 'png', 'pdf', 'doc', 'docx'],
    'allowed_mime_types': [
        'image/jpeg',
        'image/png',
        'application/pdf',
        'application/msword',
        'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    ],
}

# ===============================================================================
# EMAIL CONFIGURATION 📧
# ===============================================================================

EMAIL_BACKEND = os.environ.get('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.environ.get('EMAIL_HOST', 'smtp.gmail.com')
EMAIL_PORT = int(os.environ.get('EMAIL_PORT', '587'))
EMAIL_HOST_USER = os.environ.get('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.environ.get('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = True
EMAIL_USE_SSL = False  # Use TLS instead of SSL
EMAIL_TIMEOUT = int(os.environ.get('EMAIL_TIMEOUT', '10'))
DEFAULT_FROM_EMAIL = os.environ.get('DEFAULT_FROM_EMAIL', 'IT Support <support@example.com>')

TICKET_EMAIL_BRAND_NAME = os.environ.get('TICKET_EMAIL_BRAND_NAME', 'IT Support')
# Emails stay off until SMTP credentials are configured
TICKET_EMAIL_NOTIFICATIONS_ENABLED = (
    os.environ.get('TICKET_EMAIL_NOTIFICATIONS_ENABLED', 'false').lower() == 'true'
    and bool(EMAIL_HOST_USER and EMAIL_HOST_PASSWORD)
)

# ===============================================================================
# DJANGO-Q2 TASK QUEUE 🔄
# ===============================================================================

TICKET_NOTIFICATION_TASK_TIMEOUT = int(os.environ.get('TICKET_NOTIFICATION_TASK_TIMEOUT', '60'))

Q_CLUSTER_BASE = {
    'name': 'supportdesk-cluster',
    'timeout': 120,
    'retry': 180,  # must exceed timeout
    'save_limit': 1000,  # Keep last 1000 task results
    'catch_up': False,
    'orm': 'default',  # Database broker
    'bulk': 10,
    'queue_limit': 100,
}

Q_CLUSTER = {
    **Q_CLUSTER_BASE,
    'workers': 2,
    'recycle': 500,  # Restart workers after 500 tasks
    'sync': False,
}

# ===============================================================================
# LOGGING CONFIGURATION
# ===============================================================================

LOGGING: dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {process:d} {thread:d} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
        'apps': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# ===============================================================================
# DEFAULT AUTO FIELD
# ===============================================================================

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# ===============================================================================
# SECURITY SETTINGS (Base - override in prod.py)
# ===============================================================================

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY')
if not SECRET_KEY:
    # Development fallback - never use this in production
    import warnings
    warnings.warn(
        "🚨 SECURITY WARNING: Using default SECRET_KEY. "
        "Set DJANGO_SECRET_KEY environment variable for production!",
        UserWarning,
        stacklevel=2
    )
    SECRET_KEY = 'django-insecure-dev-key-only-change-in-production-or-tests'  # noqa: S105


def validate_production_secret_key() -> None:
    """Validate SECRET_KEY meets production security requirements"""
    if SECRET_KEY and SECRET_KEY.startswith('django-insecure-'):
        raise ValueError(
            "🔥 CRITICAL SECURITY ERROR: Cannot use insecure SECRET_KEY in production! "
            "Set DJANGO_SECRET_KEY to a securely generated value."
        )
