"""
Django settings for dlc_gateway project.
"""
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-secret-key-change-in-production')
DEBUG = os.getenv('DEBUG', 'True').lower() == 'true'
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'registrations',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'dlc_gateway.urls'

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

ASGI_APPLICATION = 'dlc_gateway.asgi.application'

RUNNING_TESTS = (
    os.getenv('USE_SQLITE_FOR_TESTS', '').lower() == 'true'
    or any('pytest' in arg for arg in sys.argv)
    or bool(os.getenv('PYTEST_CURRENT_TEST'))
)

# Database configuration
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DB_NAME', 'dlc_gateway'),
        'USER': os.getenv('DB_USER', 'postgres'),
        'PASSWORD': os.getenv('DB_PASSWORD', 'postgres'),
        'HOST': os.getenv('DB_HOST', 'localhost'),
        'PORT': os.getenv('DB_PORT', '5432'),
    }
}

# Cache backs the reconciliation lock
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        'LOCATION': os.getenv('CACHE_URL', 'redis://localhost:6379/1'),
    }
}

# Use SQLite and an in-process cache for tests to avoid requiring running services
if RUNNING_TESTS:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('SQLITE_NAME', ':memory:'),
        }
    }
    CACHES = {
        'default': {
            'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Celery configuration
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'

# Reconciliation poll cadence and webhook requeue sweep (seconds)
RECONCILIATION_INTERVAL_SECONDS = int(os.getenv('RECONCILIATION_INTERVAL_SECONDS', '300'))
RECONCILIATION_BATCH_SIZE = int(os.getenv('RECONCILIATION_BATCH_SIZE', '50'))
WEBHOOK_REQUEUE_AFTER_SECONDS = int(os.getenv('WEBHOOK_REQUEUE_AFTER_SECONDS', '600'))

CELERY_BEAT_SCHEDULE = {
    'reconcile-pending-registrations': {
        'task': 'registrations.tasks.reconcile_pending_registrations',
        'schedule': RECONCILIATION_INTERVAL_SECONDS,
    },
    'requeue-stale-webhook-events': {
        'task': 'registrations.tasks.requeue_stale_webhook_events',
        'schedule': WEBHOOK_REQUEUE_AFTER_SECONDS,
    },
}

if RUNNING_TESTS:
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True
    CELERY_TASK_EAGER_PROPAGATES = True

# Registry (Telnyx 10DLC) API configuration
TELNYX_API_KEY = os.getenv('TELNYX_API_KEY', '')
TELNYX_API_BASE_URL = os.getenv('TELNYX_API_BASE_URL', 'https://api.telnyx.com/v2')
REGISTRY_REQUEST_TIMEOUT = float(os.getenv('REGISTRY_REQUEST_TIMEOUT', '30'))
REGISTRY_MAX_ATTEMPTS = int(os.getenv('REGISTRY_MAX_ATTEMPTS', '3'))
REGISTRY_BACKOFF_BASE_SECONDS = float(os.getenv('REGISTRY_BACKOFF_BASE_SECONDS', '1'))

# Webhook authentication (base64 Ed25519 public key from the registry portal)
TELNYX_WEBHOOK_PUBLIC_KEY = os.getenv('TELNYX_WEBHOOK_PUBLIC_KEY', '')
WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS = int(os.getenv('WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS', '300'))
WEBHOOK_BASE_URL = os.getenv('WEBHOOK_BASE_URL', 'http://localhost:8000')

# Brand defaults
DLC_DEFAULT_ENTITY_TYPE = os.getenv('DLC_DEFAULT_ENTITY_TYPE', 'NON_PROFIT')
DLC_DEFAULT_VERTICAL = os.getenv('DLC_DEFAULT_VERTICAL', 'NGO')

# Delivery tiers
DEFAULT_DELIVERY_RATE = float(os.getenv('DEFAULT_DELIVERY_RATE', '0.65'))
ELEVATED_DELIVERY_RATE = float(os.getenv('ELEVATED_DELIVERY_RATE', '0.99'))

# Poller schedule for individual records (minutes)
FIRST_CHECK_DELAY_MINUTES = int(os.getenv('FIRST_CHECK_DELAY_MINUTES', '15'))
RECHECK_INTERVAL_MINUTES = int(os.getenv('RECHECK_INTERVAL_MINUTES', '30'))

# Campaign submissions claimed longer ago than this are treated as abandoned
CAMPAIGN_CLAIM_TIMEOUT_MINUTES = int(os.getenv('CAMPAIGN_CLAIM_TIMEOUT_MINUTES', '10'))

# Logging configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
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
        'registrations': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
    },
}

# REST Framework configuration
REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
    ],
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'UNAUTHENTICATED_USER': None,
}
