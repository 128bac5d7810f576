"""
Django settings for the storefront project.

Configuration is read from the environment (and an optional .env file) so the
same settings module serves local development, CI and production.
"""

import os
from decimal import Decimal
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env')


def _env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes', 'on')


# ========= Core =========
SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-local-development-only')
DEBUG = _env_bool('DEBUG', False)

ALLOWED_HOSTS = ['127.0.0.1', 'localhost', 'testserver'] + [
    host for host in os.getenv('ADDITIONAL_HOSTS', '').split(',') if host
]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    'rest_framework',
    'django_filters',

    'audit',
    'catalog',
    'cart',
    'coupons',
    'orders',
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

ROOT_URLCONF = 'storefront.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'storefront.wsgi.application'

# ========= Database =========
# Stock and payment-status guards are conditional UPDATEs, which hold on both
# backends; PostgreSQL additionally honours select_for_update().
if os.getenv('DB_ENGINE', 'sqlite') == 'postgresql':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('DB_NAME', 'storefront'),
            'USER': os.getenv('DB_USER', 'storefront'),
            'PASSWORD': os.getenv('DB_PASSWORD', ''),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
            'ATOMIC_REQUESTS': False,
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
            # Writers take the database lock at BEGIN and queue behind each other.
            'OPTIONS': {'timeout': 30, 'transaction_mode': 'IMMEDIATE'},
            # On disk so that threaded tests share one database.
            'TEST': {'NAME': BASE_DIR / 'test_db.sqlite3'},
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

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

STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# ========= Cache / rate limiting =========
CACHES = {
    'default': {
        'BACKEND': os.getenv('CACHE_BACKEND', 'django.core.cache.backends.locmem.LocMemCache'),
        'LOCATION': os.getenv('CACHE_LOCATION', 'storefront'),
    }
}

RATELIMIT_ENABLE = _env_bool('RATELIMIT_ENABLE', True)
# LocMemCache is per-process; point CACHE_BACKEND at Redis/Memcached in production.
SILENCED_SYSTEM_CHECKS = ['django_ratelimit.W001']

# ========= REST framework =========
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_FILTER_BACKENDS': [
        'django_filters.rest_framework.DjangoFilterBackend',
    ],
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 20,
}

# ========= Checkout pricing =========
CHECKOUT_CURRENCY = os.getenv('CHECKOUT_CURRENCY', 'INR')
CHECKOUT_FREE_SHIPPING_THRESHOLD = Decimal(os.getenv('CHECKOUT_FREE_SHIPPING_THRESHOLD', '10000'))
CHECKOUT_FLAT_SHIPPING_CHARGE = Decimal(os.getenv('CHECKOUT_FLAT_SHIPPING_CHARGE', '99'))
CHECKOUT_TAX_RATE = Decimal(os.getenv('CHECKOUT_TAX_RATE', '0.18'))

# Cookie identifying an anonymous shopper's cart.
CART_SESSION_COOKIE = 'cart_session_id'

# ========= External adapters =========
ADAPTER_TIMEOUT_SECONDS = float(os.getenv('ADAPTER_TIMEOUT_SECONDS', '10'))

ADAPTER_RETRY = {
    'ATTEMPTS': int(os.getenv('ADAPTER_RETRY_ATTEMPTS', '3')),
    'BASE_DELAY': float(os.getenv('ADAPTER_RETRY_BASE_DELAY', '0.5')),
    'MAX_DELAY': float(os.getenv('ADAPTER_RETRY_MAX_DELAY', '4')),
}

PAYMENT_GATEWAY = {
    'BACKEND': os.getenv('PAYMENT_GATEWAY_BACKEND', 'orders.gateways.RazorpayGateway'),
    'OPTIONS': {
        'key_id': os.getenv('RAZORPAY_KEY_ID', ''),
        'key_secret': os.getenv('RAZORPAY_KEY_SECRET', ''),
    },
}

SHIPPING_CARRIER = {
    'BACKEND': os.getenv('SHIPPING_CARRIER_BACKEND', 'orders.shipping.ShiprocketCarrier'),
    'OPTIONS': {
        'email': os.getenv('SHIPROCKET_EMAIL', ''),
        'password': os.getenv('SHIPROCKET_PASSWORD', ''),
        'pickup_location': os.getenv('SHIPROCKET_PICKUP_LOCATION', 'Primary'),
        'pickup_pincode': os.getenv('SHIPROCKET_PICKUP_PINCODE', '400001'),
    },
}

SHIPMENT_RETRY = {
    'MAX_ATTEMPTS': int(os.getenv('SHIPMENT_RETRY_MAX_ATTEMPTS', '8')),
    'BASE_DELAY': float(os.getenv('SHIPMENT_RETRY_BASE_DELAY', '30')),
    'MAX_DELAY': float(os.getenv('SHIPMENT_RETRY_MAX_DELAY', '3600')),
    'LEASE_SECONDS': float(os.getenv('SHIPMENT_RETRY_LEASE_SECONDS', '120')),
}

# ========= Security headers =========
SECURE_CONTENT_TYPE_NOSNIFF = True
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG

# ========= Logging =========
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
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
        'level': 'WARNING',
    },
    'loggers': {
        'orders': {'level': LOG_LEVEL},
        'coupons': {'level': LOG_LEVEL},
        'cart': {'level': LOG_LEVEL},
        'catalog': {'level': LOG_LEVEL},
        'audit': {'level': LOG_LEVEL},
    },
}
