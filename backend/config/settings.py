"""
Django settings for DocuQuery backend.
"""
import os
import re
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',')
]

# Application definition
INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'apps.authn',
    'apps.docs',
    'apps.quota',
    'apps.rag',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

ASGI_APPLICATION = 'config.asgi.application'

# =============================================================================
# Database
# =============================================================================
POSTGRES_URL_PATTERN = re.compile(
    r'postgres(?:ql)?://(?P<user>[^:]+):(?P<password>[^@]+)@(?P<host>[^:]+):(?P<port>\d+)/(?P<name>.+)'
)


def parse_database_url(url: str) -> dict:
    """Turn a postgres:// URL into a Django DATABASES entry (sqlite fallback)."""
    match = POSTGRES_URL_PATTERN.match(url) if url else None
    if match:
        return {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': match.group('name'),
            'USER': match.group('user'),
            'PASSWORD': match.group('password'),
            'HOST': match.group('host'),
            'PORT': match.group('port'),
        }
    return {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }


DATABASES = {
    'default': parse_database_url(os.getenv('DATABASE_URL', '')),
}

# The lazy embedding repair writes through its own connection so it can run
# under a different database role than the request's reads.
EMBEDDING_WRITER_DATABASE_URL = os.getenv('EMBEDDING_WRITER_DATABASE_URL', '')
if EMBEDDING_WRITER_DATABASE_URL:
    DATABASES['embedding_writer'] = parse_database_url(EMBEDDING_WRITER_DATABASE_URL)
    RAG_EMBEDDING_WRITE_DATABASE = 'embedding_writer'
else:
    RAG_EMBEDDING_WRITE_DATABASE = os.getenv('RAG_EMBEDDING_WRITE_DATABASE', 'default')

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# =============================================================================
# Authentication (bearer JWT issued by the identity provider)
# =============================================================================
AUTH_JWT_SECRET = os.getenv('AUTH_JWT_SECRET', '')
AUTH_JWT_ALGORITHMS = [
    a.strip() for a in os.getenv('AUTH_JWT_ALGORITHMS', 'HS256').split(',')
]
AUTH_JWT_AUDIENCE = os.getenv('AUTH_JWT_AUDIENCE', 'authenticated')
# Empty issuer disables the issuer check
AUTH_JWT_ISSUER = os.getenv('AUTH_JWT_ISSUER', '')

# =============================================================================
# Model providers
# =============================================================================
# "gemini" (default) or "ollama"
EMBEDDING_PROVIDER = os.getenv('EMBEDDING_PROVIDER', 'gemini')
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'gemini')

GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
GEMINI_EMBED_MODEL = os.getenv('GEMINI_EMBED_MODEL', 'text-embedding-004')
GEMINI_TIMEOUT = int(os.getenv('GEMINI_TIMEOUT', '120'))

OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://ollama:11434')
OLLAMA_EMBED_MODEL = os.getenv('OLLAMA_EMBED_MODEL', 'nomic-embed-text')
OLLAMA_CHAT_MODEL = os.getenv('OLLAMA_CHAT_MODEL', 'llama3.2')

# Timeout settings (in seconds) - increase for slower hardware
OLLAMA_CHAT_TIMEOUT = int(os.getenv('OLLAMA_CHAT_TIMEOUT', '600'))  # 10 min
OLLAMA_EMBED_TIMEOUT = int(os.getenv('OLLAMA_EMBED_TIMEOUT', '120'))  # 2 min

# =============================================================================
# RAG query pipeline
# =============================================================================
RAG_DAILY_LIMIT = int(os.getenv('RAG_DAILY_LIMIT', '7'))
RAG_TOP_K = int(os.getenv('RAG_TOP_K', '5'))
RAG_MAX_QUESTION_LENGTH = int(os.getenv('RAG_MAX_QUESTION_LENGTH', '2000'))
# Upper bound on simultaneous calls to the embedding provider
RAG_EMBED_CONCURRENCY = int(os.getenv('RAG_EMBED_CONCURRENCY', '5'))

# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'json': {
            'format': '%(message)s',  # Audit logs are already JSON
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'audit': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps.authn': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.rag': {
            'handlers': ['console'],
            'level': 'DEBUG',
            'propagate': False,
        },
        'apps.quota': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'audit': {
            'handlers': ['audit'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
