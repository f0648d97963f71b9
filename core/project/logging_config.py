from pathlib import Path

LOG_DIR = Path(__file__).resolve().parent.parent / "logs"

# Logging Configuration
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {message}',
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
            'level': 'INFO',
            'propagate': False,
        },
        'django.request': {
            'handlers': ['console'],
            'level': 'ERROR',
            'propagate': False,
        },
        'otp': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'celery': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}

# The file handler needs an existing directory; containers mount logs/ when they want it.
if LOG_DIR.is_dir():
    LOGGING['handlers']['file'] = {
        'class': 'logging.FileHandler',
        'filename': str(LOG_DIR / 'django.log'),
        'formatter': 'verbose',
    }
    for name in ('django', 'django.request', 'otp'):
        LOGGING['loggers'][name]['handlers'].append('file')
