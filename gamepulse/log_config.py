# gamepulse/log_config.py

"""
Logging configuration for GamePulse.

Dictionary-based setup for Python's logging module. The console gets a short
format; rotating files keep a detailed service log and a separate error log so
they never grow without bound.
"""

import copy
import logging.config
import logging.handlers
import os

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,

    'formatters': {
        'detailed': {
            'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        },
        'simple': {
            'format': '%(asctime)s [%(levelname)s] %(message)s'
        }
    },

    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
            'level': 'INFO',
        },
        'service_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': 'logs/gamepulse.log',
            'formatter': 'detailed',
            'level': 'INFO',
            'maxBytes': 10485760,   # 10MB
            'backupCount': 3,
            'encoding': 'utf-8'
        },
        'errors_file': {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': 'logs/errors.log',
            'formatter': 'detailed',
            'level': 'WARNING',
            'maxBytes': 26214400,   # 25MB
            'backupCount': 3,
            'encoding': 'utf-8'
        }
    },

    'loggers': {
        'gamepulse': {
            'handlers': ['console', 'service_file', 'errors_file'],
            'level': 'INFO',
            'propagate': False
        },
        'aiohttp': {
            'handlers': ['errors_file'],
            'level': 'WARNING',
            'propagate': False
        },
        'urllib3': {
            'handlers': ['errors_file'],
            'level': 'WARNING',
            'propagate': False
        }
    },

    'root': {
        'handlers': ['console', 'errors_file'],
        'level': 'WARNING',
    }
}


def setup_logging(config) -> dict:
    """
    Apply LOGGING_CONFIG with file paths under the configured log directory.

    Args:
        config: GamePulseConfig providing log_dir and log_level

    Returns:
        dict: The logging configuration that was applied
    """
    os.makedirs(config.log_dir, exist_ok=True)

    logging_config = copy.deepcopy(LOGGING_CONFIG)
    for handler in logging_config['handlers'].values():
        if 'filename' in handler:
            handler['filename'] = os.path.join(config.log_dir, os.path.basename(handler['filename']))

    logging_config['loggers']['gamepulse']['level'] = config.log_level
    logging_config['handlers']['console']['level'] = config.log_level

    logging.config.dictConfig(logging_config)
    return logging_config
