# services/logger_config.py
import logging
from logging.handlers import RotatingFileHandler
import os
from config import settings

# Libraries that log every HTTP call or model shard at INFO
NOISY_LOGGERS = ("urllib3", "httpx", "sentence_transformers", "transformers", "aiosqlite", "PIL")


def setup_logging():
    """
    Configures the service logger: a rotating file (everything from DEBUG up)
    plus the console at LOG_LEVEL. Safe to call more than once.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)

    # Reconfiguring replaces handlers instead of stacking duplicates
    if logger.hasHandlers():
        logger.handlers.clear()

    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logger.setLevel(logging.DEBUG)
    logger.propagate = True

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )

    try:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.LOG_FILE_PATH,
            maxBytes=settings.LOG_MAX_BYTES,
            backupCount=settings.LOG_BACKUP_COUNT,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)
        logger.addHandler(file_handler)
    except OSError as e:
        print(f"Error setting up file logger: {e}")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured (console level {logging.getLevelName(level)}, file {settings.LOG_FILE_PATH})")
