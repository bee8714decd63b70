"""
Logging setup for the Flask app.
Console handler always; rotating file handler when LOG_FILE is set.
"""
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_EMAIL_MASK_RE = re.compile(r'^(.{1,2}).*(@.*)$')


def mask_email(email):
    """'alice@example.com' -> 'al***@example.com'. Used in every log line with an address."""
    if not email:
        return email
    return _EMAIL_MASK_RE.sub(r'\1***\2', email)


def configure_logging(app):
    """Attach handlers to the app logger and the project loggers."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)

    handlers = []
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handlers.append(console_handler)

    log_file = app.config.get('LOG_FILE')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    for name in (app.logger.name, 'utils', 'routes'):
        target = logging.getLogger(name)
        target.setLevel(level)
        # Prevent duplicate logs when create_app runs more than once (tests)
        for handler in list(target.handlers):
            if getattr(handler, '_otpauth', False):
                target.removeHandler(handler)
        for handler in handlers:
            handler._otpauth = True
            target.addHandler(handler)
