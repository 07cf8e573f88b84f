import logging
import os
import re
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_MASK = '***MASKED***'

_SECRET_PATTERNS = [
    # whole key bodies, e.g. an X-Ssh-Key header echoed into a message
    (re.compile(r'(-----BEGIN [A-Z ]*PRIVATE KEY-----)(.*?)(-----END [A-Z ]*PRIVATE KEY-----)', re.DOTALL),
     rf'\1{_MASK}\3'),
    (re.compile(r'(x[_-]api[_-]key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), rf'\1{_MASK}'),
    (re.compile(r'(x[_-]ssh[_-]key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), rf'\1{_MASK}'),
    (re.compile(r'(private[_-]?key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), rf'\1{_MASK}'),
    (re.compile(r'(pkey["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), rf'\1{_MASK}'),
    (re.compile(r'(api[_-]?key["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), rf'\1{_MASK}'),
    (re.compile(r'(authorization["\']?\s*[:=]\s*["\']?)([^"\'}\s,]+)', re.IGNORECASE), rf'\1{_MASK}'),
]


def mask_secrets(value):
    """
    Replace API keys and SSH key material in a string.

    Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        return value
    for pattern, replacement in _SECRET_PATTERNS:
        value = pattern.sub(replacement, value)
    return value


class SecretMaskingFilter(logging.Filter):
    """Masks tenant credentials in a record's message and arguments."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = mask_secrets(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: mask_secrets(v) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(mask_secrets(arg) for arg in record.args)

        return True


def setup_logging(component_name: str, log_level: Optional[str] = None) -> logging.Logger:
    """
    Set up logging for a service component.

    Module loggers below the component (``filemanager.services.archive_service``
    and so on) propagate into it, so one call configures the whole package.

    Args:
        component_name: Top-level logger name (e.g., 'filemanager')
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to the LOG_LEVEL env var, then INFO

    Returns:
        The component logger
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')

    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(component_name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler.addFilter(SecretMaskingFilter())

    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
