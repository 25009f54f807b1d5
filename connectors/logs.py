import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = 'campaign_pulse'
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the `campaign_pulse` namespace, e.g. `campaign_pulse.google_ads`."""
    return logging.getLogger(f'{LOGGER_NAME}.{name}' if name else LOGGER_NAME)


def configure_logging(log_file: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """Attach a rotating file handler (5 MB x 3) and a console handler, once."""
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)
    if log_file:
        logdir = os.path.dirname(log_file)
        if logdir:
            os.makedirs(logdir, exist_ok=True)
        fh = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3)
        fh.setLevel(level)
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(formatter)
    logger.addHandler(ch)
    return logger
