import logging
import os
import sys
from datetime import date
from quietcutter.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# chatty third-party loggers kept at warning
QUIET_LOGGERS = ("multipart", "urllib3", "sqlalchemy.engine")


def configure_logging(log_dir: str = settings.LOG_DIR, level: str = settings.LOG_LEVEL):
    """log to stdout and to one file per day under log_dir"""
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f'quietcutter_{date.today():%Y%m%d}.log')

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout), logging.FileHandler(log_file, mode='a')],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


configure_logging()
