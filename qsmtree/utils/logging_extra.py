import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT: str = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

_handler: Optional[logging.Handler] = None

def setup_logging(log_path: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    global _handler
    logger = logging.getLogger("")
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    handler: logging.Handler
    if log_path is None:
        handler = logging.StreamHandler()
    else:
        log_dir: str = os.path.dirname(os.path.abspath(log_path))
        os.makedirs(log_dir, exist_ok=True)
        handler = RotatingFileHandler(
            filename=log_path,
            backupCount=10,
            encoding="utf-8"
        )
    handler.setFormatter(formatter)

    # Repeated calls replace the previous handler instead of stacking
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()
    _handler = handler
    logger.addHandler(handler)
    return logger
