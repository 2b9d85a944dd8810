"""
Calibration service: the maximization step of MML-EM item calibration.

Importing the package attaches a console handler to the package logger.
Modules log through logging.getLogger(__name__) and inherit it.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Set the package log level and attach a stdout handler once.

    Args:
        level: Level for every calibration_service logger.

    Returns:
        The package logger.
    """
    package_logger = logging.getLogger(__name__)
    package_logger.setLevel(level)

    if not package_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(console_handler)

    # numba reports every compilation pass at DEBUG
    logging.getLogger("numba").setLevel(logging.WARNING)
    return package_logger


configure_logging()
