import logging
import os
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


def setup_logging(log_level: str = "INFO", data_dir: Optional[str] = None) -> logging.Logger:
    """Setup rotating file logger to <DATA_DIR>/worker/worker.log"""

    # Ensure log directory exists
    data_dir = data_dir or os.getenv("DATA_DIR", "/app/data")
    log_dir = Path(data_dir) / "worker"
    log_dir.mkdir(parents=True, exist_ok=True)

    # Create logger
    logger = logging.getLogger("commentary_worker")
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    # Create rotating file handler
    log_file = log_dir / "worker.log"
    handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3
    )

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Also add console handler for development
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.info(f"Logging initialized. Log file: {log_file}")
    return logger


def log_exception(logger: logging.Logger, message: str) -> None:
    """Log an error message together with the active traceback"""
    logger.error(f"{message}\n{traceback.format_exc()}")
