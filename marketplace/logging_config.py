"""
Logging configuration.

Console logging with a detailed format and per-module levels so that SQLAlchemy,
httpx and the vendor SDKs stay quiet unless something is wrong.
"""
import logging
from typing import Optional

from marketplace.config import settings


SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

MODULE_LOG_LEVELS = {
    "marketplace": "INFO",
    "marketplace.auth": "INFO",
    "marketplace.realtime": "INFO",
    # Third-party libraries (reduce noise)
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "httpx": "WARNING",
    "aiosmtplib": "WARNING",
    "twilio": "WARNING",
    "cloudinary": "WARNING",
    "PIL": "WARNING",
    "asyncio": "WARNING",
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
}


def setup_logging(log_level: Optional[str] = None, simple: bool = False) -> None:
    """Configure the root logger once at startup."""
    level = (log_level or settings.LOG_LEVEL).upper()
    formatter = logging.Formatter(
        SIMPLE_FORMAT if simple else DETAILED_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info(f"Logging configured: level={level}, env={settings.APP_ENV}")
