"""
Logging configuration for the storefront service.

Every module asks for ``get_logger(__name__)``; all loggers hang off the
``storefront`` root so one handler and one level (``LOG_LEVEL``) cover them.
"""
import logging
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_root = logging.getLogger("storefront")
_root.setLevel(LOG_LEVEL)

if not _root.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)
    console_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    _root.addHandler(console_handler)

# keep uvicorn/celery root handlers from printing every line twice
_root.propagate = False


def get_logger(name: str | None = None) -> logging.Logger:
    if not name:
        return _root
    if name == "storefront" or name.startswith("storefront."):
        return logging.getLogger(name)
    return logging.getLogger(f"storefront.{name}")
