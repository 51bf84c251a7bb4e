# utils.py
import logging
import sys
import os
from typing import Optional

from config import settings

def setup_logger(name: str = "FieldExtractor") -> logging.Logger:
    """Logger writing to stdout and to settings.LOG_FILE at settings.LOG_LEVEL. Safe to call again; handlers are replaced."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    settings.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"
    )
    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(settings.LOG_FILE, mode="a")):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


log = setup_logger()

def clean_filename(filename: str) -> str:
    """Removes problematic characters for file paths."""
    return "".join(c for c in filename if c.isalnum() or c in (' ', '.', '-', '_')).rstrip()

def is_supported_file_type(filename: Optional[str], content_type: Optional[str] = None) -> bool:
    """
    Checks an upload against the supported extensions and MIME types in settings.
    Either a matching extension or a matching declared content type is enough.
    """
    if filename:
        _, ext = os.path.splitext(filename)
        if ext.lower() in [e.lower() for e in settings.SUPPORTED_FILE_EXTENSIONS]:
            return True
    if content_type:
        return content_type.split(';')[0].strip().lower() in settings.SUPPORTED_MIME_TYPES
    return False
