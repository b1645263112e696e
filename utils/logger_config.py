import logging.config
import sys
from typing import Optional


def build_logging_config(level: str = "INFO", log_file: Optional[str] = None) -> dict:
    level = str(level).upper()
    handlers = {
        # stdout carries CLI json output, diagnostics go to stderr
        "console": {
            "level": level,
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "stream": sys.stderr,
        },
    }
    if log_file:
        handlers["file"] = {
            "level": "WARNING",
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 10485760,  # 10MB
            "backupCount": 3,
            "encoding": "utf-8",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers),
                "level": level,
                "propagate": True,
            },
        },
    }


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    logging.config.dictConfig(build_logging_config(level, log_file))
