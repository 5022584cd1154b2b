import logging, logging.config

# third-party loggers that drown out ours at DEBUG
_QUIET_AT_DEBUG = ("httpx", "httpcore", "aiosqlite")


def setup_logging(level: str = "INFO", access_log: bool = True):
    level = level.upper()
    quiet = "WARNING" if level == "DEBUG" else level

    loggers = {
        "uvicorn.error":  {"level": level, "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": ("INFO" if access_log else "WARNING"),
                           "handlers": ["access"], "propagate": False},
        "app": {"level": level},
    }
    for name in _QUIET_AT_DEBUG:
        loggers[name] = {"level": quiet}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                        "datefmt": "%H:%M:%S"},
            # Uvicorn pre-formats access log lines; don't expect extra fields
            "access_simple": {"format": "%(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
            "access":  {"class": "logging.StreamHandler", "formatter": "access_simple"},
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["console"]},
    })
