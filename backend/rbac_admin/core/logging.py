import logging.config


def configure_logging(
    level: str = "INFO", audit_level: str | None = None, sql_echo: bool = False
) -> None:
    level = level.upper()
    console = {"handlers": ["console"], "propagate": False}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s %(name)s - %(message)s"
                },
                "audit": {
                    "format": "%(asctime)s %(levelname)s %(name)s [%(threadName)s] - %(message)s"
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
                "audit_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "audit",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": {
                "uvicorn": {"level": level, **console},
                "uvicorn.error": {"level": level, **console},
                "uvicorn.access": {"level": level, **console},
                # the worker thread name is useful when tracing queue vs fallback writes
                "rbac_admin.audit": {
                    "level": (audit_level or level).upper(),
                    "handlers": ["audit_console"],
                    "propagate": False,
                },
                "sqlalchemy.engine": {"level": "INFO" if sql_echo else "WARNING", **console},
            },
        }
    )
