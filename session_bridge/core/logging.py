import logging
import logging.config
import sys
from typing import Any, Dict, List

import sentry_sdk
import structlog

from session_bridge.core.config import Settings, settings as default_settings
from session_bridge.modules.auth.constants import SECRET_ARG_KEYS

# Third-party loggers routed through our formatter, with their level.
LIBRARY_LOG_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "httpx": "WARNING",
}


def redact_secrets(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Last line of defence: auth secrets passed as top-level fields are masked."""
    for key in SECRET_ARG_KEYS & event_dict.keys():
        event_dict[key] = "[redacted]"
    return event_dict


def setup_logging(settings: Settings = default_settings) -> None:
    """
    Structured logging: console output in local/dev, JSON elsewhere.

    `AUTH_VERBOSE` lowers the level to DEBUG so every auth protocol step is traced.
    """
    shared_processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
    ]

    if settings.SENTRY_DSN:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            # Auth cookies and bearer headers must never reach Sentry.
            send_default_pii=False,
            traces_sample_rate=1.0 if settings.ENVIRONMENT == "local" else 0.1,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer()
        if settings.ENVIRONMENT in ["local", "dev"]
        else structlog.processors.JSONRenderer()
    )
    level = "DEBUG" if settings.AUTH_VERBOSE else settings.LOG_LEVEL

    loggers: Dict[str, Any] = {
        "": {"handlers": ["default"], "level": level, "propagate": True},
    }
    for name, library_level in LIBRARY_LOG_LEVELS.items():
        loggers[name] = {
            "handlers": ["default"],
            "level": library_level,
            "propagate": False,
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                    "foreign_pre_chain": shared_processors,
                },
            },
            "handlers": {
                "default": {
                    "level": level,
                    "class": "logging.StreamHandler",
                    "stream": sys.stdout,
                    "formatter": "default",
                },
            },
            "loggers": loggers,
        }
    )
