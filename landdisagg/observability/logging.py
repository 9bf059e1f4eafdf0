"""structlog configuration shared by scripts driving the pipeline.

Engine modules log through ``logging.getLogger(__name__)``; this routes
stdlib records to the same level and renders structlog events as console
text or JSON lines.
"""

import logging

import structlog

from landdisagg.config.settings import LogRenderer, Settings

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def configure_logging(settings: Settings) -> structlog.stdlib.BoundLogger:
    """Configure structlog and the ``landdisagg`` stdlib logger from settings.

    Returns:
        A bound logger for the caller.
    """
    level = _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value]

    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    logging.getLogger("landdisagg").setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer() if settings.LOG_RENDERER == LogRenderer.CONSOLE
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return structlog.get_logger("landdisagg")
