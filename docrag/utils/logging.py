"""structlog configuration for docrag.

Modules create their own loggers with
``structlog.get_logger(logger_name=__name__)``; this module only decides
how the events are rendered.  ``app_env="production"`` (or
``json_output=True``) emits one JSON object per event, anything else uses
the console renderer.

Standard-library ``logging`` records from chromadb, openai and httpx are
routed through the same processor chain and held at WARNING unless docrag
itself runs at DEBUG, since those clients log every HTTP request at INFO.
"""

import logging
import sys

import structlog

THIRD_PARTY_LOGGERS = ("chromadb", "httpx", "httpcore", "openai", "urllib3")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def configure_logging(
    log_level: str = "INFO",
    app_env: str = "development",
    json_output: bool = False,
) -> None:
    """Configure structlog and the stdlib root logger.

    Parameters
    ----------
    log_level:
        Level name for docrag events (DEBUG, INFO, WARNING, ERROR).
    app_env:
        ``Settings.app_env``; ``"production"`` selects JSON output.
    json_output:
        Force JSON output regardless of *app_env*.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    processors = _shared_processors()
    if json_output or app_env == "production":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *processors,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    third_party_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)
