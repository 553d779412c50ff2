"""
structlog setup shared by the API and the extraction worker.

Every line carries the emitting component ("api" or "worker") and whatever
import context was bound for the current request or job.
"""

import logging
import sys

import structlog

from legacy_import.config import settings

# Third-party loggers and the level they are held at
_LIBRARY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "celery": logging.INFO,
    "kombu": logging.WARNING,
    "redis": logging.WARNING,
}


def _tag_component(component: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("component", component)
        return event_dict
    return processor


def _processor_chain(component: str) -> list:
    return [
        structlog.contextvars.merge_contextvars,
        _tag_component(component),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _use_console() -> bool:
    return settings.DEBUG and not settings.is_production


def setup_logging(component: str = "api") -> None:
    chain = _processor_chain(component)
    renderer = structlog.dev.ConsoleRenderer() if _use_console() else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[*chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # stdlib records (uvicorn, celery, sqlalchemy) go through the same chain
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(stream)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name, level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.DB_ECHO else logging.WARNING)


def bind_context(**values) -> None:
    """Attach key/values to every log line emitted by the current request or job."""
    structlog.contextvars.bind_contextvars(
        **{k: str(v) for k, v in values.items() if v is not None}
    )


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
