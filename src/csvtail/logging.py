"""structlog setup for csvtail.

Watchers log from their own threads while the main thread prints rows, so
every event has to say which run and which thread it came from.  The
pipeline is::

    merge_contextvars -> add_log_level -> add_thread_name -> TimeStamper -> renderer

``add_thread_name`` stamps ``thread=`` with the emitting thread's name
(``csvtail-append:feed.csv``, ``csvtail-latest:log_``, or ``MainThread``).
The watchers add their own ``watch=`` / ``path=`` fields on top of that.

Output goes to stderr as one JSON object per line (``format = "json"``) or
as coloured key=value text (``format = "text"``).  stdout carries rows only.

    run_id = configure_logging()
    log = get_logger(__name__)
    log.info("file truncated", path="/data/feed.csv")
"""

import logging as _stdlib
import sys
import threading
import uuid

import structlog
from structlog.typing import EventDict, FilteringBoundLogger, Processor, WrappedLogger

from csvtail.config import LoggingSettings, Settings, get_settings

_LEVELS = _stdlib.getLevelNamesMapping()


def add_thread_name(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    """Processor: record which thread emitted the event."""
    event_dict.setdefault("thread", threading.current_thread().name)
    return event_dict


def _renderer(options: LoggingSettings) -> Processor:
    if options.format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging(settings: Settings | None = None) -> str:
    """Install the csvtail pipeline and bind a fresh 8-hex ``run_id``.

    Watcher threads start inside a copy of the caller's context, so the
    ``run_id`` must be bound before any watch is started.
    """
    options = (settings if settings is not None else get_settings()).logging

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            add_thread_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _renderer(options),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS.get(options.level, _stdlib.INFO)),
        context_class=dict,
        # Uncached so a reconfigure (new stderr, new level) reaches existing loggers.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    run_id = uuid.uuid4().hex[:8]
    structlog.contextvars.bind_contextvars(run_id=run_id)
    return run_id


def get_logger(name: str = "csvtail") -> FilteringBoundLogger:
    return structlog.get_logger(name)
