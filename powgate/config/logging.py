"""structlog setup shared by the gate server, the reaper and the solver CLI.

Every event carries a ``service`` key so the three processes can share one log
sink. Request-scoped keys (``request_id``) arrive through context vars bound
by :class:`powgate.web.middleware.RequestIDMiddleware`.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

import structlog

# Loggers that would duplicate or drown out our own events.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,  # RequestIDMiddleware logs each request
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
}


def _service_adder(service: str) -> structlog.types.Processor:
    def add_service(
        logger: object, method_name: str, event_dict: structlog.types.EventDict
    ) -> structlog.types.EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def resolve_level(log_level: str) -> int:
    """Map a level name to its number, falling back to INFO for unknown names."""
    level = logging.getLevelNamesMapping().get(log_level.upper())
    return level if level is not None else logging.INFO


def setup_logging(
    log_level: str = "INFO",
    json_output: bool = False,
    *,
    service: str = "powgate",
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog and the stdlib root logger it writes through.

    ``json_output`` selects one JSON object per line; otherwise events are
    rendered for a terminal, coloured only when ``stream`` is a TTY.
    """
    out = stream if stream is not None else sys.stderr
    level = resolve_level(log_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _service_adder(service),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=out.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=out, level=level, force=True)
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(max(level, quiet_level))
