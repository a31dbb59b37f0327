import logging
import sys

import structlog

from turnstile.core.errors import ConfigInvalid


def _add_service(service: str):
    def processor(logger, method_name, event_dict):
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def setup_logging(level: str = "INFO", json_logs: bool = True, service: str | None = None) -> None:
    """
    Configure structlog for admission events.

    Denials and store outages are emitted as warnings with the policy id and
    client key as fields. ``json_logs=False`` switches to the console
    renderer for local development. ``service`` is bound to every event.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ConfigInvalid(f"unknown log level {level!r}")

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if service:
        processors.append(_add_service(service))

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Library loggers (redis, uvicorn) share the level.
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
