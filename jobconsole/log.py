import logging

import structlog

from . import config


def configure_logging(level: str = None, json_output: bool = None) -> None:
    """Configure structlog for the console service and the watcher scripts."""
    level_name = (level or config.LOG_LEVEL).upper()
    use_json = config.LOG_JSON if json_output is None else json_output
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format="%(message)s")

    renderer = structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        cache_logger_on_first_use=True,
    )
