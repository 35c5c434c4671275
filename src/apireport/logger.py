import logging
import sys

import structlog

LOGGER_NAME = "apireport"

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(logging.NOTSET),
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
        structlog.dev.ConsoleRenderer(),
    ],
)

logger: structlog.BoundLogger = structlog.get_logger(LOGGER_NAME)


def configure_logging(debug: bool = False) -> None:
    """
    Send apireport's log records to stderr. Library users who configure
    logging themselves never need to call this.
    """
    level = logging.DEBUG if debug else logging.INFO
    logging.getLogger(LOGGER_NAME).setLevel(level)

    root = logging.getLogger()
    if root.handlers:
        # Output is already configured elsewhere
        return

    handler = logging.StreamHandler(sys.stderr)
    # structlog has already rendered the event
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
