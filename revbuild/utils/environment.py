import logging
import os

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

REVBUILD_CONFIG = "REVBUILD_CONFIG"
REVBUILD_LOG_LEVEL = "REVBUILD_LOG_LEVEL"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LOG_LEVEL = "INFO"

LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FMT = (
    "[%(asctime)s] [%(levelname)s] [%(filename)s:%(funcName)s:%(lineno)d] - %(message)s"
)


def init_sentry() -> None:
    # restore failures are logged as CRITICAL and must reach the operator
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    match os.environ.get("SENTRY_EVENT_LEVEL", "CRITICAL").upper():
        case "CRITICAL":
            event_level = logging.CRITICAL
        case "ERROR":
            event_level = logging.ERROR
        case _:
            raise ValueError(
                "Invalid value for SENTRY_EVENT_LEVEL. Must be CRITICAL or ERROR."
            )
    sentry_sdk.init(dsn, integrations=[LoggingIntegration(event_level=event_level)])


def init_env(log_level: str | None = None) -> None:
    # child processes inherit the level through the environment
    if log_level:
        os.environ[REVBUILD_LOG_LEVEL] = log_level

    level_name = os.environ.get(REVBUILD_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()
    valid = level_name in LOG_LEVELS
    logging.basicConfig(
        format=LOG_FMT,
        datefmt=LOG_DATEFMT,
        level=getattr(logging, level_name if valid else DEFAULT_LOG_LEVEL),
    )
    if not valid:
        logging.warning(
            f"ignoring invalid {REVBUILD_LOG_LEVEL}={level_name}, "
            f"expected one of {', '.join(LOG_LEVELS)}"
        )
    init_sentry()
