import sys
import logging
import structlog
from os import environ

# index is the number of -v flags given on the command line
VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def level_from_env(variable: str, default: int) -> int:
    """
    Read a level name such as "INFO" from the environment, unknown names fall back to default.
    """
    level = logging.getLevelName(environ.get(variable, '').upper())
    return level if isinstance(level, int) else default


console_log_level = level_from_env("CONSOLE_LOG_LEVEL", logging.WARNING)
otel_log_level = level_from_env("OTEL_LOG_LEVEL", logging.INFO)

timestamper = structlog.processors.TimeStamper(fmt="iso")

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# diagnostics go to stderr, stdout is reserved for the dry run plan
console_handler = logging.StreamHandler(sys.stderr)
console_handler.setFormatter(
    structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[timestamper, structlog.stdlib.add_log_level],
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]))

root_logger = logging.getLogger()
root_logger.addHandler(console_handler)


def set_level(level: int):
    """
    Set the console level, the root logger also lets OTEL_LOG_LEVEL records through.
    """
    console_handler.setLevel(level)
    root_logger.setLevel(min(level, otel_log_level))


def set_verbosity(verbose: int) -> int:
    """
    Set the console level from a count of -v flags and return the level.
    """
    level = VERBOSITY_LEVELS[min(max(verbose, 0), len(VERBOSITY_LEVELS) - 1)]
    set_level(level)
    return level


set_level(console_log_level)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
