"""
Logger factory for qstudy.

Every logger writes one line per record carrying the participant context
(``session_id``, ``study_id``, ``step``) passed through ``extra``. Records
logged without that context get empty values so the formatters never fail.

Environment:
    LOG_FORMAT: ``structured`` (key=value, default) or ``json``
    LOG_LEVEL: standard level name, ``INFO`` by default
    LOG_TIMEFMT: strftime pattern for timestamps
"""

import logging
import os

from pythonjsonlogger import jsonlogger

CONTEXT_FIELDS = ("session_id", "study_id", "step")
DEFAULT_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

STRUCTURED_FORMAT = (
    "time=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s "
    + " ".join(f"{field}=%({field})s" for field in CONTEXT_FIELDS)
)
JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s " + " ".join(
    f"%({field})s" for field in CONTEXT_FIELDS
)

_LOGGERS: dict[str | None, logging.Logger] = {}


class ParticipantContextFilter(logging.Filter):
    """Fills in participant context fields missing from a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, "")
        return True


def build_formatter(log_format: str | None = None) -> logging.Formatter:
    """Formatter for ``log_format``, read from LOG_FORMAT when not given."""
    log_format = (log_format or os.getenv("LOG_FORMAT", "structured")).lower()
    time_format = os.getenv("LOG_TIMEFMT", DEFAULT_TIME_FORMAT)
    if log_format == "json":
        return jsonlogger.JsonFormatter(fmt=JSON_FIELDS, datefmt=time_format)
    return logging.Formatter(fmt=STRUCTURED_FORMAT, datefmt=time_format)


def _resolve_level() -> int:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    # getLevelName returns a string for unknown names
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Return the qstudy logger for ``name``, configuring it on first use.

    Loggers get a single stream handler and do not propagate, so records are
    not printed twice when the root logger is configured elsewhere.
    """
    cached = _LOGGERS.get(name)
    if cached is not None:
        return cached

    logger = logging.getLogger(name or "qstudy")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.addFilter(ParticipantContextFilter())
        handler.setFormatter(build_formatter())
        logger.addHandler(handler)
        logger.setLevel(_resolve_level())
        logger.propagate = False

    _LOGGERS[name] = logger
    return logger
