import logging
import re
import threading
from collections import Counter, deque

from flask.logging import default_handler

from rendezvous.errors import InvalidInput

ROOT_LOGGER = 'rendezvous'
LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')
_TAG = re.compile(r'^\[([\w-]+)\]')


class RecentLogHandler(logging.Handler):
    """Keeps the last ``capacity`` records in memory for the log endpoints."""

    def __init__(self, capacity: int = 500):
        super().__init__()
        self._records = deque(maxlen=capacity)
        self._buffer_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        message = record.getMessage()
        match = _TAG.match(message)
        entry = {
            'timestamp': int(record.created * 1000),
            'level': record.levelname,
            'logger': record.name,
            'category': match.group(1) if match else None,
            'message': message,
        }
        with self._buffer_lock:
            self._records.append(entry)

    def entries(self, categories=None, min_level=None, limit=None):
        with self._buffer_lock:
            entries = list(self._records)
        if categories:
            entries = [e for e in entries if e['category'] in categories]
        if min_level is not None:
            entries = [e for e in entries if logging.getLevelName(e['level']) >= min_level]
        if limit:
            entries = entries[-limit:]
        return entries

    def stats(self):
        with self._buffer_lock:
            entries = list(self._records)
        return {
            'buffered': len(entries),
            'capacity': self._records.maxlen,
            'by_level': dict(Counter(e['level'] for e in entries)),
            'by_category': dict(Counter(e['category'] for e in entries if e['category'])),
        }

    def clear(self) -> None:
        with self._buffer_lock:
            self._records.clear()


def level_value(name) -> int:
    """Numeric value of a level name, or InvalidInput."""
    if not isinstance(name, str) or name.strip().upper() not in LEVELS:
        raise InvalidInput(
            f"level must be one of {', '.join(LEVELS)}",
            code='invalid_log_level',
            received=name,
        )
    return logging.getLevelName(name.strip().upper())


def set_level(flask_app, name):
    """Switch the ``rendezvous`` loggers at runtime; returns (previous, new) names."""
    value = level_value(name)
    logger = logging.getLogger(ROOT_LOGGER)
    previous = logging.getLevelName(logger.getEffectiveLevel())
    logger.setLevel(value)
    flask_app.logger.setLevel(value)
    return previous, logging.getLevelName(value)


def configure_logging(flask_app) -> None:
    """Route the ``rendezvous`` loggers through Flask's handler at LOG_LEVEL."""
    level = str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    if default_handler not in logger.handlers:
        logger.addHandler(default_handler)
    flask_app.logger.setLevel(level)

    # one buffer per app; a previous app's buffer stops receiving records
    for handler in [h for h in logger.handlers if isinstance(h, RecentLogHandler)]:
        logger.removeHandler(handler)
    recent = RecentLogHandler(int(flask_app.config.get('LOG_BUFFER_SIZE', 500)))
    logger.addHandler(recent)
    flask_app.extensions['rendezvous_logs'] = recent
