"""TgwireLogger — Singleton JSON logger with console and rotating file output.

Provides a single, project-wide logger instance that writes structured JSON to
stdout and, unless disabled, to ``logs/tgwire.log`` (with automatic rotation).

Bot tokens never reach the output: ``requests`` embeds the full request URL
(``…/bot<token>/<method>``) in its exception messages, so every message and
extra field is passed through :func:`redact` before serialisation.
"""

import json
import logging
import os
import re
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

# ``bot`` + numeric id + ``:`` + secret, as it appears in Bot API URLs.
_TOKEN_RE = re.compile(r"bot\d+:[A-Za-z0-9_-]+")


def redact(value: Any) -> Any:
    """Replace bot tokens inside *value* with ``bot<redacted>``.

    Strings are scrubbed directly, containers recursively; anything else is
    returned unchanged.
    """
    if isinstance(value, str):
        return _TOKEN_RE.sub("bot<redacted>", value)
    if isinstance(value, dict):
        return {key: redact(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


class _JsonFormatter(logging.Formatter):
    """Format every log record as a single-line JSON object.

    Standard fields (timestamp, level, logger, message, module, func_name)
    are always present.  Any *extra* key-value pairs passed via the ``extra``
    parameter of a logging call are merged into the JSON object, e.g.::

        logger.info("Batch received", extra={"count": 2, "offset": 102})
    """

    # Standard LogRecord attributes; anything else came in via ``extra``.
    _BUILTIN_ATTRS: frozenset[str] = frozenset(vars(logging.LogRecord(
        name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None,
    ))) | {"message", "asctime"}

    def format(self, record: logging.LogRecord) -> str:
        """Serialize *record* to a redacted JSON string."""
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
            "module": record.module,
            "func_name": record.funcName,
        }

        for key, value in record.__dict__.items():
            if key not in self._BUILTIN_ATTRS and key not in log_entry:
                log_entry[key] = redact(value)

        if record.exc_info:
            log_entry["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(log_entry, ensure_ascii=False, default=lambda obj: redact(str(obj)))


class TgwireLogger:
    """Singleton logger with a console handler and an optional rotating file.

    Usage::

        from core.logger import TgwireLogger

        logger = TgwireLogger.get_logger()
        logger.info("Polling started")
    """

    _instance: Optional["TgwireLogger"] = None
    _logger: Optional[logging.Logger] = None

    # Rotation settings
    _LOG_DIR: str = "logs"
    _LOG_FILE: str = "tgwire.log"
    _MAX_BYTES: int = 5 * 1024 * 1024  # 5 MB
    _BACKUP_COUNT: int = 5

    def __new__(cls, level: int = logging.INFO) -> "TgwireLogger":
        """Ensure only one instance is ever created (Singleton)."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init_logger(level)
        return cls._instance

    # ------------------------------------------------------------------
    # Initialisation helpers
    # ------------------------------------------------------------------

    def _init_logger(self, level: int) -> None:
        """Create the underlying :class:`logging.Logger` and attach handlers.

        Setting ``TGWIRE_LOG_FILE`` to an empty string disables the file
        handler; any other value replaces the default file name.
        """
        self._logger = logging.getLogger("tgwire")
        self._logger.setLevel(level)

        # Avoid duplicate handlers if the module is reloaded.
        if self._logger.handlers:
            return

        formatter = _JsonFormatter()

        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        self._logger.addHandler(stream_handler)

        log_file = os.environ.get("TGWIRE_LOG_FILE", self._LOG_FILE)
        if not log_file:
            return

        os.makedirs(self._LOG_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(self._LOG_DIR, log_file),
            maxBytes=self._MAX_BYTES,
            backupCount=self._BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        self._logger.addHandler(file_handler)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @staticmethod
    def get_logger(level: int = logging.INFO) -> logging.Logger:
        """Return the shared :class:`logging.Logger` instance.

        Creates the singleton on first call; subsequent calls return the
        same logger regardless of the *level* argument.
        """
        instance = TgwireLogger(level)
        assert instance._logger is not None  # guaranteed by __new__
        return instance._logger

    def cleanup(self) -> None:
        """Flush and close all handlers attached to the logger."""
        if self._logger is None:
            return
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)
