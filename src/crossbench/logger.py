import logging
from typing import Any, Optional

from crossbench.settings import settings as api_settings

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_configured = False


def setup_global_logging(level: str = "INFO") -> None:
    """Configure the root logger once in a standardized format.

    Args:
        level: Log level name (e.g., "DEBUG", "INFO")
    """
    global _configured
    if _configured:
        return
    lvl = _LEVELS.get(level.upper(), logging.INFO)
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # Elasticsearch transport logs every HTTP request at INFO.
    logging.getLogger("elastic_transport").setLevel(max(lvl, logging.WARNING))
    _configured = True


def get_logger(name: Optional[str] = None, **context: Any) -> "Logger":
    """Return a module/class logger. Ensures global logging is configured.

    Args:
        name: Logger name, usually __name__
        **context: Key/value pairs prefixed to every message (e.g. backend="postgres")
    """
    return Logger(name or __name__, **context)


class Logger:
    """Thin wrapper over standard logging with a convenience message method.

    - Honors global configuration via `setup_global_logging`, invoked lazily with
      the configured LOG_LEVEL the first time a logger is built.
    - Optional context (backend, phase) is rendered as a `key=value` prefix so
      interleaved output from concurrent backends stays attributable.
    - `.message(text)` logs at `INFO` when LOG_LEVEL is INFO or higher,
      otherwise at `DEBUG`.
    """

    def __init__(self, name: Optional[str] = None, **context: Any) -> None:
        if not _configured:
            setup_global_logging(api_settings.LOG_LEVEL)
        self._logger = logging.getLogger(name or __name__)
        self._context = {k: v for k, v in context.items() if v is not None}
        self._prefix = " ".join(f"{k}={getattr(v, 'value', v)}" for k, v in self._context.items())

    @property
    def name(self) -> str:
        return self._logger.name

    def _fmt(self, msg: str) -> str:
        return f"[{self._prefix}] {msg}" if self._prefix else msg

    def debug(self, msg: str, *args, **kwargs) -> None:
        self._logger.debug(self._fmt(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self._logger.info(self._fmt(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self._logger.warning(self._fmt(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self._logger.error(self._fmt(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs) -> None:
        self._logger.critical(self._fmt(msg), *args, **kwargs)

    def message(self, msg: str, *args, **kwargs) -> None:
        level = (api_settings.LOG_LEVEL or "").upper()
        if level == "DEBUG":
            self.debug(msg, *args, **kwargs)
        elif level == "INFO" or level == "":  # UNSET treated as INFO
            self.info(msg, *args, **kwargs)
        else:
            lvl = _LEVELS.get(level, logging.INFO)
            self._logger.log(lvl, self._fmt(msg), *args, **kwargs)
