import logging
from logging.handlers import RotatingFileHandler
from typing import Iterable, Sequence

from .config import Settings, settings as default_settings

# Fields passed through `extra=` that are appended to each line when present
_CONTEXT_KEYS = (
    "sensor",
    "value",
    "threshold",
    "channel",
    "endpoint",
    "failures",
)

_configured = False


class ContextFormatter(logging.Formatter):
    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _CONTEXT_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        parts = [
            f"{key}={getattr(record, key)}"
            for key in self._extra_keys
            if getattr(record, key, None) is not None
        ]
        if parts:
            return f"{message} | {' '.join(parts)}"
        return message


def configure_logging(cfg: Settings | None = None) -> None:
    global _configured
    if _configured:
        return

    cfg = cfg or default_settings
    logger = logging.getLogger()
    logger.setLevel(cfg.log_level.upper())

    fmt = ContextFormatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file (keeps the audit trail of alerts bounded on disk)
    if cfg.log_file:
        fh = RotatingFileHandler(cfg.log_file, maxBytes=2_000_000, backupCount=5)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Silence noisy httpx request logging
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True
