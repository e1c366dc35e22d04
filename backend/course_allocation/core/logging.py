from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from course_allocation.core.config import BACKEND_DIR, Settings

APP_LOGGER = "course_allocation"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def resolve_level(settings: Settings) -> int:
    if settings.log_level:
        level = logging.getLevelName(settings.log_level.strip().upper())
        if isinstance(level, int):
            return level
        raise ValueError(f"Unknown log level: {settings.log_level}")
    return logging.INFO if settings.environment.strip().lower() == "production" else logging.DEBUG


def _log_path(raw: str) -> Path:
    path = Path(raw)
    return path if path.is_absolute() else BACKEND_DIR / path


def setup_logging(settings: Settings) -> logging.Logger:
    """Attach console and optional rotating-file handlers to the ``course_allocation`` logger.

    Only the application's own logger tree is configured, so uvicorn keeps its handlers.
    Calling again replaces the handlers installed by the previous call.
    """
    level = resolve_level(settings)
    app_logger = logging.getLogger(APP_LOGGER)
    for handler in [h for h in app_logger.handlers if getattr(h, "_allocation_handler", False)]:
        app_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        path = _log_path(settings.log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                path,
                maxBytes=settings.log_max_bytes,
                backupCount=settings.log_backup_count,
                encoding="utf-8",
            )
        )

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler._allocation_handler = True
        app_logger.addHandler(handler)
    app_logger.setLevel(level)

    # SQL echo is too chatty for request logs.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    return app_logger
