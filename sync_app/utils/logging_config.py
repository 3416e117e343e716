# sync_app/utils/logging_config.py

"""
Logging setup for the application.

Console logging is always available; file logging rotates under LOG_DIR when
ENABLE_FILE_LOGGING is set. Structured ``extra`` fields passed by importer
code (``importer_*``) are appended to file log lines.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
_HANDLER_MARKER = "_sync_app_handler"


class ImporterContextFilter(logging.Filter):
    """Render ``importer_*`` extra attributes into a ``context`` field."""

    def filter(self, record):
        context = {key: value for key, value in record.__dict__.items() if key.startswith("importer_")}
        record.context = " ".join(f"{key}={value!r}" for key, value in sorted(context.items()))
        return True


def _remove_previous_handlers(logger):
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            logger.removeHandler(handler)
            handler.close()


def _mark(handler):
    setattr(handler, _HANDLER_MARKER, True)
    return handler


def setup_logging(app):
    """Configure app.logger from LOG_LEVEL / ENABLE_CONSOLE_LOGGING / ENABLE_FILE_LOGGING."""
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handlers = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console_handler = _mark(logging.StreamHandler())
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(console_handler)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = _mark(
            RotatingFileHandler(
                os.path.join(log_dir, "sync_app.log"),
                maxBytes=int(app.config.get("LOG_MAX_BYTES", 10 * 1024 * 1024)),
                backupCount=int(app.config.get("LOG_BACKUP_COUNT", 5)),
            )
        )
        file_handler.setLevel(level)
        file_handler.addFilter(ImporterContextFilter())
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT + " %(context)s"))
        handlers.append(file_handler)

    # Pipeline modules log through their own module loggers under "sync_app".
    for logger in (app.logger, logging.getLogger("sync_app")):
        _remove_previous_handlers(logger)
        logger.setLevel(level)
        for handler in handlers:
            logger.addHandler(handler)

    if not app.config.get("SQLALCHEMY_ECHO", False):
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    app.logger.info("Logging configured (level=%s)", level_name)
    return app.logger
