import logging

from sync_app.utils.logging_config import ImporterContextFilter, setup_logging


def test_setup_logging_attaches_handlers_to_package_logger(app):
    app.config.update(LOG_LEVEL="WARNING", ENABLE_CONSOLE_LOGGING=True, ENABLE_FILE_LOGGING=False)

    setup_logging(app)

    package_logger = logging.getLogger("sync_app")
    assert package_logger.level == logging.WARNING
    assert app.logger.level == logging.WARNING
    assert len(package_logger.handlers) == 1
    assert package_logger.handlers[0] is app.logger.handlers[0]


def test_file_logging_renders_importer_context(app, tmp_path):
    app.config.update(LOG_LEVEL="INFO", ENABLE_CONSOLE_LOGGING=False, ENABLE_FILE_LOGGING=True, LOG_DIR=str(tmp_path))
    setup_logging(app)

    app.logger.info("checked", extra={"importer_source": "hosts", "unrelated": 1})
    for handler in app.logger.handlers:
        handler.flush()

    contents = (tmp_path / "sync_app.log").read_text(encoding="utf-8")
    assert "checked importer_source='hosts'" in contents
    assert "unrelated" not in contents

    app.config.update(ENABLE_CONSOLE_LOGGING=True, ENABLE_FILE_LOGGING=False, LOG_LEVEL="DEBUG")
    setup_logging(app)


def test_context_filter_without_extras():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    assert ImporterContextFilter().filter(record) is True
    assert record.context == ""
