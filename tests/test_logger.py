import logging

from taracode.logger import DEFAULT_LOG_FILE, resolve_log_file, setup_logger


def test_resolve_log_file(monkeypatch, tmp_path):
    monkeypatch.delenv("TARACODE_LOG_FILE", raising=False)
    assert resolve_log_file() == DEFAULT_LOG_FILE
    assert resolve_log_file(False) is None
    assert resolve_log_file(tmp_path / "x.log") == tmp_path / "x.log"

    monkeypatch.setenv("TARACODE_LOG_FILE", "off")
    assert resolve_log_file() is None

    monkeypatch.setenv("TARACODE_LOG_FILE", str(tmp_path / "env.log"))
    assert resolve_log_file() == tmp_path / "env.log"


def test_file_keeps_info_while_console_shows_warnings(tmp_path):
    log_file = tmp_path / "logs" / "t.log"
    logger = setup_logger("taracode_test_a", verbose=False, log_file=log_file)

    logger.info("model detected")
    for handler in logger.handlers:
        handler.flush()

    console = [h for h in logger.handlers if not hasattr(h, "baseFilename")]
    assert console[0].level == logging.WARNING
    assert "model detected" in log_file.read_text()


def test_reconfigure_replaces_handlers(tmp_path):
    setup_logger("taracode_test_b", log_file=tmp_path / "a.log")
    logger = setup_logger("taracode_test_b", verbose=True, log_file=False)

    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
    assert logger.propagate is False
