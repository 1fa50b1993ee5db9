"""Tests for logging setup"""
import logging
import logging.handlers

import pytest

import logging_config


@pytest.fixture
def logs_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config, "LOGS_DIR", tmp_path / "logs")
    logging_config.reset_logging()
    yield tmp_path / "logs"
    logging_config.reset_logging()


def test_setup_creates_rotating_log(logs_dir):
    path = logging_config.setup_logging(console=False, log_file="run.log")

    assert path == logs_dir / "run.log"
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.handlers.RotatingFileHandler)

    logging_config.get_logger("rotator.test").warning("hello")
    handlers[0].flush()
    assert "hello" in path.read_text(encoding="utf-8")


def test_setup_runs_once(logs_dir):
    logging_config.setup_logging(console=True)
    logging_config.setup_logging(console=True)
    assert len(logging.getLogger().handlers) == 2


def test_provider_logging_can_be_quieted(logs_dir):
    logging_config.setup_logging(console=False, log_providers=False)
    assert logging.getLogger("providers").level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_unknown_level_name_falls_back():
    assert logging_config._level("verbose") == logging.INFO
    assert logging_config._level(" debug ") == logging.DEBUG
