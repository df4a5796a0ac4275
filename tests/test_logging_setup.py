# tests/test_logging_setup.py

from __future__ import annotations

import logging

import pytest

from taskpulse.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_lets_own_records_through_and_quiets_libraries() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("taskpulse.tasks.task_scheduler", logging.DEBUG))
    assert not f.filter(_record("aiohttp.access", logging.INFO))
    assert f.filter(_record("aiohttp.access", logging.WARNING))
    assert not f.filter(_record("urllib3", logging.INFO))


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_setup_logging_writes_full_log_file(tmp_path, restore_root_logger) -> None:
    setup_logging(log_dir=tmp_path / "logs")

    logging.getLogger("taskpulse.test").debug("hello file")
    for h in logging.getLogger().handlers:
        h.flush()

    assert "hello file" in (tmp_path / "logs" / "taskpulse.log").read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING
