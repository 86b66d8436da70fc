import logging

from hidesync.utils.logging import _LAST, _MAX_CODES, reset_warnings, warn_once


def test_repeated_code_is_suppressed_until_window_expires(monkeypatch, caplog):
    logger = logging.getLogger("hidesync.test")
    clock = [500.0]
    monkeypatch.setattr("time.monotonic", lambda: clock[0])
    reset_warnings()

    with caplog.at_level(logging.WARNING):
        assert warn_once(logger, "docsync_network", "api down") is True
        assert warn_once(logger, "docsync_network", "api still down") is False
        assert warn_once(logger, "docsync_storage", "disk full") is True
        clock[0] += 61
        assert warn_once(logger, "docsync_network", "api down again") is True

    assert [record.message for record in caplog.records] == [
        "docsync_network: api down",
        "docsync_storage: disk full",
        "docsync_network: api down again",
    ]


def test_code_cache_is_bounded(monkeypatch):
    logger = logging.getLogger("hidesync.test.bounded")
    logger.propagate = False
    clock = [0.0]
    monkeypatch.setattr("time.monotonic", lambda: clock[0])
    reset_warnings()

    for index in range(_MAX_CODES + 1):
        clock[0] = float(index)
        warn_once(logger, f"code-{index}", "x")

    assert len(_LAST) == _MAX_CODES
    assert "code-0" not in _LAST
    assert f"code-{_MAX_CODES}" in _LAST
    reset_warnings()
