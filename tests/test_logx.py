import logging

import pytest

from dnsvard.logx import new_logger


@pytest.mark.parametrize(
    "name, expected",
    [
        ("debug", logging.DEBUG),
        ("info", logging.INFO),
        ("", logging.INFO),
        (" INFO ", logging.INFO),
        ("warn", logging.WARNING),
        ("warning", logging.WARNING),
        ("error", logging.ERROR),
    ],
)
def test_levels(name, expected):
    assert new_logger(name).level == expected


def test_unsupported_level_raises():
    with pytest.raises(ValueError, match="unsupported log level"):
        new_logger("verbose")


def test_writes_to_stderr_and_filters(capsys):
    logger = new_logger("info")
    logger.debug("hidden-message")
    logger.info("visible-message")
    err = capsys.readouterr().err
    assert "visible-message" in err
    assert "hidden-message" not in err