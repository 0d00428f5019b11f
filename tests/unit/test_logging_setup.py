import logging

import pytest

from taskboard.logging_setup import HANDLER_NAME, LOG_FORMAT, configure_logging


@pytest.fixture()
def taskboard_logger():
    logger = logging.getLogger("taskboard")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    try:
        yield logger
    finally:
        logger.handlers[:] = saved[0]
        logger.setLevel(saved[1])
        logger.propagate = saved[2]


def test_configure_logging_installs_one_named_handler(taskboard_logger):
    configure_logging("DEBUG")
    configure_logging("INFO")

    named = [h for h in taskboard_logger.handlers if h.get_name() == HANDLER_NAME]
    assert len(named) == 1
    assert named[0].formatter._fmt == LOG_FORMAT
    assert taskboard_logger.level == logging.INFO
    assert taskboard_logger.propagate is False
