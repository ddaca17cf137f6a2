import logging

import pytest

from core.logs import LOGGER_NAMES


@pytest.fixture(autouse=True)
def reset_package_loggers():
    """Undo setup_logging between tests."""
    yield
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
