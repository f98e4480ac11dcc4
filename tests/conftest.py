import logging
from collections.abc import Iterator

import pytest


@pytest.fixture(autouse=True)
def reset_app_logger() -> Iterator[None]:
    """Detaches handlers installed by `setup_logging` between tests."""
    yield
    logger = logging.getLogger("git-fetch-filter")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
