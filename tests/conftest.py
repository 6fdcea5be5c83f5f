import logging

import pytest

from dchat import logging_config
from dchat.config import reset_config


@pytest.fixture(autouse=True)
def _fresh_config():
    """Every test starts from default configuration and unconfigured logging."""
    reset_config()
    yield
    reset_config()
    root = logging.getLogger(logging_config.ROOT_LOGGER)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()
    root.propagate = True
    logging_config._configured = False
