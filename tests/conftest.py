import logging

import pytest
import structlog


@pytest.fixture(autouse=True)
def silence_structlog():
    """Keep log lines out of captured stdout and stderr."""
    structlog.configure(
        processors=[structlog.processors.add_log_level],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()
