"""Test configuration for pytest."""

import logging
import os
import pytest


@pytest.fixture(autouse=True)
def configure_test_logging():
    """Configure logging for tests to be minimal."""
    os.environ['BURSTSIFT_LOG_LEVEL'] = 'WARNING'

    logging.getLogger().setLevel(logging.WARNING)

    # Fallback warnings are expected in many tests
    for logger_name in ['burstsift.analysis.vision', 'burstsift.pipeline']:
        logging.getLogger(logger_name).setLevel(logging.ERROR)
