import os

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (requires a PostgreSQL DATABASE_URL).",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: tests that require a real PostgreSQL database"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        if os.getenv("DATABASE_URL"):
            return
        reason = "integration test (DATABASE_URL is not set)"
    else:
        reason = "integration test (use --run-integration to run)"

    skip_integration = pytest.mark.skip(reason=reason)
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
