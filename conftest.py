import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run tests marked as integration (hit the live marketplace).",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: tests that fetch real pages from apps.shopify.com"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return

    skip_live = pytest.mark.skip(reason="live marketplace test (use --run-integration to run)")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_live)
