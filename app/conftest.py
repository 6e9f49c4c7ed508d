"""
Project-wide pytest hooks.

Fixtures live in each app's tests/conftest.py. This module only tunes
settings for speed and tags tests by module so a fast subset can run with
``pytest -m unit``.
"""

import pytest

# Modules that need neither the database nor several collaborating services
UNIT_MODULES = {
    "test_exceptions.py",
    "test_locks.py",
    "test_logging.py",
    "test_services.py",
    "test_state_transitions.py",
}

# Full refund journeys driven through the API
E2E_MODULES = {"test_integration.py"}


def pytest_configure():
    from django.conf import settings

    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]


def pytest_collection_modifyitems(items):
    """Add a unit, integration or e2e marker unless the test sets one."""
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration", "e2e"}:
            continue

        module = item.path.name
        if module in E2E_MODULES:
            item.add_marker(pytest.mark.e2e)
        elif module in UNIT_MODULES:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
