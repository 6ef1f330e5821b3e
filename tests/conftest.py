"""
Shared fixtures for tests.

Provides:
1. A fresh config singleton per test
2. An order factory fixture (see tests/fixtures/orders.py)
"""

import pytest

from tests.fixtures.orders import make_order


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    """Drop the cached OrderServiceConfig so env changes in one test do not leak."""
    import apps.order_service.config as config_module

    config_module._config_instance = None
    yield
    config_module._config_instance = None


@pytest.fixture()
def order_factory():
    """Factory fixture for submittable orders: ``order_factory(1, status="SUBMITTED")``."""
    return make_order
