import pytest

from edubill.billing.tests.utils import stub_gateway
from edubill.gateways.registry import get_registry


@pytest.fixture
def gateways():
    """The settings-configured registry with every remote call stubbed."""
    registry = get_registry()
    for gateway in registry.enabled():
        stub_gateway(gateway)
    return registry
