import pytest
from django.core.cache import cache
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from edubill.billing.catalog import refresh_catalog
from edubill.gateways.registry import reset_registry
from edubill.tenants.tests.factories import TenantFactory
from edubill.tenants.tests.factories import TenantMemberFactory


@pytest.fixture(autouse=True)
def _fresh_process_state():
    """
    Drop per-process snapshots between tests.

    The plan catalog and gateway registry outlive a test's transaction, so a
    rolled-back Plan or a patched setting would otherwise leak forward.
    """
    refresh_catalog()
    reset_registry()
    cache.clear()
    yield
    refresh_catalog()
    reset_registry()


@pytest.fixture
def plans(db):
    """The three seeded plans."""
    from edubill.billing.management.commands.seed_plans import PLAN_CONFIG
    from edubill.billing.models import Plan

    created = {}
    for code, config in PLAN_CONFIG.items():
        plan, _ = Plan.objects.update_or_create(code=code, defaults=config)
        created[str(code)] = plan
    refresh_catalog()
    return created


@pytest.fixture
def tenant(db):
    return TenantFactory()


@pytest.fixture
def member(tenant):
    return TenantMemberFactory(tenant=tenant)


@pytest.fixture
def api_client() -> APIClient:
    return APIClient()


@pytest.fixture
def auth_client(member) -> APIClient:
    """API client authenticated as an admin member of ``tenant``."""
    token, _ = Token.objects.get_or_create(user=member.user)
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.key}")
    return client
