"""
Mixin and permission classes for tenant-scoped API views.

Every billing endpoint acts on the tenant of the authenticated user. The
tenant comes from the user's active TenantMember row, never from the
request body.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView

    from edubill.tenants.models import Tenant
    from edubill.tenants.models import TenantMember


def get_active_membership(user) -> TenantMember | None:
    """Return the user's active membership, or None."""
    if not user or not user.is_authenticated:
        return None
    from edubill.tenants.models import TenantMember

    return (
        TenantMember.objects.select_related("tenant")
        .filter(user=user, is_active=True)
        .first()
    )


class TenantMembershipPermission(permissions.BasePermission):
    """
    Permission that requires an active tenant membership.

    Returns 403 for authenticated users that do not belong to a tenant.
    """

    message = "You are not a member of a billing tenant."

    def has_permission(self, request: Request, view: APIView) -> bool:
        return get_active_membership(request.user) is not None


class TenantScopedMixin:
    """
    Mixin that resolves the caller's tenant.

    Usage:
        class MyView(TenantScopedMixin, APIView):
            def get(self, request):
                subs = Subscription.objects.filter(tenant=self.tenant)
    """

    permission_classes = [permissions.IsAuthenticated, TenantMembershipPermission]

    _membership: TenantMember | None = None

    def get_membership(self) -> TenantMember | None:
        if self._membership is None:
            self._membership = get_active_membership(self.request.user)
        return self._membership

    def get_tenant(self) -> Tenant:
        return self.get_membership().tenant

    @property
    def tenant(self) -> Tenant:
        """Convenience property to access the tenant."""
        return self.get_tenant()
