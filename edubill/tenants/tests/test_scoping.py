from django.contrib.auth.models import AnonymousUser
from django.test import TestCase

from edubill.tenants.scoping import get_active_membership
from edubill.tenants.tests.factories import TenantMemberFactory
from edubill.tenants.tests.factories import UserFactory


class ActiveMembershipTests(TestCase):
    def test_active_member(self):
        member = TenantMemberFactory()

        self.assertEqual(get_active_membership(member.user), member)

    def test_inactive_membership_is_ignored(self):
        member = TenantMemberFactory(is_active=False)

        self.assertIsNone(get_active_membership(member.user))

    def test_user_without_tenant(self):
        self.assertIsNone(get_active_membership(UserFactory()))

    def test_anonymous(self):
        self.assertIsNone(get_active_membership(AnonymousUser()))
