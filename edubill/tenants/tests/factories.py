from collections.abc import Sequence
from typing import Any

import factory
from django.contrib.auth import get_user_model
from factory import Faker
from factory import post_generation
from factory.django import DjangoModelFactory

from edubill.tenants.constants import MemberRole
from edubill.tenants.models import School
from edubill.tenants.models import Tenant
from edubill.tenants.models import TenantMember


class TenantFactory(DjangoModelFactory):
    class Meta:
        model = Tenant

    name = factory.Sequence(lambda n: f"Test District {n}")
    slug = factory.Sequence(lambda n: f"test-district-{n}")
    subdomain = factory.Sequence(lambda n: f"district{n}")
    billing_email = Faker("email")
    country = "US"
    currency = "USD"


class SchoolFactory(DjangoModelFactory):
    class Meta:
        model = School

    tenant = factory.SubFactory(TenantFactory)
    name = factory.Sequence(lambda n: f"Test School {n}")
    email = Faker("email")
    student_count = 100


class UserFactory(DjangoModelFactory):
    class Meta:
        model = get_user_model()
        django_get_or_create = ["username"]

    username = factory.Sequence(lambda n: f"user{n}")
    email = Faker("email")
    is_active = True

    @post_generation
    def password(self, create: bool, extracted: Sequence[Any], **kwargs):  # noqa: FBT001
        self.set_password(extracted or "correct-horse-battery-staple")

    @classmethod
    def _after_postgeneration(cls, instance, create, results=None):
        """Save again the instance if creating and at least one hook ran."""
        if create and results and not cls._meta.skip_postgeneration_save:
            instance.save()


class TenantMemberFactory(DjangoModelFactory):
    class Meta:
        model = TenantMember

    tenant = factory.SubFactory(TenantFactory)
    user = factory.SubFactory(UserFactory)
    role = MemberRole.ADMIN
    is_active = True
