"""
Tenant boundary models.

Billing treats these as external collaborators: it never creates schools or
members, it only counts them for limit checks and reads routing hints
(country, currency, preferred gateway) from the tenant.

Relationship: Tenant ──1:N── School
              Tenant ──1:N── TenantMember ──1:1── User
"""

from django.conf import settings
from django.db import models
from model_utils.models import TimeStampedModel

from edubill.tenants.constants import MemberRole


class Tenant(TimeStampedModel):
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=100, unique=True)
    subdomain = models.CharField(max_length=100, blank=True)
    billing_email = models.EmailField(blank=True)
    country = models.CharField(
        max_length=2,
        default="US",
        help_text="ISO 3166-1 alpha-2 country code used for gateway routing.",
    )
    currency = models.CharField(
        max_length=3,
        default="USD",
        help_text="ISO 4217 currency code the tenant is billed in.",
    )
    preferred_gateway = models.CharField(
        max_length=20,
        blank=True,
        help_text="Gateway to try first when it supports the tenant's currency.",
    )

    # Usage counters maintained by the API gateway and file storage services.
    api_calls_current_period = models.PositiveIntegerField(default=0)
    storage_used_gb = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class School(TimeStampedModel):
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="schools",
    )
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    student_count = models.PositiveIntegerField(
        default=0,
        help_text="Enrolled students, kept current by the roster service.",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return f"{self.name} ({self.tenant.name})"


class TenantMember(TimeStampedModel):
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="members",
    )
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tenant_membership",
    )
    role = models.CharField(
        max_length=20,
        choices=MemberRole.choices,
        default=MemberRole.STAFF,
    )
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return f"{self.user} @ {self.tenant.name}"
