"""
Django admin configuration for billing models.

Provides admin interfaces for:
- Plan: pricing, limits and provider price references
- Subscription: tenant subscriptions and their gateway links
- PlanChange: plan change audit log
- Payment: charge attempts
"""

from django.contrib import admin

from edubill.billing.models import Payment
from edubill.billing.models import Plan
from edubill.billing.models import PlanChange
from edubill.billing.models import Subscription


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for pricing plans."""

    list_display = [
        "code",
        "name",
        "price",
        "currency",
        "max_schools",
        "max_students",
        "trial_days",
        "is_active",
        "display_order",
    ]
    list_editable = ["is_active", "display_order"]
    ordering = ["display_order"]
    search_fields = ["code", "name"]

    fieldsets = [
        (None, {"fields": ["code", "name", "description", "features", "is_active"]}),
        (
            "Pricing",
            {
                "fields": ["price", "yearly_price", "currency", "interval", "trial_days"],
                "description": "Prices are in minor units. Locked while open subscriptions use the plan.",
            },
        ),
        (
            "Limits",
            {
                "fields": [
                    "max_schools",
                    "max_users",
                    "max_students",
                    "max_api_calls",
                    "max_storage_gb",
                ],
                "description": "-1 means unlimited.",
            },
        ),
        ("Gateways", {"fields": ["gateway_price_ids"]}),
        ("Display", {"fields": ["display_order"]}),
    ]


class PlanChangeInline(admin.TabularInline):
    model = PlanChange
    fk_name = "subscription"
    extra = 0
    fields = ["old_plan", "new_plan", "change_type", "proration_amount", "effective_at"]
    readonly_fields = fields
    can_delete = False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for tenant subscriptions."""

    list_display = [
        "tenant",
        "school",
        "plan",
        "status",
        "billing_cycle",
        "current_period_end",
        "cancel_at_period_end",
        "gateway",
    ]
    list_filter = ["status", "plan", "billing_cycle", "gateway"]
    search_fields = [
        "tenant__name",
        "school__name",
        "gateway_customer_id",
        "gateway_subscription_id",
    ]
    raw_id_fields = ["tenant", "school"]
    readonly_fields = ["id", "created", "modified"]
    inlines = [PlanChangeInline]

    fieldsets = [
        (None, {"fields": ["id", "tenant", "school", "plan", "status", "billing_cycle"]}),
        ("Billing Period", {"fields": ["current_period_start", "current_period_end"]}),
        ("Trial", {"fields": ["trial_start", "trial_end"]}),
        (
            "Cancellation",
            {
                "fields": [
                    "cancel_at_period_end",
                    "canceled_at",
                    "cancellation_reason",
                    "suspended_at",
                ],
            },
        ),
        (
            "Gateway",
            {
                "fields": [
                    "gateway",
                    "gateway_customer_id",
                    "gateway_subscription_id",
                    "payment_method_id",
                ],
            },
        ),
        ("Metadata", {"fields": ["metadata"], "classes": ["collapse"]}),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]


@admin.register(PlanChange)
class PlanChangeAdmin(admin.ModelAdmin):
    list_display = [
        "subscription",
        "old_plan",
        "new_plan",
        "change_type",
        "proration_amount",
        "effective_at",
    ]
    list_filter = ["change_type"]
    search_fields = ["subscription__tenant__name"]
    raw_id_fields = ["subscription"]
    readonly_fields = ["created", "modified"]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Admin for payment attempts."""

    list_display = [
        "tenant",
        "amount",
        "currency",
        "status",
        "gateway",
        "gateway_payment_id",
        "created",
    ]
    list_filter = ["status", "gateway", "currency", "created"]
    search_fields = ["tenant__name", "gateway_payment_id"]
    raw_id_fields = ["tenant", "subscription"]
    readonly_fields = ["created", "modified"]
