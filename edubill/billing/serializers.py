"""
Serializers for the billing API.

Request and response bodies use camelCase keys. Amounts in responses are
minor units unless the field name says otherwise.
"""

from rest_framework import serializers

from edubill.billing.constants import BillingCycle
from edubill.billing.models import Payment
from edubill.billing.models import Subscription
from edubill.gateways.currency import to_major_units


class PlanSerializer(serializers.Serializer):
    """Read-only view of a CatalogPlan."""

    id = serializers.CharField(source="code")
    name = serializers.CharField()
    description = serializers.CharField()
    price = serializers.IntegerField(help_text="Monthly price in minor units")
    yearlyPrice = serializers.IntegerField(source="yearly_price", allow_null=True)
    displayPrice = serializers.SerializerMethodField()
    currency = serializers.CharField()
    interval = serializers.CharField()
    features = serializers.ListField(child=serializers.CharField())
    limits = serializers.DictField(child=serializers.IntegerField(), help_text="-1 means unlimited")
    trialDays = serializers.IntegerField(source="trial_days")

    def get_displayPrice(self, plan) -> str:
        return str(to_major_units(plan.price, plan.currency))


class SubscriptionSerializer(serializers.ModelSerializer):
    planId = serializers.CharField(source="plan_id", read_only=True)
    schoolId = serializers.IntegerField(source="school_id", read_only=True, allow_null=True)
    billingCycle = serializers.CharField(source="billing_cycle", read_only=True)
    currentPeriodStart = serializers.DateTimeField(source="current_period_start", read_only=True)
    currentPeriodEnd = serializers.DateTimeField(source="current_period_end", read_only=True)
    trialEnd = serializers.DateTimeField(source="trial_end", read_only=True, allow_null=True)
    cancelAtPeriodEnd = serializers.BooleanField(source="cancel_at_period_end", read_only=True)
    canceledAt = serializers.DateTimeField(source="canceled_at", read_only=True, allow_null=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "planId",
            "schoolId",
            "status",
            "billingCycle",
            "currentPeriodStart",
            "currentPeriodEnd",
            "trialEnd",
            "cancelAtPeriodEnd",
            "canceledAt",
            "gateway",
        ]
        read_only_fields = fields


class SubscribeSerializer(serializers.Serializer):
    planId = serializers.CharField()
    paymentMethodId = serializers.CharField(required=False, allow_blank=True)
    trialDays = serializers.IntegerField(required=False, min_value=0)
    billingCycle = serializers.ChoiceField(choices=BillingCycle.choices, default=BillingCycle.MONTHLY)
    schoolId = serializers.IntegerField(required=False)


class SubscriptionUpdateSerializer(serializers.Serializer):
    planId = serializers.CharField(required=False)
    cancelAtPeriodEnd = serializers.BooleanField(required=False)
    billingCycle = serializers.ChoiceField(choices=BillingCycle.choices, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide planId, cancelAtPeriodEnd or billingCycle.")
        return attrs


class ProrationSerializer(serializers.Serializer):
    remainingDays = serializers.IntegerField(source="remaining_days")
    totalDays = serializers.IntegerField(source="total_days")
    amount = serializers.IntegerField(help_text="Positive = charge, negative = credit")


class PaymentRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(
        max_digits=14,
        decimal_places=3,
        help_text="Amount in major units, e.g. 29.99",
    )
    currency = serializers.CharField(min_length=3, max_length=3)
    paymentMethodId = serializers.CharField()
    description = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value

    def validate_currency(self, value):
        return value.upper()


class PaymentSerializer(serializers.ModelSerializer):
    subscriptionId = serializers.UUIDField(source="subscription_id", read_only=True, allow_null=True)
    gatewayPaymentId = serializers.CharField(source="gateway_payment_id", read_only=True)
    originalAmount = serializers.IntegerField(source="original_amount", read_only=True, allow_null=True)
    originalCurrency = serializers.CharField(source="original_currency", read_only=True)
    exchangeRate = serializers.DecimalField(
        source="exchange_rate",
        max_digits=18,
        decimal_places=8,
        read_only=True,
        allow_null=True,
    )
    redirectUrl = serializers.CharField(source="redirect_url", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "subscriptionId",
            "amount",
            "currency",
            "status",
            "gateway",
            "gatewayPaymentId",
            "originalAmount",
            "originalCurrency",
            "exchangeRate",
            "redirectUrl",
            "created",
        ]
        read_only_fields = fields
