"""
Billing API views.

Views in this module:
- PlanListView / PlanDetailView: the active plan catalog
- SubscribeView: start a subscription for the caller's tenant
- CurrentSubscriptionView / SubscriptionDetailView: read and update
- UsageView / UsageLimitsView: current usage against plan limits
- PaymentView: one-off charge
- WebhookView: gateway webhook endpoint (unauthenticated, signature checked)

Every authenticated view acts on the caller's tenant (TenantScopedMixin).
Service exceptions propagate to ``billing_exception_handler``.
"""

from __future__ import annotations

import logging

from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import inline_serializer
from rest_framework import serializers
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from edubill.billing.catalog import get_catalog
from edubill.billing.payments import PaymentService
from edubill.billing.serializers import PaymentRequestSerializer
from edubill.billing.serializers import PaymentSerializer
from edubill.billing.serializers import PlanSerializer
from edubill.billing.serializers import ProrationSerializer
from edubill.billing.serializers import SubscribeSerializer
from edubill.billing.serializers import SubscriptionSerializer
from edubill.billing.serializers import SubscriptionUpdateSerializer
from edubill.billing.subscriptions import SubscriptionService
from edubill.billing.usage import calculate_billing
from edubill.billing.usage import check_usage_limits
from edubill.billing.usage import collect_usage
from edubill.billing.webhooks import WebhookProcessor
from edubill.core.exceptions import NotFoundError
from edubill.gateways.currency import to_minor_units
from edubill.tenants.models import School
from edubill.tenants.scoping import TenantScopedMixin

logger = logging.getLogger(__name__)

# Header each provider sends its webhook signature in. PayMob signs with
# the ``hmac`` query parameter instead.
SIGNATURE_HEADERS = ("Stripe-Signature", "Signature")


class PlanListView(APIView):
    @extend_schema(
        summary="List plans",
        responses={200: PlanSerializer(many=True)},
        tags=["Billing"],
    )
    def get(self, request):
        return Response(PlanSerializer(get_catalog().active(), many=True).data)


class PlanDetailView(APIView):
    @extend_schema(
        summary="Get a plan",
        responses={200: PlanSerializer, 404: {"description": "Unknown plan."}},
        tags=["Billing"],
    )
    def get(self, request, code):
        return Response(PlanSerializer(get_catalog().get(code)).data)


class SubscribeView(TenantScopedMixin, APIView):
    """
    Start a subscription for the caller's tenant.

    Returns 400 with ``violations`` when current usage does not fit the
    plan and 409 when an open subscription already exists.
    """

    @extend_schema(
        summary="Subscribe to a plan",
        request=SubscribeSerializer,
        responses={
            201: SubscriptionSerializer,
            400: {"description": "Invalid request or plan limits exceeded."},
            409: {"description": "An open subscription already exists."},
        },
        tags=["Billing"],
    )
    def post(self, request):
        serializer = SubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        school = None
        if data.get("schoolId") is not None:
            school = School.objects.filter(tenant=self.tenant, pk=data["schoolId"]).first()
            if school is None:
                raise NotFoundError(f"School '{data['schoolId']}' not found", code="school_not_found")

        subscription = SubscriptionService().create_subscription(
            self.tenant,
            data["planId"],
            school=school,
            billing_cycle=data["billingCycle"],
            trial_days=data.get("trialDays"),
            payment_method_id=data.get("paymentMethodId") or None,
        )
        return Response(SubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)


class CurrentSubscriptionView(TenantScopedMixin, APIView):
    @extend_schema(
        summary="Get the current subscription",
        parameters=[OpenApiParameter("schoolId", int, required=False)],
        responses={200: SubscriptionSerializer, 404: {"description": "No open subscription."}},
        tags=["Billing"],
    )
    def get(self, request):
        school = None
        school_id = request.query_params.get("schoolId")
        if school_id:
            school = School.objects.filter(tenant=self.tenant, pk=school_id).first()
            if school is None:
                raise NotFoundError(f"School '{school_id}' not found", code="school_not_found")

        subscription = SubscriptionService().get_current_subscription(self.tenant, school=school)
        if subscription is None:
            raise NotFoundError("No open subscription", code="subscription_not_found")
        return Response(SubscriptionSerializer(subscription).data)


class SubscriptionDetailView(TenantScopedMixin, APIView):
    @extend_schema(
        summary="Update a subscription",
        description=(
            "Change the plan (prorated), the billing cycle, or the "
            "cancel-at-period-end flag."
        ),
        request=SubscriptionUpdateSerializer,
        responses={
            200: inline_serializer(
                name="SubscriptionUpdateResponse",
                fields={
                    "subscription": SubscriptionSerializer(),
                    "proration": ProrationSerializer(allow_null=True),
                },
            ),
            404: {"description": "Unknown subscription."},
            409: {"description": "Subscription is canceled."},
        },
        tags=["Billing"],
    )
    def put(self, request, subscription_id):
        service = SubscriptionService()
        subscription = service.get_subscription(self.tenant, subscription_id)

        serializer = SubscriptionUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = service.update_subscription(
            subscription,
            plan_code=data.get("planId"),
            billing_cycle=data.get("billingCycle"),
            cancel_at_period_end=data.get("cancelAtPeriodEnd"),
        )
        return Response(
            {
                "subscription": SubscriptionSerializer(result.subscription).data,
                "proration": ProrationSerializer(result.proration).data if result.proration else None,
            },
        )


class UsageView(TenantScopedMixin, APIView):
    @extend_schema(
        summary="Current usage and billing estimate",
        responses={
            200: inline_serializer(
                name="UsageResponse",
                fields={
                    "usage": serializers.DictField(),
                    "billing": serializers.DictField(allow_null=True),
                },
            ),
        },
        tags=["Billing"],
    )
    def get(self, request):
        usage = collect_usage(self.tenant)
        subscription = SubscriptionService().get_current_subscription(self.tenant)

        billing = None
        if subscription is not None:
            calculation = calculate_billing(self.tenant, subscription, usage)
            billing = {
                "planId": subscription.plan_id,
                "billingCycle": calculation.billing_cycle,
                "currency": calculation.currency,
                "baseAmount": calculation.base_amount,
                "overageAmount": calculation.overage.total,
                "total": calculation.total,
                "lineItems": [
                    {
                        "metric": item.metric,
                        "description": item.description,
                        "excess": item.excess,
                        "unitRate": item.unit_rate,
                        "amount": item.amount,
                    }
                    for item in calculation.overage.line_items
                ],
                "periodStart": calculation.period_start,
                "periodEnd": calculation.period_end,
            }
        return Response({"usage": _usage_body(usage), "billing": billing})


class UsageLimitsView(TenantScopedMixin, APIView):
    @extend_schema(
        summary="Check usage against plan limits",
        parameters=[OpenApiParameter("planId", str, required=False)],
        responses={
            200: inline_serializer(
                name="UsageLimitsResponse",
                fields={
                    "withinLimits": serializers.BooleanField(),
                    "violations": serializers.ListField(child=serializers.CharField()),
                    "usage": serializers.DictField(),
                    "limits": serializers.DictField(),
                },
            ),
            404: {"description": "No plan given and no open subscription."},
        },
        tags=["Billing"],
    )
    def get(self, request):
        plan_code = request.query_params.get("planId")
        if not plan_code:
            subscription = SubscriptionService().get_current_subscription(self.tenant)
            if subscription is None:
                raise NotFoundError("No open subscription; pass planId", code="subscription_not_found")
            plan_code = subscription.plan_id

        plan = get_catalog().get(plan_code)
        check = check_usage_limits(collect_usage(self.tenant), plan)
        return Response(
            {
                "withinLimits": check.within_limits,
                "violations": check.violations,
                "usage": _usage_body(check.usage),
                "limits": dict(plan.limits),
            },
        )


class PaymentView(TenantScopedMixin, APIView):
    @extend_schema(
        summary="Make a payment",
        description="``amount`` is in major units and converted to minor units for the gateway.",
        request=PaymentRequestSerializer,
        responses={
            201: PaymentSerializer,
            402: {"description": "Payment declined."},
            502: {"description": "Gateway error."},
        },
        tags=["Billing"],
    )
    def post(self, request):
        serializer = PaymentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payment = PaymentService().process_payment(
            self.tenant,
            to_minor_units(data["amount"], data["currency"]),
            data["currency"],
            data["paymentMethodId"],
            description=data["description"],
            subscription=SubscriptionService().get_current_subscription(self.tenant),
        )
        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@method_decorator(csrf_exempt, name="dispatch")
class WebhookView(APIView):
    """
    Receive a gateway webhook.

    Unauthenticated; the provider signature is the credential. Returns 400
    for a bad signature, 404 for an unknown gateway, and 200 once the event
    has been verified and dispatched.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="Gateway webhook",
        request=None,
        responses={
            200: inline_serializer(
                name="WebhookResponse",
                fields={
                    "success": serializers.BooleanField(),
                    "message": serializers.CharField(),
                },
            ),
            400: {"description": "Invalid signature or payload."},
            404: {"description": "Unknown or disabled gateway."},
        },
        tags=["Webhooks"],
    )
    def post(self, request, gateway):
        signature = next(
            (request.headers[name] for name in SIGNATURE_HEADERS if request.headers.get(name)),
            "",
        )
        result = WebhookProcessor().process(
            gateway,
            request.body,
            signature,
            params=request.query_params.dict(),
        )
        return Response(result.as_dict())


def _usage_body(usage) -> dict:
    return {
        "schools": usage.schools,
        "users": usage.users,
        "students": usage.students,
        "apiCalls": usage.api_calls,
        "storageGb": usage.storage_gb,
        "lastUpdated": usage.last_updated,
    }
