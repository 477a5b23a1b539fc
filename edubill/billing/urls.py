"""
URL configuration for the billing app.

Routes:
- /billing/plans                      - Active plans (GET)
- /billing/plans/<code>               - One plan (GET)
- /billing/subscribe                  - Start a subscription (POST)
- /billing/subscription               - Current subscription (GET)
- /billing/subscription/<uuid>        - Update a subscription (PUT)
- /billing/usage                      - Usage and billing estimate (GET)
- /billing/usage/limits               - Usage against plan limits (GET)
- /billing/payment                    - One-off payment (POST)
- /billing/webhooks/<gateway>         - Gateway webhooks (POST, unauthenticated)
"""

from django.urls import path

from edubill.billing.views import CurrentSubscriptionView
from edubill.billing.views import PaymentView
from edubill.billing.views import PlanDetailView
from edubill.billing.views import PlanListView
from edubill.billing.views import SubscribeView
from edubill.billing.views import SubscriptionDetailView
from edubill.billing.views import UsageLimitsView
from edubill.billing.views import UsageView
from edubill.billing.views import WebhookView

app_name = "billing"

urlpatterns = [
    path(
        "plans",
        PlanListView.as_view(),
        name="plans",
    ),
    path(
        "plans/<str:code>",
        PlanDetailView.as_view(),
        name="plan-detail",
    ),
    path(
        "subscribe",
        SubscribeView.as_view(),
        name="subscribe",
    ),
    path(
        "subscription",
        CurrentSubscriptionView.as_view(),
        name="subscription",
    ),
    path(
        "subscription/<uuid:subscription_id>",
        SubscriptionDetailView.as_view(),
        name="subscription-detail",
    ),
    path(
        "usage",
        UsageView.as_view(),
        name="usage",
    ),
    path(
        "usage/limits",
        UsageLimitsView.as_view(),
        name="usage-limits",
    ),
    path(
        "payment",
        PaymentView.as_view(),
        name="payment",
    ),
    path(
        "webhooks/<str:gateway>",
        WebhookView.as_view(),
        name="webhook",
    ),
]
