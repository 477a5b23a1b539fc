"""
Subscription lifecycle.

SubscriptionService owns every subscription state change: creation, plan
and cycle changes, cancellation, renewal, trial conversion, and the
payment-driven transitions the dunning engine relies on.

The local database is the source of truth. Gateway calls made while
creating or changing a subscription are best effort: failures are logged
and the local row is still written. Renewal and non-payment cancellation
run inside batch jobs, where a gateway failure rolls that row back so the
next tick retries it.

Key invariant: at most one non-terminal subscription per (tenant, school).
``_has_open_subscription`` is only an early, friendlier check; the
conditional unique constraints on Subscription are what actually enforce
it when two requests race.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError
from django.db import transaction
from django.utils import timezone

from edubill.billing.catalog import CatalogPlan
from edubill.billing.catalog import get_catalog
from edubill.billing.constants import DELINQUENT_STATUSES
from edubill.billing.constants import RENEWABLE_STATUSES
from edubill.billing.constants import TERMINAL_STATUSES
from edubill.billing.constants import BillingCycle
from edubill.billing.constants import CancellationReason
from edubill.billing.constants import PlanChangeType
from edubill.billing.constants import SubscriptionStatus
from edubill.billing.models import OPEN_SUBSCRIPTION
from edubill.billing.models import PlanChange
from edubill.billing.models import Subscription
from edubill.billing.payments import PaymentService
from edubill.billing.periods import calculate_billing_period
from edubill.billing.periods import next_billing_period
from edubill.billing.proration import ProrationResult
from edubill.billing.proration import calculate_proration
from edubill.billing.usage import check_usage_limits
from edubill.billing.usage import collect_usage
from edubill.core.batch import BatchResult
from edubill.core.exceptions import ConflictError
from edubill.core.exceptions import LimitExceededError
from edubill.core.exceptions import NotFoundError
from edubill.core.exceptions import PaymentDeclinedError
from edubill.core.exceptions import ValidationError
from edubill.dunning.services import DunningService
from edubill.gateways.registry import get_registry

if TYPE_CHECKING:
    from edubill.billing.models import Payment
    from edubill.gateways.base import PaymentGateway
    from edubill.tenants.models import School
    from edubill.tenants.models import Tenant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionUpdateResult:
    subscription: Subscription
    proration: ProrationResult | None = None


class SubscriptionService:
    """
    Service for subscription state changes.

    Usage:
        service = SubscriptionService()
        subscription = service.create_subscription(tenant, "starter")
        service.change_plan(subscription, "professional")
        service.cancel_subscription(subscription)
    """

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_subscription(self, tenant: Tenant, subscription_id) -> Subscription:
        try:
            return Subscription.objects.select_related("plan", "school").get(
                tenant=tenant,
                pk=subscription_id,
            )
        except (Subscription.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                f"Subscription '{subscription_id}' not found",
                code="subscription_not_found",
            ) from None

    def list_subscriptions(self, tenant: Tenant, school: School | None = None, status: str | None = None):
        queryset = Subscription.objects.filter(tenant=tenant).select_related("plan", "school")
        if school is not None:
            queryset = queryset.filter(school=school)
        if status:
            queryset = queryset.filter(status=status)
        return queryset

    def get_current_subscription(self, tenant: Tenant, school: School | None = None) -> Subscription | None:
        """The open subscription for ``tenant`` (or one of its schools), if any."""
        return (
            Subscription.objects.filter(tenant=tenant, school=school)
            .filter(OPEN_SUBSCRIPTION)
            .select_related("plan", "school")
            .first()
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_subscription(
        self,
        tenant: Tenant,
        plan_code: str,
        *,
        school: School | None = None,
        billing_cycle: str = BillingCycle.MONTHLY,
        start_trial: bool = True,
        trial_days: int | None = None,
        start_date: datetime | None = None,
        payment_method_id: str | None = None,
        gateway_customer_id: str | None = None,
        metadata: dict | None = None,
        enforce_limits: bool = True,
        now: datetime | None = None,
    ) -> Subscription:
        """
        Create a subscription for ``tenant`` (or one of its schools).

        Raises ValidationError for an inactive plan or unknown cycle,
        NotFoundError for a school outside the tenant, LimitExceededError
        when current usage does not fit the plan, and ConflictError when
        an open subscription already exists.
        """
        now = now or timezone.now()
        plan = get_catalog().get_active(plan_code)
        if billing_cycle not in BillingCycle.values:
            raise ValidationError(f"Unknown billing cycle '{billing_cycle}'", code="invalid_billing_cycle")
        if school is not None and school.tenant_id != tenant.pk:
            raise NotFoundError(f"School '{school.pk}' not found", code="school_not_found")
        if enforce_limits:
            self._enforce_limits(tenant, plan)
        if self._has_open_subscription(tenant, school):
            raise ConflictError(self._duplicate_message(tenant, school), code="subscription_exists")

        start = start_date or now
        period = calculate_billing_period(start, billing_cycle)
        days = plan.trial_days if trial_days is None else trial_days
        if days < 0:
            raise ValidationError("trial_days cannot be negative", code="invalid_trial_days")
        in_trial = start_trial and days > 0

        subscription_id = uuid.uuid4()
        metadata = dict(metadata or {})
        remote = self._provision_remote(
            tenant,
            plan,
            subscription_id=subscription_id,
            trial_days=days if in_trial else 0,
            payment_method_id=payment_method_id or "",
            gateway_customer_id=gateway_customer_id or "",
        )

        subscription = Subscription(
            id=subscription_id,
            tenant=tenant,
            school=school,
            plan_id=plan.code,
            status=SubscriptionStatus.TRIAL if in_trial else SubscriptionStatus.ACTIVE,
            billing_cycle=billing_cycle,
            current_period_start=period.start,
            current_period_end=period.end,
            trial_start=start if in_trial else None,
            trial_end=start + timedelta(days=days) if in_trial else None,
            payment_method_id=payment_method_id or "",
            metadata=metadata,
            **remote,
        )
        try:
            with transaction.atomic():
                subscription.save(force_insert=True)
        except IntegrityError:
            logger.warning(
                "Lost race creating subscription for tenant %s school %s",
                tenant.pk,
                getattr(school, "pk", None),
            )
            self._discard_remote(subscription)
            raise ConflictError(self._duplicate_message(tenant, school), code="subscription_exists") from None

        logger.info(
            "Created %s subscription %s for tenant %s on plan %s (gateway=%s)",
            subscription.status,
            subscription.pk,
            tenant.pk,
            plan.code,
            subscription.gateway or "none",
        )
        return subscription

    def _has_open_subscription(self, tenant: Tenant, school: School | None) -> bool:
        return Subscription.objects.filter(tenant=tenant, school=school).filter(OPEN_SUBSCRIPTION).exists()

    @staticmethod
    def _duplicate_message(tenant: Tenant, school: School | None) -> str:
        if school is not None:
            return f"School '{school.name}' already has an open subscription"
        return f"Tenant '{tenant.name}' already has an open subscription"

    def _enforce_limits(self, tenant: Tenant, plan: CatalogPlan) -> None:
        check = check_usage_limits(collect_usage(tenant), plan)
        if not check.within_limits:
            raise LimitExceededError(check.violations)

    def _provision_remote(
        self,
        tenant: Tenant,
        plan: CatalogPlan,
        *,
        subscription_id: uuid.UUID,
        trial_days: int,
        payment_method_id: str,
        gateway_customer_id: str,
    ) -> dict[str, str]:
        """
        Create the remote customer and subscription, best effort.

        Returns the gateway fields to store. A failure on the selected
        gateway is retried once on its fallback; if both fail the
        subscription is still created locally against the primary gateway.
        """
        registry = get_registry()
        primary = registry.select_gateway(
            tenant.currency,
            tenant.country,
            preferred=tenant.preferred_gateway or None,
        )
        if primary is None:
            logger.warning(
                "No payment gateway supports %s/%s; subscription for tenant %s is local only",
                tenant.currency,
                tenant.country,
                tenant.pk,
            )
            return {}

        candidates = [primary]
        fallback = registry.fallback_for(primary)
        if fallback is not None and fallback.supports_currency(tenant.currency):
            candidates.append(fallback)

        for gateway in candidates:
            fields = self._provision_on(
                gateway,
                tenant,
                plan,
                subscription_id=subscription_id,
                trial_days=trial_days,
                payment_method_id=payment_method_id,
                gateway_customer_id=gateway_customer_id,
            )
            if fields is not None:
                return fields

        logger.warning(
            "All gateways failed for tenant %s; continuing without a remote subscription",
            tenant.pk,
        )
        return {"gateway": primary.code, "gateway_customer_id": gateway_customer_id}

    def _provision_on(
        self,
        gateway: PaymentGateway,
        tenant: Tenant,
        plan: CatalogPlan,
        *,
        subscription_id: uuid.UUID,
        trial_days: int,
        payment_method_id: str,
        gateway_customer_id: str,
    ) -> dict[str, str] | None:
        remote_metadata = {"tenant_id": str(tenant.pk), "subscription_id": str(subscription_id)}

        customer_id = gateway_customer_id
        if not customer_id:
            response = gateway.create_customer(
                email=tenant.billing_email,
                name=tenant.name,
                metadata=remote_metadata,
            )
            if response.success:
                customer_id = response.data.id
            elif not response.is_unsupported:
                logger.warning(
                    "Could not create %s customer for tenant %s: %s",
                    gateway.code,
                    tenant.pk,
                    response.error.message,
                )
                return None

        fields = {"gateway": gateway.code, "gateway_customer_id": customer_id}
        price_ref = plan.price_ref_for(gateway.code)
        if not customer_id or not price_ref:
            return fields

        response = gateway.create_subscription(
            customer_id,
            price_ref,
            trial_days=trial_days,
            payment_method_id=payment_method_id,
            metadata=remote_metadata,
        )
        if response.success:
            fields["gateway_subscription_id"] = response.data.id
        elif response.is_unsupported:
            logger.info(
                "%s has no native subscriptions; renewals for tenant %s are charged locally",
                gateway.code,
                tenant.pk,
            )
        else:
            logger.warning(
                "Could not create %s subscription for tenant %s: %s",
                gateway.code,
                tenant.pk,
                response.error.message,
            )
            return None
        return fields

    def _discard_remote(self, subscription: Subscription) -> None:
        gateway = self._gateway_for(subscription)
        if gateway is None or not subscription.gateway_subscription_id:
            return
        response = gateway.cancel_subscription(subscription.gateway_subscription_id, immediately=True)
        if not response.success:
            logger.error(
                "Orphaned %s subscription %s could not be cancelled: %s",
                gateway.code,
                subscription.gateway_subscription_id,
                response.error.message,
            )

    # ------------------------------------------------------------------
    # Changes
    # ------------------------------------------------------------------

    def update_subscription(
        self,
        subscription: Subscription,
        plan_code: str | None = None,
        billing_cycle: str | None = None,
        cancel_at_period_end: bool | None = None,
        metadata: dict | None = None,
        prorate: bool = True,
        now: datetime | None = None,
    ) -> SubscriptionUpdateResult:
        """
        Apply a partial update.

        A plan change goes through ``change_plan``. A cycle change keeps the
        period start and recomputes the period end. Toggling
        ``cancel_at_period_end`` is mirrored to the gateway, best effort.
        """
        now = now or timezone.now()
        if subscription.is_terminal:
            raise ConflictError("Subscription is canceled", code="subscription_terminal")
        if billing_cycle is not None and billing_cycle not in BillingCycle.values:
            raise ValidationError(f"Unknown billing cycle '{billing_cycle}'", code="invalid_billing_cycle")

        proration = None
        if plan_code and plan_code != subscription.plan_id:
            proration = self.change_plan(subscription, plan_code, prorate=prorate, effective_date=now).proration

        with transaction.atomic():
            self._lock(subscription)
            update_fields = ["modified"]

            if billing_cycle and billing_cycle != subscription.billing_cycle:
                subscription.billing_cycle = billing_cycle
                subscription.current_period_end = calculate_billing_period(
                    subscription.current_period_start,
                    billing_cycle,
                ).end
                update_fields += ["billing_cycle", "current_period_end"]
                logger.info("Subscription %s moved to %s billing", subscription.pk, billing_cycle)

            flag_changed = (
                cancel_at_period_end is not None
                and cancel_at_period_end != subscription.cancel_at_period_end
            )
            if flag_changed:
                subscription.cancel_at_period_end = cancel_at_period_end
                if cancel_at_period_end:
                    subscription.canceled_at = now
                    subscription.cancellation_reason = CancellationReason.USER_REQUESTED
                else:
                    subscription.canceled_at = None
                    subscription.cancellation_reason = ""
                update_fields += ["cancel_at_period_end", "canceled_at", "cancellation_reason"]

            if metadata:
                subscription.metadata = {**subscription.metadata, **metadata}
                update_fields.append("metadata")

            subscription.save(update_fields=update_fields)

        if flag_changed:
            self._push_cancel_flag(subscription)
        return SubscriptionUpdateResult(subscription=subscription, proration=proration)

    def change_plan(
        self,
        subscription: Subscription,
        new_plan_code: str,
        prorate: bool = True,
        effective_date: datetime | None = None,
        metadata: dict | None = None,
        enforce_limits: bool = True,
    ) -> SubscriptionUpdateResult:
        """
        Move ``subscription`` to another plan mid-period.

        The proration is computed from the cycle prices of both plans over
        the current period and recorded on a PlanChange row. The gateway
        is asked to prorate the same way.
        """
        if subscription.is_terminal:
            raise ConflictError("Subscription is canceled", code="subscription_terminal")
        catalog = get_catalog()
        new_plan = catalog.get_active(new_plan_code)
        if new_plan.code == subscription.plan_id:
            raise ValidationError(f"Subscription is already on plan '{new_plan.code}'", code="same_plan")
        old_plan = catalog.get(subscription.plan_id)
        if enforce_limits:
            self._enforce_limits(subscription.tenant, new_plan)

        effective = effective_date or timezone.now()
        old_price = old_plan.price_for_cycle(subscription.billing_cycle)
        new_price = new_plan.price_for_cycle(subscription.billing_cycle)
        proration = None
        if prorate:
            proration = calculate_proration(
                old_price,
                new_price,
                subscription.current_period_start,
                subscription.current_period_end,
                effective,
            )

        if new_price > old_price:
            change_type = PlanChangeType.UPGRADE
        elif new_price < old_price:
            change_type = PlanChangeType.DOWNGRADE
        else:
            change_type = PlanChangeType.LATERAL

        with transaction.atomic():
            self._lock(subscription)
            if subscription.is_terminal:
                raise ConflictError("Subscription is canceled", code="subscription_terminal")
            subscription.plan_id = new_plan.code
            if metadata:
                subscription.metadata = {**subscription.metadata, **metadata}
            subscription.save(update_fields=["plan", "metadata", "modified"])
            PlanChange.objects.create(
                subscription=subscription,
                old_plan_id=old_plan.code,
                new_plan_id=new_plan.code,
                change_type=change_type,
                effective_at=effective,
                proration_amount=proration.amount if proration else 0,
                prorated=prorate,
                metadata=proration.as_dict() if proration else {},
            )

        logger.info(
            "Subscription %s %s %s → %s (proration=%s)",
            subscription.pk,
            change_type.label.lower(),
            old_plan.code,
            new_plan.code,
            proration.amount if proration else 0,
        )
        self._push_plan(subscription, new_plan, prorate)
        return SubscriptionUpdateResult(subscription=subscription, proration=proration)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel_subscription(
        self,
        subscription: Subscription,
        immediately: bool = False,
        reason: str = CancellationReason.USER_REQUESTED,
        metadata: dict | None = None,
        now: datetime | None = None,
        raise_gateway_errors: bool = False,
    ) -> Subscription:
        """
        Cancel now, or at the end of the current period.

        Immediate cancellation ends the period at ``now``. Otherwise only
        ``cancel_at_period_end`` is set and ``process_renewals`` finalizes
        it. Cancelling a canceled subscription raises ConflictError.

        With ``raise_gateway_errors`` a failed remote cancellation raises
        and rolls the local change back; otherwise it is logged.
        """
        now = now or timezone.now()
        with transaction.atomic():
            self._lock(subscription)
            if subscription.is_terminal:
                raise ConflictError("Subscription is already canceled", code="already_canceled")

            subscription.canceled_at = now
            subscription.cancellation_reason = reason
            if immediately:
                subscription.status = SubscriptionStatus.CANCELED
                subscription.current_period_end = now
                subscription.cancel_at_period_end = False
            else:
                subscription.cancel_at_period_end = True
            if metadata:
                subscription.metadata = {**subscription.metadata, **metadata}
            subscription.save(
                update_fields=[
                    "status",
                    "current_period_end",
                    "cancel_at_period_end",
                    "canceled_at",
                    "cancellation_reason",
                    "metadata",
                    "modified",
                ],
            )

            gateway = self._gateway_for(subscription)
            if gateway is not None and subscription.gateway_subscription_id:
                response = gateway.cancel_subscription(
                    subscription.gateway_subscription_id,
                    immediately=immediately,
                )
                if not response.success:
                    if raise_gateway_errors:
                        response.raise_for_error()
                    logger.warning(
                        "Remote cancel of %s subscription %s failed: %s",
                        gateway.code,
                        subscription.gateway_subscription_id,
                        response.error.message,
                    )

        logger.info(
            "Subscription %s %s (reason=%s)",
            subscription.pk,
            "canceled" if immediately else "set to cancel at period end",
            reason,
        )
        return subscription

    def cancel_for_non_payment(self, subscription: Subscription, now: datetime | None = None) -> Subscription:
        return self.cancel_subscription(
            subscription,
            immediately=True,
            reason=CancellationReason.NON_PAYMENT,
            now=now,
            raise_gateway_errors=True,
        )

    def suspend_subscription(self, subscription: Subscription, now: datetime | None = None) -> Subscription:
        """Suspend service for non-payment. Already suspended is a no-op."""
        now = now or timezone.now()
        with transaction.atomic():
            self._lock(subscription)
            if subscription.is_terminal:
                raise ConflictError("Cannot suspend a canceled subscription", code="subscription_terminal")
            if subscription.status == SubscriptionStatus.SUSPENDED:
                return subscription
            subscription.status = SubscriptionStatus.SUSPENDED
            subscription.suspended_at = now
            subscription.save(update_fields=["status", "suspended_at", "modified"])
        logger.info("Suspended subscription %s", subscription.pk)
        return subscription

    # ------------------------------------------------------------------
    # Payment outcomes
    # ------------------------------------------------------------------

    def record_payment_failure(
        self,
        subscription: Subscription,
        payment: Payment | None = None,
        now: datetime | None = None,
    ):
        """Mark the subscription past due and start (or resume) dunning."""
        now = now or timezone.now()
        with transaction.atomic():
            self._lock(subscription)
            if subscription.is_terminal:
                logger.info("Ignoring payment failure for canceled subscription %s", subscription.pk)
                return None
            if subscription.status in RENEWABLE_STATUSES:
                subscription.status = SubscriptionStatus.PAST_DUE
                subscription.save(update_fields=["status", "modified"])
                logger.info("Subscription %s is past due", subscription.pk)
            return DunningService().start_dunning_process(subscription, payment=payment, now=now)

    def record_payment_success(self, subscription: Subscription, now: datetime | None = None) -> Subscription:
        """Reactivate a delinquent subscription and stop its dunning."""
        now = now or timezone.now()
        with transaction.atomic():
            self._lock(subscription)
            if subscription.status in (*DELINQUENT_STATUSES, SubscriptionStatus.INCOMPLETE):
                subscription.status = SubscriptionStatus.ACTIVE
                subscription.suspended_at = None
                subscription.save(update_fields=["status", "suspended_at", "modified"])
                logger.info("Subscription %s reactivated after payment", subscription.pk)
            DunningService().stop_dunning_process(subscription, now=now)
        return subscription

    # ------------------------------------------------------------------
    # Periodic processing
    # ------------------------------------------------------------------

    def renew_subscription(self, subscription: Subscription, now: datetime | None = None) -> bool:
        """
        Advance ``subscription`` by one cycle if it is due.

        Returns False without changes when the row is no longer due, which
        makes a second run in the same tick window a no-op. Subscriptions
        billed locally are charged here; a decline moves them to PAST_DUE,
        any other gateway error propagates and rolls the renewal back.
        """
        now = now or timezone.now()
        horizon = now + timedelta(hours=settings.BILLING_RENEWAL_LOOKAHEAD_HOURS)
        with transaction.atomic():
            self._lock(subscription)
            if (
                subscription.status not in RENEWABLE_STATUSES
                or subscription.cancel_at_period_end
                or subscription.current_period_end > horizon
            ):
                return False

            period = next_billing_period(subscription.current_period_end, subscription.billing_cycle)
            subscription.current_period_start = period.start
            subscription.current_period_end = period.end
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.save(
                update_fields=["current_period_start", "current_period_end", "status", "modified"],
            )
            logger.info(
                "Renewed subscription %s for %s to %s",
                subscription.pk,
                period.start.isoformat(),
                period.end.isoformat(),
            )
            self._charge_renewal(subscription, now)
        return True

    def _charge_renewal(self, subscription: Subscription, now: datetime) -> None:
        if subscription.gateway_subscription_id or not subscription.payment_method_id:
            return
        plan = get_catalog().get(subscription.plan_id)
        amount = plan.price_for_cycle(subscription.billing_cycle)
        if amount <= 0:
            return
        try:
            PaymentService().process_payment(
                subscription.tenant,
                amount,
                plan.currency,
                subscription.payment_method_id,
                description=f"{plan.name} renewal",
                subscription=subscription,
            )
        except PaymentDeclinedError:
            payment = subscription.payments.order_by("-created").first()
            self.record_payment_failure(subscription, payment=payment, now=now)

    def process_renewals(self, now: datetime | None = None) -> BatchResult:
        """
        Renew due subscriptions and finalize period-end cancellations.

        Each row is handled on its own; a failure is logged and counted
        without stopping the batch.
        """
        now = now or timezone.now()
        horizon = now + timedelta(hours=settings.BILLING_RENEWAL_LOOKAHEAD_HOURS)
        result = BatchResult()

        due = Subscription.objects.filter(
            status__in=RENEWABLE_STATUSES,
            cancel_at_period_end=False,
            current_period_end__lte=horizon,
        ).select_related("tenant")
        for subscription in list(due):
            try:
                if self.renew_subscription(subscription, now):
                    result.record_success()
                else:
                    result.record_skip()
            except Exception as exc:
                logger.exception("Failed to renew subscription %s", subscription.pk)
                result.record_failure(subscription.pk, exc)

        ending = Subscription.objects.filter(
            cancel_at_period_end=True,
            current_period_end__lte=now,
        ).exclude(status__in=TERMINAL_STATUSES)
        for subscription in list(ending):
            try:
                self._finalize_cancellation(subscription, now)
                result.record_success()
            except Exception as exc:
                logger.exception("Failed to finalize cancellation of subscription %s", subscription.pk)
                result.record_failure(subscription.pk, exc)

        logger.info(
            "Renewal tick: %s processed, %s succeeded, %s failed, %s skipped",
            result.processed,
            result.succeeded,
            result.failed,
            result.skipped,
        )
        return result

    def _finalize_cancellation(self, subscription: Subscription, now: datetime) -> None:
        with transaction.atomic():
            self._lock(subscription)
            if subscription.is_terminal or not subscription.cancel_at_period_end:
                return
            subscription.status = SubscriptionStatus.CANCELED
            subscription.cancellation_reason = (
                subscription.cancellation_reason or CancellationReason.USER_REQUESTED
            )
            subscription.canceled_at = subscription.canceled_at or now
            subscription.save(
                update_fields=["status", "cancellation_reason", "canceled_at", "modified"],
            )
        logger.info("Subscription %s canceled at period end", subscription.pk)

    def process_trial_expirations(self, now: datetime | None = None) -> BatchResult:
        """
        Convert expired trials to ACTIVE.

        The conversion does not require a payment method; one missing is
        logged so the account can be followed up.
        """
        now = now or timezone.now()
        result = BatchResult()
        expired = Subscription.objects.filter(
            status=SubscriptionStatus.TRIAL,
            trial_end__lte=now,
        )
        for subscription in list(expired):
            try:
                with transaction.atomic():
                    self._lock(subscription)
                    if subscription.status != SubscriptionStatus.TRIAL:
                        result.record_skip()
                        continue
                    subscription.status = SubscriptionStatus.ACTIVE
                    subscription.save(update_fields=["status", "modified"])
                if not subscription.payment_method_id and not subscription.gateway_subscription_id:
                    logger.warning(
                        "Trial for subscription %s converted without a payment method on file",
                        subscription.pk,
                    )
                logger.info("Trial ended for subscription %s; now active", subscription.pk)
                result.record_success()
            except Exception as exc:
                logger.exception("Failed to convert trial subscription %s", subscription.pk)
                result.record_failure(subscription.pk, exc)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _lock(subscription: Subscription) -> None:
        """Reload ``subscription`` in place under a row lock."""
        subscription.refresh_from_db(from_queryset=Subscription.objects.select_for_update())

    @staticmethod
    def _gateway_for(subscription: Subscription) -> PaymentGateway | None:
        registry = get_registry()
        if not subscription.gateway or subscription.gateway not in registry:
            return None
        return registry.get(subscription.gateway)

    def _push_plan(self, subscription: Subscription, plan: CatalogPlan, prorate: bool) -> None:
        gateway = self._gateway_for(subscription)
        price_ref = plan.price_ref_for(subscription.gateway)
        if gateway is None or not subscription.gateway_subscription_id or not price_ref:
            return
        response = gateway.update_subscription(
            subscription.gateway_subscription_id,
            price_id=price_ref,
            prorate=prorate,
        )
        if not response.success:
            logger.warning(
                "Could not move %s subscription %s to %s: %s",
                gateway.code,
                subscription.gateway_subscription_id,
                price_ref,
                response.error.message,
            )

    def _push_cancel_flag(self, subscription: Subscription) -> None:
        gateway = self._gateway_for(subscription)
        if gateway is None or not subscription.gateway_subscription_id:
            return
        response = gateway.update_subscription(
            subscription.gateway_subscription_id,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )
        if not response.success:
            logger.warning(
                "Could not set cancel_at_period_end on %s subscription %s: %s",
                gateway.code,
                subscription.gateway_subscription_id,
                response.error.message,
            )
