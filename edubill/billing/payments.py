"""
Payment orchestration.

PaymentService picks a gateway for the tenant, converts the charge when no
gateway takes the requested currency, tries the fallback gateway on
provider errors, and records every attempt as a Payment row.

Declines are business outcomes: they are recorded, never retried on
another gateway, and surface as PaymentDeclinedError.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from edubill.billing.models import Payment
from edubill.core.exceptions import ConflictError
from edubill.core.exceptions import NotFoundError
from edubill.core.exceptions import ValidationError
from edubill.gateways.constants import PaymentStatus
from edubill.gateways.currency import CurrencyConverter
from edubill.gateways.currency import to_major_units
from edubill.gateways.registry import get_registry
from edubill.notifications.constants import NotificationType
from edubill.notifications.services import NotificationDeliveryError
from edubill.notifications.services import send_billing_notification

if TYPE_CHECKING:
    from edubill.billing.models import Subscription
    from edubill.gateways.base import PaymentGateway
    from edubill.gateways.currency import ConversionResult
    from edubill.gateways.registry import GatewayRegistry
    from edubill.gateways.results import GatewayResponse
    from edubill.tenants.models import Tenant

logger = logging.getLogger(__name__)

RATE_PRECISION = Decimal("0.00000001")


class PaymentService:
    """
    Charges and refunds through the gateway registry.

    Usage:
        payment = PaymentService().process_payment(tenant, 2999, "USD", "pm_card_visa")
    """

    def __init__(
        self,
        registry: GatewayRegistry | None = None,
        converter: CurrencyConverter | None = None,
    ):
        self.registry = registry or get_registry()
        self.converter = converter or CurrencyConverter()

    def process_payment(
        self,
        tenant: Tenant,
        amount: int,
        currency: str,
        payment_method_id: str,
        description: str = "",
        subscription: Subscription | None = None,
        metadata: dict | None = None,
    ) -> Payment:
        """
        Charge ``amount`` minor units of ``currency`` to ``tenant``.

        Returns the persisted Payment. Raises PaymentDeclinedError after
        recording a declined attempt, and GatewayError when every
        candidate gateway failed.
        """
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero", code="invalid_amount")
        currency = currency.upper()
        metadata = {"tenant_id": str(tenant.pk), **(metadata or {})}
        if subscription is not None:
            metadata["subscription_id"] = str(subscription.pk)

        gateway, conversion = self._route(tenant, amount, currency)
        charge_amount = conversion.total_amount if conversion else amount
        charge_currency = conversion.to_currency if conversion else currency

        candidates = [gateway]
        fallback = self.registry.fallback_for(gateway)
        if fallback is not None and fallback.supports_currency(charge_currency):
            candidates.append(fallback)

        response = None
        for candidate in candidates:
            response = self._charge(
                candidate,
                charge_amount,
                charge_currency,
                payment_method_id,
                description,
                metadata,
            )
            if response.success or response.error.is_decline:
                gateway = candidate
                break
            logger.warning(
                "Payment via %s failed for tenant %s: %s",
                candidate.code,
                tenant.pk,
                response.error.message,
            )
            gateway = candidate

        payment = Payment(
            tenant=tenant,
            subscription=subscription,
            gateway=gateway.code,
            amount=charge_amount,
            currency=charge_currency,
            payment_method_id=payment_method_id,
            description=description,
            metadata=metadata,
        )
        if conversion is not None:
            payment.original_amount = conversion.original_amount
            payment.original_currency = conversion.from_currency
            payment.exchange_rate = conversion.exchange_rate.quantize(RATE_PRECISION)
            payment.conversion_fee = conversion.conversion_fee

        if not response.success:
            payment.status = PaymentStatus.FAILED
            payment.failure_code = response.error.code
            payment.failure_message = response.error.message
            payment.save()
            logger.info(
                "Recorded failed payment %s for tenant %s (%s)",
                payment.pk,
                tenant.pk,
                response.error.code,
            )
            response.raise_for_error()

        intent = response.data
        payment.gateway_payment_id = intent.id
        payment.status = intent.status
        payment.gateway_fee = intent.gateway_fee
        payment.redirect_url = intent.redirect_url
        payment.save()
        logger.info(
            "Payment %s via %s: %s %s (%s)",
            payment.pk,
            gateway.code,
            charge_amount,
            charge_currency,
            payment.status,
        )
        if payment.status == PaymentStatus.SUCCEEDED:
            self._send_receipt(payment)
        return payment

    def refund_payment(self, payment: Payment, amount: int | None = None, reason: str = "") -> Payment:
        """
        Refund all or part of ``payment`` through the gateway that took it.

        ``amount`` defaults to everything not yet refunded.
        """
        if payment.status != PaymentStatus.SUCCEEDED:
            raise ConflictError(
                f"Payment {payment.pk} is {payment.status} and cannot be refunded",
                code="payment_not_refundable",
            )
        remaining = payment.amount - payment.refunded_amount
        amount = remaining if amount is None else amount
        if amount <= 0 or amount > remaining:
            raise ValidationError(
                f"Refund amount must be between 1 and {remaining}",
                code="invalid_refund_amount",
            )
        if payment.gateway not in self.registry:
            raise NotFoundError(f"Payment gateway '{payment.gateway}' is not configured", code="unknown_gateway")

        gateway = self.registry.get(payment.gateway)
        refund = gateway.refund_payment(
            payment.gateway_payment_id,
            amount=amount,
            currency=payment.currency,
            reason=reason,
        ).raise_for_error()

        payment.refunded_amount += amount
        if payment.refunded_amount >= payment.amount:
            payment.status = PaymentStatus.REFUNDED
        payment.metadata = {**payment.metadata, "last_refund_id": refund.id}
        payment.save(update_fields=["refunded_amount", "status", "metadata", "modified"])
        logger.info("Refunded %s of payment %s via %s", amount, payment.pk, gateway.code)
        return payment

    def _route(self, tenant: Tenant, amount: int, currency: str) -> tuple[PaymentGateway, ConversionResult | None]:
        """
        Choose the gateway, converting ``amount`` when none takes ``currency``.

        The conversion targets the first currency of the highest priority
        gateway that serves the tenant's country.
        """
        preferred = tenant.preferred_gateway or None
        gateway = self.registry.select_gateway(currency, tenant.country, preferred=preferred)
        if gateway is not None:
            return gateway, None

        by_country = [g for g in self.registry.enabled() if g.supports_country(tenant.country)]
        if not by_country or not by_country[0].config.supported_currencies:
            raise ValidationError(
                f"No payment gateway available for {currency} in {tenant.country}",
                code="no_gateway_available",
            )
        gateway = by_country[0]
        conversion = self.converter.convert(amount, currency, gateway.config.supported_currencies[0])
        return gateway, conversion

    def _charge(
        self,
        gateway: PaymentGateway,
        amount: int,
        currency: str,
        payment_method_id: str,
        description: str,
        metadata: dict,
    ) -> GatewayResponse:
        # Adapters confirm at creation when a payment method is supplied.
        return gateway.create_payment_intent(
            amount,
            currency,
            payment_method_id=payment_method_id,
            description=description,
            metadata=metadata,
        )

    @staticmethod
    def _send_receipt(payment: Payment) -> None:
        try:
            send_billing_notification(
                payment.tenant,
                NotificationType.PAYMENT_RECEIPT,
                subscription=payment.subscription,
                context={
                    "amount": to_major_units(payment.amount, payment.currency),
                    "currency": payment.currency,
                },
            )
        except NotificationDeliveryError as exc:
            logger.warning("Receipt for payment %s not delivered: %s", payment.pk, exc.reason)
