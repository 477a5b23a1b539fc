"""
Currency helpers: minor-unit arithmetic and cross-currency conversion.

All money inside edubill is an integer count of minor units (cents, halalas,
piastres). ``to_minor_units`` and ``to_major_units`` are the only places that
cross between the integer representation and decimal major units, and both
use Decimal so the round trip is exact.

CurrencyConverter is used by the payment service when no enabled gateway
accepts the tenant's currency. Rates are read from the Django cache, then
from an optional HTTP rates provider, then from a fallback table in
settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP
from decimal import Decimal
from decimal import InvalidOperation

import httpx
from django.conf import settings
from django.core.cache import cache

from edubill.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ZERO_DECIMAL_CURRENCIES = frozenset({"JPY", "KRW", "VND", "CLP", "ISK", "UGX", "XAF", "XOF"})
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "KWD", "OMR", "JOD", "TND", "IQD", "LYD"})

RATE_CACHE_PREFIX = "edubill:fx:"


def minor_unit_exponent(currency: str) -> int:
    """Number of decimal places between major and minor units."""
    code = currency.upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_minor_units(amount, currency: str) -> int:
    """
    Convert a major-unit amount (e.g. ``"49.99"``) to integer minor units.

    Accepts Decimal, int or str. Floats are converted through ``str`` so
    ``19.99`` does not become ``1998``. Sub-minor precision rounds half up.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount!r}") from exc
    scaled = value.scaleb(minor_unit_exponent(currency))
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def to_major_units(amount: int, currency: str) -> Decimal:
    """Convert integer minor units to an exact Decimal in major units."""
    return Decimal(int(amount)).scaleb(-minor_unit_exponent(currency))


def round_half_up(value) -> int:
    return int(Decimal(value).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ExchangeRate:
    from_currency: str
    to_currency: str
    rate: Decimal
    source: str


@dataclass(frozen=True)
class ConversionResult:
    original_amount: int
    converted_amount: int
    from_currency: str
    to_currency: str
    exchange_rate: Decimal
    conversion_fee: int
    total_amount: int
    source: str


class CurrencyConverter:
    """
    Convert minor-unit amounts between currencies and price the conversion.

    Usage:
        result = CurrencyConverter().convert(10000, "SAR", "USD")
        result.converted_amount  # 2700
        result.conversion_fee    # 14 (0.5%, clamped to [10, 1000])
    """

    def __init__(self, options: dict | None = None):
        options = options or settings.BILLING_CURRENCY_CONVERSION
        self.fee_percentage = Decimal(str(options.get("fee_percentage", "0.5")))
        self.minimum_fee = int(options.get("minimum_fee", 10))
        self.maximum_fee = int(options.get("maximum_fee", 1000))
        self.cache_seconds = int(options.get("cache_seconds", 3600))
        self.rates_url = options.get("rates_url") or ""
        self.api_key = options.get("api_key") or ""
        self.fallback_rates = {
            pair.upper(): Decimal(str(rate))
            for pair, rate in (options.get("fallback_rates") or {}).items()
        }

    def convert(self, amount: int, from_currency: str, to_currency: str) -> ConversionResult:
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()

        if from_currency == to_currency:
            return ConversionResult(
                original_amount=amount,
                converted_amount=amount,
                from_currency=from_currency,
                to_currency=to_currency,
                exchange_rate=Decimal(1),
                conversion_fee=0,
                total_amount=amount,
                source="same_currency",
            )

        rate = self.get_exchange_rate(from_currency, to_currency)
        converted = round_half_up(Decimal(amount) * rate.rate)
        fee = self.calculate_conversion_fee(converted)
        logger.info(
            "Converted %s %s to %s %s (rate=%s, fee=%s, source=%s)",
            amount,
            from_currency,
            converted,
            to_currency,
            rate.rate,
            fee,
            rate.source,
        )
        return ConversionResult(
            original_amount=amount,
            converted_amount=converted,
            from_currency=from_currency,
            to_currency=to_currency,
            exchange_rate=rate.rate,
            conversion_fee=fee,
            total_amount=converted + fee,
            source=rate.source,
        )

    def calculate_conversion_fee(self, converted_amount: int) -> int:
        fee = round_half_up(Decimal(converted_amount) * self.fee_percentage / 100)
        return max(self.minimum_fee, min(fee, self.maximum_fee))

    def get_exchange_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        cache_key = f"{RATE_CACHE_PREFIX}{from_currency}/{to_currency}"
        cached = cache.get(cache_key)
        if cached is not None:
            return ExchangeRate(from_currency, to_currency, Decimal(cached), "cache")

        rate = None
        if self.rates_url:
            rate = self._fetch_rate(from_currency, to_currency)
        if rate is None:
            rate = self._fallback_rate(from_currency, to_currency)
        if rate is None:
            raise ValidationError(
                f"No exchange rate available for {from_currency}/{to_currency}",
                code="unsupported_currency_pair",
            )

        cache.set(cache_key, str(rate.rate), self.cache_seconds)
        return rate

    def _fetch_rate(self, from_currency: str, to_currency: str) -> ExchangeRate | None:
        params = {"base": from_currency, "symbols": to_currency}
        headers = {"apikey": self.api_key} if self.api_key else {}
        try:
            with httpx.Client(timeout=10.0) as client:
                response = client.get(self.rates_url, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
            value = payload["rates"][to_currency]
        except (httpx.HTTPError, KeyError, ValueError, TypeError):
            logger.warning(
                "Rates provider failed for %s/%s, using fallback table",
                from_currency,
                to_currency,
                exc_info=True,
            )
            return None
        return ExchangeRate(from_currency, to_currency, Decimal(str(value)), "provider")

    def _fallback_rate(self, from_currency: str, to_currency: str) -> ExchangeRate | None:
        direct = self.fallback_rates.get(f"{from_currency}/{to_currency}")
        if direct is not None:
            return ExchangeRate(from_currency, to_currency, direct, "fallback")
        inverse = self.fallback_rates.get(f"{to_currency}/{from_currency}")
        if inverse:
            return ExchangeRate(
                from_currency,
                to_currency,
                Decimal(1) / inverse,
                "fallback_inverse",
            )
        return None
