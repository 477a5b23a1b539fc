"""
Read-through plan catalog.

Plans live in the database but are read far more often than they change,
so each process loads them once into an immutable PlanCatalog. Saving or
deleting a Plan drops the snapshot; the next ``get_catalog()`` reloads it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from django.db.models.signals import post_delete
from django.db.models.signals import post_save
from django.dispatch import receiver

from edubill.billing.constants import BillingCycle
from edubill.billing.models import Plan
from edubill.core.exceptions import NotFoundError
from edubill.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogPlan:
    code: str
    name: str
    description: str
    price: int
    yearly_price: int | None
    currency: str
    interval: str
    features: tuple[str, ...]
    limits: Mapping[str, int]
    trial_days: int
    is_active: bool
    display_order: int
    gateway_price_ids: Mapping[str, str]

    @classmethod
    def from_model(cls, plan: Plan) -> CatalogPlan:
        return cls(
            code=plan.code,
            name=plan.name,
            description=plan.description,
            price=plan.price,
            yearly_price=plan.yearly_price,
            currency=plan.currency,
            interval=plan.interval,
            features=tuple(plan.features or ()),
            limits=MappingProxyType(dict(plan.limits)),
            trial_days=plan.trial_days,
            is_active=plan.is_active,
            display_order=plan.display_order,
            gateway_price_ids=MappingProxyType(dict(plan.gateway_price_ids or {})),
        )

    def price_for_cycle(self, cycle: str) -> int:
        """Charge for one period of ``cycle``, in minor units."""
        if cycle == BillingCycle.QUARTERLY:
            return self.price * 3
        if cycle == BillingCycle.YEARLY:
            return self.yearly_price if self.yearly_price is not None else self.price * 12
        return self.price

    def price_ref_for(self, gateway: str) -> str:
        return self.gateway_price_ids.get(gateway, "")

    def limit(self, metric: str) -> int:
        return self.limits[metric]


class PlanCatalog:
    """
    Immutable snapshot of every plan.

    Usage:
        catalog = get_catalog()
        plan = catalog.get_active("starter")
    """

    def __init__(self, plans: list[CatalogPlan]):
        ordered = sorted(plans, key=lambda p: (p.display_order, p.code))
        self._plans: Mapping[str, CatalogPlan] = MappingProxyType({p.code: p for p in ordered})

    def __len__(self) -> int:
        return len(self._plans)

    def __contains__(self, code: str) -> bool:
        return code in self._plans

    def all(self) -> list[CatalogPlan]:
        return list(self._plans.values())

    def active(self) -> list[CatalogPlan]:
        return [plan for plan in self._plans.values() if plan.is_active]

    def get(self, code: str) -> CatalogPlan:
        try:
            return self._plans[code]
        except KeyError:
            raise NotFoundError(f"Plan '{code}' not found", code="plan_not_found") from None

    def get_active(self, code: str) -> CatalogPlan:
        plan = self.get(code)
        if not plan.is_active:
            raise ValidationError(f"Plan '{code}' is not available", code="plan_inactive")
        return plan


_catalog: PlanCatalog | None = None
_catalog_lock = threading.Lock()


def load_catalog() -> PlanCatalog:
    return PlanCatalog([CatalogPlan.from_model(plan) for plan in Plan.objects.all()])


def get_catalog() -> PlanCatalog:
    global _catalog  # noqa: PLW0603
    catalog = _catalog
    if catalog is None:
        with _catalog_lock:
            if _catalog is None:
                _catalog = load_catalog()
                logger.debug("Loaded plan catalog with %s plans", len(_catalog))
            catalog = _catalog
    return catalog


def refresh_catalog() -> None:
    global _catalog  # noqa: PLW0603
    with _catalog_lock:
        _catalog = None


@receiver(post_save, sender=Plan, dispatch_uid="billing_refresh_catalog_on_save")
@receiver(post_delete, sender=Plan, dispatch_uid="billing_refresh_catalog_on_delete")
def _plan_changed(sender, **kwargs):
    refresh_catalog()
