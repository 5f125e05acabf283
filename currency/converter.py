from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from django.conf import settings
from django.db.models import Max
from django.utils import timezone

from .models import ExchangeRate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeRates:
    """Rate table relative to ``base``: 1 base = rates[code] code."""

    base: str
    rates: Dict[str, Decimal] = field(default_factory=dict)
    last_updated: Optional[datetime] = None
    success: bool = True

    def rate_for(self, code: str) -> Optional[Decimal]:
        rate = self.rates.get(code)
        if rate is None:
            return None
        try:
            rate = _to_decimal(rate)
        except (InvalidOperation, ValueError, TypeError):
            return None
        return rate if rate > 0 else None


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def convert(amount, from_currency: str, to_currency: str, rates: Optional[ExchangeRates]) -> Decimal:
    """Convert between the base currency and display currencies. Never raises."""
    amount = _to_decimal(amount)
    if rates is None or from_currency == to_currency:
        return amount

    if from_currency == rates.base:
        rate = rates.rate_for(to_currency)
        return amount * rate if rate else amount

    if to_currency == rates.base:
        rate = rates.rate_for(from_currency)
        return amount / rate if rate else amount

    from_rate = rates.rate_for(from_currency)
    to_rate = rates.rate_for(to_currency)
    if from_rate and to_rate:
        return (amount / from_rate) * to_rate
    return amount


def fallback_exchange_rates(base: Optional[str] = None) -> ExchangeRates:
    base = base or settings.BILLING_BASE_CURRENCY
    rates = {code: _to_decimal(value) for code, value in settings.FALLBACK_EXCHANGE_RATES.items()}
    rates.setdefault(base, Decimal("1"))
    return ExchangeRates(base=base, rates=rates, last_updated=timezone.now(), success=False)


def get_exchange_rates(base: Optional[str] = None) -> ExchangeRates:
    """Load the stored rate table for ``base``, falling back to the configured rates."""
    base = base or settings.BILLING_BASE_CURRENCY
    queryset = ExchangeRate.objects.select_related("target_currency").filter(base_currency__code=base)

    rates = {row.target_currency.code: row.rate for row in queryset}
    if not rates:
        logger.warning("No stored exchange rates for %s, using fallback rates.", base)
        return fallback_exchange_rates(base)

    rates.setdefault(base, Decimal("1"))
    last_updated = queryset.aggregate(latest=Max("updated_at"))["latest"]
    return ExchangeRates(base=base, rates=rates, last_updated=last_updated, success=True)
