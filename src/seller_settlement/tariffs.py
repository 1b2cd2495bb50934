"""
Marketplace fee tariffs — the per-line calculators of a settlement.

Each function covers one fee the marketplace withholds from a sale:

  Commission      – percentage of the seller price, rate picked by channel
  Outbound leg    – per-liter breakpoint tariff × warehouse coefficient (KTR)
  Return leg      – flat 50 per returned unit, scaled by the return rate
  Storage         – per-liter-per-day, warehouse-fulfilled channels only
  Acceptance      – per-liter, warehouse-fulfilled channels only

When the shipment volume is unknown, outbound logistics, storage and
acceptance fall back to a percentage of the seller price.

Tariffs as published for box deliveries from 2025-09-15.
"""

from __future__ import annotations

import logging
import math

from .models import CategoryCommissionSchedule, FulfillmentChannel

logger = logging.getLogger(__name__)


# ── Outbound logistics ────────────────────────────────────────────────────────

# (upper bound in liters, inclusive; price per liter)
_OUTBOUND_BREAKPOINTS: tuple[tuple[float, float], ...] = (
    (0.2, 23.0),
    (0.4, 26.0),
    (0.6, 29.0),
    (0.8, 30.0),
    (1.0, 32.0),
)
_OUTBOUND_FIRST_LITER = 46.0
_OUTBOUND_EXTRA_LITER = 14.0
_OUTBOUND_FALLBACK_PCT = 14.67

# ── Return logistics ──────────────────────────────────────────────────────────

_RETURN_FEE_PER_UNIT = 50.0

# ── Storage / acceptance ──────────────────────────────────────────────────────

_STORAGE_PER_LITER_DAY = 0.5
_STORAGE_FALLBACK_MONTHLY_PCT = 1.79
_ACCEPTANCE_PER_LITER = 0.4
_ACCEPTANCE_FALLBACK_PCT = 0.22


def _positive(value: float | None) -> bool:
    return value is not None and value > 0


# ── Commission ────────────────────────────────────────────────────────────────

def resolve_commission(
    product_price: float,
    channel: object,
    schedule: CategoryCommissionSchedule,
) -> tuple[float, float]:
    """Return ``(amount, rate)``; unknown channels are charged the FBW rate."""
    rate = schedule.rate_for(channel)
    return product_price * rate / 100, rate


# ── Volume ────────────────────────────────────────────────────────────────────

def resolve_volume(
    volume_liters: float | None = None,
    length_cm: float | None = None,
    width_cm: float | None = None,
    height_cm: float | None = None,
) -> float | None:
    """
    Resolve the shipment volume in liters.

    Priority: explicit positive volume, then L×W×H (cm³ → liters) when all
    three dimensions are positive.  ``None`` means "unknown" and selects the
    price-percentage fallbacks downstream.
    """
    if _positive(volume_liters):
        return float(volume_liters)
    if _positive(length_cm) and _positive(width_cm) and _positive(height_cm):
        return length_cm * width_cm * height_cm / 1000
    return None


# ── Outbound logistics ────────────────────────────────────────────────────────

def outbound_base_tariff(volume_liters: float) -> float:
    """Base outbound tariff for a known volume, before the KTR coefficient."""
    for upper, per_liter in _OUTBOUND_BREAKPOINTS:
        if volume_liters <= upper:
            return per_liter * volume_liters
    return _OUTBOUND_FIRST_LITER + (volume_liters - 1) * _OUTBOUND_EXTRA_LITER


def outbound_logistics(
    product_price: float,
    volume_liters: float | None,
    ktr: float | None = 1.0,
) -> float:
    if ktr is None or not math.isfinite(ktr) or ktr <= 0:
        ktr = 1.0
    if volume_liters is None:
        return product_price * _OUTBOUND_FALLBACK_PCT / 100 * ktr
    return outbound_base_tariff(volume_liters) * ktr


# ── Return logistics ──────────────────────────────────────────────────────────

def effective_return_rate(return_rate: float | None, is_returned: bool = False) -> float:
    """
    Fraction of units returned, in percent.

    An explicit positive rate wins (capped at 100); the legacy
    ``is_returned`` flag alone counts as a full return.
    """
    if _positive(return_rate):
        return min(float(return_rate), 100.0)
    return 100.0 if is_returned else 0.0


def return_logistics(return_rate: float) -> float:
    if return_rate <= 0:
        return 0.0
    return _RETURN_FEE_PER_UNIT * (return_rate / 100)


# ── Storage ───────────────────────────────────────────────────────────────────

def storage_cost(
    product_price: float,
    channel: object,
    volume_liters: float | None,
    storage_days: int = 30,
) -> float:
    if not FulfillmentChannel.parse(channel).is_warehouse_fulfilled:
        return 0.0
    if volume_liters is None:
        daily_pct = _STORAGE_FALLBACK_MONTHLY_PCT / 30
        return product_price * daily_pct * storage_days / 100
    return _STORAGE_PER_LITER_DAY * volume_liters * storage_days


# ── Acceptance ────────────────────────────────────────────────────────────────

def acceptance_cost(
    product_price: float,
    channel: object,
    volume_liters: float | None,
) -> float:
    if not FulfillmentChannel.parse(channel).is_warehouse_fulfilled:
        return 0.0
    if volume_liters is None:
        return product_price * _ACCEPTANCE_FALLBACK_PCT / 100
    return _ACCEPTANCE_PER_LITER * volume_liters
