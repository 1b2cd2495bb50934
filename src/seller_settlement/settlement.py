"""Itemised settlement of a single sale: marketplace fees, seller costs, profit."""

from __future__ import annotations

import logging
import math
import numbers
from datetime import datetime, timezone

from .models import (
    CategoryCommissionSchedule,
    Line,
    LogisticsBreakdown,
    MarketplaceExpenses,
    Profit,
    RatedLine,
    SaleRecord,
    SellerExpenses,
    SettlementOptions,
    SettlementResult,
    StorageLine,
)
from .tariffs import (
    acceptance_cost,
    effective_return_rate,
    outbound_logistics,
    resolve_commission,
    resolve_volume,
    return_logistics,
    storage_cost,
)

logger = logging.getLogger(__name__)

# Share of the seller price assumed as cost of goods when no cost price is known.
_DEFAULT_COST_OF_GOODS_PCT = 37.0


class InvalidSaleError(ValueError):
    """Raised when a sale cannot be settled (non-positive or non-finite price)."""


def _finite(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and math.isfinite(value)


def compose_settlement(
    sale: SaleRecord,
    schedule: CategoryCommissionSchedule,
    options: SettlementOptions | None = None,
    *,
    now: datetime | None = None,
) -> SettlementResult:
    """
    Reconstruct the full fee breakdown and net profit of one sale.

    Commission and every line percent are based on the seller price
    (``price_with_discount``); only the profit margin is taken against the
    price the buyer paid.  Nothing is rounded here.

    Raises:
        InvalidSaleError: seller price is not a finite number above zero, or
            the buyer price is not finite.
    """
    opts = options or SettlementOptions()

    price = sale.price_with_discount
    if not _finite(price) or price <= 0:
        raise InvalidSaleError(
            f"Sale {sale.product_id!r}: seller price must be a positive number, got {price!r}"
        )
    price = float(price)
    customer_price = sale.customer_price
    if not _finite(customer_price):
        raise InvalidSaleError(
            f"Sale {sale.product_id!r}: buyer price must be a finite number, got {customer_price!r}"
        )
    customer_price = float(customer_price)

    def pct(amount: float) -> float:
        return amount / price * 100

    channel = sale.channel

    commission, commission_rate = resolve_commission(price, channel, schedule)

    volume = resolve_volume(sale.volume_liters, sale.length_cm, sale.width_cm, sale.height_cm)
    if volume is None:
        logger.debug("Sale %s: volume unknown, using price-based fallbacks", sale.product_id)

    outbound = outbound_logistics(price, volume, sale.ktr)
    return_leg = return_logistics(effective_return_rate(sale.return_rate, sale.is_returned))
    logistics_total = outbound + return_leg

    storage = storage_cost(price, channel, volume, opts.storage_days)
    acceptance = acceptance_cost(price, channel, volume)

    marketplace_total = commission + logistics_total + storage + acceptance
    due_to_seller = price - marketplace_total

    taxes = due_to_seller * opts.tax_rate / 100
    if sale.cost_price is not None and sale.cost_price > 0:
        cost_of_goods = float(sale.cost_price)
    else:
        cost_of_goods = price * _DEFAULT_COST_OF_GOODS_PCT / 100
    advertising = price * opts.advertising_percent / 100
    other = float(opts.other_expenses)

    seller_total = taxes + cost_of_goods + advertising + other
    total_expenses = marketplace_total + seller_total
    profit = price - total_expenses
    margin = profit / customer_price * 100 if customer_price > 0 else 0.0

    discount = customer_price - price

    logger.debug(
        "Sale %s [%s]: marketplace=%.4f seller=%.4f profit=%.4f",
        sale.product_id, channel.value, marketplace_total, seller_total, profit,
    )

    return SettlementResult(
        product_price=price,
        customer_price=customer_price,
        marketplace_funded_discount=discount if discount > 0 else None,
        marketplace_expenses=MarketplaceExpenses(
            commission=RatedLine(commission, pct(commission), rate=commission_rate),
            logistics=LogisticsBreakdown(
                outbound=Line(outbound, pct(outbound)),
                return_leg=Line(return_leg, pct(return_leg)),
                total=logistics_total,
                percent=pct(logistics_total),
            ),
            storage=StorageLine(storage, pct(storage), days=opts.storage_days),
            acceptance=Line(acceptance, pct(acceptance)),
            total=marketplace_total,
            percent=pct(marketplace_total),
        ),
        amount_due_to_seller=Line(due_to_seller, pct(due_to_seller)),
        seller_expenses=SellerExpenses(
            taxes=RatedLine(taxes, pct(taxes), rate=opts.tax_rate),
            cost_of_goods=Line(cost_of_goods, pct(cost_of_goods)),
            advertising=Line(advertising, pct(advertising)),
            other=Line(other, pct(other)),
            total=seller_total,
            percent=pct(seller_total),
        ),
        total_expenses=Line(total_expenses, pct(total_expenses)),
        profit=Profit(profit, margin),
        volume_liters=volume,
        channel=channel,
        category=sale.category,
        calculated_at=now or datetime.now(tz=timezone.utc),
    )
