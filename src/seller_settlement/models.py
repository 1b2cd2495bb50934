"""Value types for sales, commission schedules and settlement results."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


# ── Fulfillment channels ──────────────────────────────────────────────────────

class FulfillmentChannel(str, Enum):
    FBO = "FBO"
    FBW = "FBW"
    FBS = "FBS"
    DBS = "DBS"
    CC = "CC"        # click-and-collect
    EDBS = "EDBS"    # express delivery by seller

    @classmethod
    def parse(cls, value: object) -> "FulfillmentChannel":
        """Resolve a raw channel value; anything unrecognised becomes FBW."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.FBW
        key = str(value).strip().upper()
        try:
            return cls(key)
        except ValueError:
            return cls.FBW

    @property
    def is_warehouse_fulfilled(self) -> bool:
        return self in _WAREHOUSE_CHANNELS


_WAREHOUSE_CHANNELS = frozenset({FulfillmentChannel.FBO, FulfillmentChannel.FBW})


# ── Inputs ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CategoryCommissionSchedule:
    fbw: float
    fbs: float
    dbs: float
    cc: float
    edbs: float

    def rate_for(self, channel: object) -> float:
        ch = FulfillmentChannel.parse(channel)
        if ch is FulfillmentChannel.FBS:
            return self.fbs
        if ch is FulfillmentChannel.DBS:
            return self.dbs
        if ch is FulfillmentChannel.CC:
            return self.cc
        if ch is FulfillmentChannel.EDBS:
            return self.edbs
        return self.fbw

    def as_dict(self) -> dict:
        return {"fbw": self.fbw, "fbs": self.fbs, "dbs": self.dbs, "cc": self.cc, "edbs": self.edbs}


@dataclass(frozen=True)
class SaleRecord:
    product_id: int | str
    vendor_code: str
    category: str
    price_with_discount: float
    original_price: float = 0.0
    price_with_marketplace_discount: float | None = None
    subcategory_id: int | str | None = None
    warehouse_name: str | None = None
    channel: FulfillmentChannel = FulfillmentChannel.FBW
    ktr: float = 1.0
    length_cm: float | None = None
    width_cm: float | None = None
    height_cm: float | None = None
    weight_kg: float | None = None
    volume_liters: float | None = None
    is_returned: bool = False
    return_rate: float | None = None
    order_date: datetime | None = None
    cost_price: float | None = None

    def __post_init__(self) -> None:
        # Frozen dataclass: normalise the channel through object.__setattr__.
        object.__setattr__(self, "channel", FulfillmentChannel.parse(self.channel))
        if self.ktr is None or not math.isfinite(self.ktr) or self.ktr <= 0:
            object.__setattr__(self, "ktr", 1.0)

    @property
    def customer_price(self) -> float:
        """Price the buyer actually paid; falls back to the seller price."""
        p = self.price_with_marketplace_discount
        if p is not None and p > 0:
            return p
        return self.price_with_discount


@dataclass(frozen=True)
class SettlementOptions:
    tax_rate: float = 6.0
    advertising_percent: float = 3.0
    other_expenses: float = 0.0
    storage_days: int = 30


# ── Settlement result ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Line:
    amount: float
    percent: float

    def as_dict(self) -> dict:
        return {"amount": round(self.amount, 2), "percent": round(self.percent, 2)}


@dataclass(frozen=True)
class RatedLine(Line):
    rate: float = 0.0

    def as_dict(self) -> dict:
        return {**super().as_dict(), "rate": round(self.rate, 2)}


@dataclass(frozen=True)
class StorageLine(Line):
    days: int = 30

    def as_dict(self) -> dict:
        return {**super().as_dict(), "days": self.days}


@dataclass(frozen=True)
class LogisticsBreakdown:
    outbound: Line
    return_leg: Line
    total: float
    percent: float

    def as_dict(self) -> dict:
        return {
            "total": round(self.total, 2),
            "percent": round(self.percent, 2),
            "outbound": self.outbound.as_dict(),
            "return_leg": self.return_leg.as_dict(),
        }


@dataclass(frozen=True)
class MarketplaceExpenses:
    commission: RatedLine
    logistics: LogisticsBreakdown
    storage: StorageLine
    acceptance: Line
    total: float
    percent: float

    def as_dict(self) -> dict:
        return {
            "total": round(self.total, 2),
            "percent": round(self.percent, 2),
            "commission": self.commission.as_dict(),
            "logistics": self.logistics.as_dict(),
            "storage": self.storage.as_dict(),
            "acceptance": self.acceptance.as_dict(),
        }


@dataclass(frozen=True)
class SellerExpenses:
    taxes: RatedLine
    cost_of_goods: Line
    advertising: Line
    other: Line
    total: float
    percent: float

    def as_dict(self) -> dict:
        return {
            "total": round(self.total, 2),
            "percent": round(self.percent, 2),
            "taxes": self.taxes.as_dict(),
            "cost_of_goods": self.cost_of_goods.as_dict(),
            "advertising": self.advertising.as_dict(),
            "other": self.other.as_dict(),
        }


@dataclass(frozen=True)
class Profit:
    amount: float
    margin_percent_of_customer_price: float

    def as_dict(self) -> dict:
        return {
            "amount": round(self.amount, 2),
            "margin_percent_of_customer_price": round(self.margin_percent_of_customer_price, 2),
        }


@dataclass(frozen=True)
class SettlementResult:
    product_price: float
    customer_price: float
    marketplace_funded_discount: float | None
    marketplace_expenses: MarketplaceExpenses
    amount_due_to_seller: Line
    seller_expenses: SellerExpenses
    total_expenses: Line
    profit: Profit
    volume_liters: float | None
    channel: FulfillmentChannel
    category: str
    calculated_at: datetime

    def as_dict(self) -> dict:
        return {
            "product_price": round(self.product_price, 2),
            "customer_price": round(self.customer_price, 2),
            "marketplace_funded_discount": (
                round(self.marketplace_funded_discount, 2)
                if self.marketplace_funded_discount is not None else None
            ),
            "marketplace_expenses": self.marketplace_expenses.as_dict(),
            "amount_due_to_seller": self.amount_due_to_seller.as_dict(),
            "seller_expenses": self.seller_expenses.as_dict(),
            "total_expenses": self.total_expenses.as_dict(),
            "profit": self.profit.as_dict(),
            "volume_liters": round(self.volume_liters, 3) if self.volume_liters is not None else None,
            "channel": self.channel.value,
            "category": self.category,
            "calculated_at": self.calculated_at.isoformat(timespec="seconds"),
        }


# ── Aggregation ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GroupTotals:
    count: int
    revenue: float
    profit: float
    margin: float

    def as_dict(self) -> dict:
        return {
            "count": self.count,
            "revenue": round(self.revenue, 2),
            "profit": round(self.profit, 2),
            "margin": round(self.margin, 2),
        }


@dataclass(frozen=True)
class AggregateReport:
    sales_count: int
    total_revenue: float
    total_profit: float
    total_expenses: float
    overall_margin: float
    by_channel: dict[str, GroupTotals] = field(default_factory=dict)
    by_category: dict[str, GroupTotals] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "sales_count": self.sales_count,
            "total_revenue": round(self.total_revenue, 2),
            "total_profit": round(self.total_profit, 2),
            "total_expenses": round(self.total_expenses, 2),
            "overall_margin": round(self.overall_margin, 2),
            "by_channel": {k: v.as_dict() for k, v in self.by_channel.items()},
            "by_category": {k: v.as_dict() for k, v in self.by_category.items()},
        }
