"""Batch settlement of many sales, rolled up by channel and by category."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Mapping

from .models import (
    AggregateReport,
    CategoryCommissionSchedule,
    GroupTotals,
    SaleRecord,
    SettlementOptions,
    SettlementResult,
)
from .settlement import compose_settlement

logger = logging.getLogger(__name__)

# Substituted for categories that have no schedule of their own.
DEFAULT_SCHEDULE = CategoryCommissionSchedule(fbw=15.0, fbs=15.0, dbs=15.0, cc=10.0, edbs=20.0)


def schedule_for(
    sale: SaleRecord,
    schedules: Mapping[str, CategoryCommissionSchedule],
    default: CategoryCommissionSchedule = DEFAULT_SCHEDULE,
) -> tuple[CategoryCommissionSchedule, bool]:
    """
    Look up the commission schedule of a sale's category.

    Tries the category name, then the subcategory id (as given and as a
    string).  Returns ``(schedule, found)``; ``found`` is False when
    ``default`` was substituted.
    """
    keys: list[object] = [sale.category]
    if sale.subcategory_id is not None:
        keys += [sale.subcategory_id, str(sale.subcategory_id)]
    for key in keys:
        sched = schedules.get(key)
        if sched is not None:
            return sched, True
    return default, False


def _margin(profit: float, revenue: float) -> float:
    return profit / revenue * 100 if revenue else 0.0


@dataclass
class _Group:
    count: int = 0
    revenue: float = 0.0
    profit: float = 0.0


@dataclass
class BatchAccumulator:
    """
    Running sums over settled sales.

    Accumulators from disjoint shards combine with :meth:`merge`, which keeps
    per-sale results in shard order; margins are derived once, from the
    merged sums, in :meth:`finalize`.
    """

    count: int = 0
    revenue: float = 0.0
    profit: float = 0.0
    expenses: float = 0.0
    by_channel: dict[str, _Group] = field(default_factory=dict)
    by_category: dict[str, _Group] = field(default_factory=dict)
    defaulted_categories: set[str] = field(default_factory=set)
    results: list[SettlementResult] = field(default_factory=list)

    def add(self, result: SettlementResult) -> None:
        self.results.append(result)
        self.count += 1
        self.revenue += result.product_price
        self.profit += result.profit.amount
        self.expenses += result.total_expenses.amount
        for groups, key in (
            (self.by_channel, result.channel.value),
            (self.by_category, result.category),
        ):
            g = groups.setdefault(key, _Group())
            g.count += 1
            g.revenue += result.product_price
            g.profit += result.profit.amount

    def merge(self, other: "BatchAccumulator") -> "BatchAccumulator":
        """Return a new accumulator holding the sums of both."""
        merged = BatchAccumulator(
            count=self.count + other.count,
            revenue=self.revenue + other.revenue,
            profit=self.profit + other.profit,
            expenses=self.expenses + other.expenses,
            defaulted_categories=self.defaulted_categories | other.defaulted_categories,
            results=self.results + other.results,
        )
        for name in ("by_channel", "by_category"):
            target: dict[str, _Group] = getattr(merged, name)
            for source in (getattr(self, name), getattr(other, name)):
                for key, g in source.items():
                    t = target.setdefault(key, _Group())
                    t.count += g.count
                    t.revenue += g.revenue
                    t.profit += g.profit
        return merged

    def finalize(self) -> AggregateReport:
        def totals(groups: dict[str, _Group]) -> dict[str, GroupTotals]:
            return {
                key: GroupTotals(g.count, g.revenue, g.profit, _margin(g.profit, g.revenue))
                for key, g in groups.items()
            }

        return AggregateReport(
            sales_count=self.count,
            total_revenue=self.revenue,
            total_profit=self.profit,
            total_expenses=self.expenses,
            overall_margin=_margin(self.profit, self.revenue),
            by_channel=totals(self.by_channel),
            by_category=totals(self.by_category),
        )


def _settle_shard(
    sales: list[SaleRecord],
    schedules: Mapping[str, CategoryCommissionSchedule],
    options: SettlementOptions,
    default_schedule: CategoryCommissionSchedule,
) -> BatchAccumulator:
    acc = BatchAccumulator()
    for sale in sales:
        schedule, found = schedule_for(sale, schedules, default_schedule)
        if not found:
            acc.defaulted_categories.add(sale.category)
        acc.add(compose_settlement(sale, schedule, options))
    return acc


def _shards(sales: list[SaleRecord], n: int) -> list[list[SaleRecord]]:
    size = -(-len(sales) // n)
    return [sales[i:i + size] for i in range(0, len(sales), size)]


def settle_sales(
    sales: Iterable[SaleRecord],
    schedules: Mapping[str, CategoryCommissionSchedule],
    options: SettlementOptions | None = None,
    *,
    default_schedule: CategoryCommissionSchedule = DEFAULT_SCHEDULE,
    workers: int = 1,
) -> tuple[AggregateReport, list[SettlementResult]]:
    """
    Settle every sale and roll the results up.

    Returns the report together with the per-sale results it was built
    from, in input order.

    ``schedules`` maps category name (or subcategory id) to its commission
    schedule; missing categories get ``default_schedule``.  With
    ``workers > 1`` the sales are split into contiguous shards settled on a
    thread pool and merged before margins are derived.

    Raises:
        InvalidSaleError: a sale has a non-positive seller price.
    """
    opts = options or SettlementOptions()
    frozen = MappingProxyType(dict(schedules))
    sales = list(sales)

    if workers > 1 and len(sales) > 1:
        shards = _shards(sales, workers)
        with ThreadPoolExecutor(max_workers=workers) as pool:
            partials = list(
                pool.map(lambda s: _settle_shard(s, frozen, opts, default_schedule), shards)
            )
        acc = BatchAccumulator()
        for partial in partials:
            acc = acc.merge(partial)
    else:
        acc = _settle_shard(sales, frozen, opts, default_schedule)

    for category in sorted(acc.defaulted_categories):
        logger.info("No commission schedule for category %r — default schedule applied", category)

    report = acc.finalize()
    logger.info(
        "Aggregated %d sale(s): revenue=%.2f profit=%.2f margin=%.2f%%",
        report.sales_count, report.total_revenue, report.total_profit, report.overall_margin,
    )
    return report, acc.results


def aggregate_sales(
    sales: Iterable[SaleRecord],
    schedules: Mapping[str, CategoryCommissionSchedule],
    options: SettlementOptions | None = None,
    *,
    default_schedule: CategoryCommissionSchedule = DEFAULT_SCHEDULE,
    workers: int = 1,
) -> AggregateReport:
    """Like :func:`settle_sales`, returning only the aggregate report."""
    report, _ = settle_sales(
        sales, schedules, options, default_schedule=default_schedule, workers=workers,
    )
    return report
