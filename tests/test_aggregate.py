"""Tests for aggregate.py"""

from types import MappingProxyType

import pytest

from seller_settlement.aggregate import (
    DEFAULT_SCHEDULE,
    BatchAccumulator,
    aggregate_sales,
    schedule_for,
    settle_sales,
)
from seller_settlement.models import CategoryCommissionSchedule, SaleRecord
from seller_settlement.settlement import InvalidSaleError, compose_settlement

TSHIRTS = CategoryCommissionSchedule(fbw=24.5, fbs=25.5, dbs=25.5, cc=20, edbs=27)
MUGS = CategoryCommissionSchedule(fbw=19.5, fbs=20.5, dbs=20.5, cc=15, edbs=22)
SCHEDULES = {"Футболки": TSHIRTS, "2540": MUGS}


def _sale(pid, category, price, channel="FBW", **kw):
    return SaleRecord(
        product_id=pid,
        vendor_code=f"VC-{pid}",
        category=category,
        price_with_discount=price,
        original_price=price * 2,
        channel=channel,
        **kw,
    )


SALES = [
    _sale(1, "Футболки", 1000, "FBW", volume_liters=3.0),
    _sale(2, "Футболки", 1200, "FBS", volume_liters=3.0, price_with_marketplace_discount=1400),
    _sale(3, "Кружки", 650, "FBS", subcategory_id=2540, cost_price=210),
    _sale(4, "Кружки", 700, "FBO", subcategory_id=2540, return_rate=20),
    _sale(5, "Лампы", 2490, "DBS", length_cm=45, width_cm=20, height_cm=20),
    _sale(6, "Лампы", 300, "FBW", cost_price=280),
]


def test_schedule_lookup_by_category_name():
    schedule, found = schedule_for(SALES[0], SCHEDULES)
    assert found
    assert schedule is TSHIRTS


def test_schedule_lookup_by_subcategory_id():
    schedule, found = schedule_for(SALES[2], SCHEDULES)
    assert found
    assert schedule is MUGS


def test_schedule_missing_category_uses_default():
    schedule, found = schedule_for(SALES[4], SCHEDULES)
    assert not found
    assert schedule is DEFAULT_SCHEDULE


def test_schedule_lookup_does_not_mutate_map():
    before = dict(SCHEDULES)
    schedule_for(SALES[4], SCHEDULES)
    assert SCHEDULES == before


def test_totals_are_sums_of_settlements():
    report = aggregate_sales(SALES, SCHEDULES)
    settled = [compose_settlement(s, schedule_for(s, SCHEDULES)[0]) for s in SALES]

    assert report.sales_count == len(SALES)
    assert report.total_revenue == pytest.approx(sum(s.price_with_discount for s in SALES))
    assert report.total_profit == pytest.approx(sum(r.profit.amount for r in settled))
    assert report.total_expenses == pytest.approx(sum(r.total_expenses.amount for r in settled))
    assert report.overall_margin == pytest.approx(report.total_profit / report.total_revenue * 100)


def test_group_margin_is_recomputed_not_averaged():
    report = aggregate_sales(SALES, SCHEDULES)
    settled = [compose_settlement(s, schedule_for(s, SCHEDULES)[0]) for s in SALES]

    fbw = [r for r in settled if r.channel.value == "FBW"]
    group = report.by_channel["FBW"]
    assert group.count == 2
    assert group.revenue == pytest.approx(1300)
    assert group.profit == pytest.approx(sum(r.profit.amount for r in fbw))
    assert group.margin == pytest.approx(group.profit / group.revenue * 100)

    mean_of_margins = sum(r.profit.amount / r.product_price * 100 for r in fbw) / len(fbw)
    assert group.margin != pytest.approx(mean_of_margins)


def test_groups_by_category():
    report = aggregate_sales(SALES, SCHEDULES)
    assert set(report.by_category) == {"Футболки", "Кружки", "Лампы"}
    assert report.by_category["Кружки"].count == 2
    assert report.by_category["Кружки"].revenue == pytest.approx(1350)
    assert sum(g.count for g in report.by_channel.values()) == len(SALES)


def test_order_does_not_change_result():
    forward = aggregate_sales(SALES, SCHEDULES)
    backward = aggregate_sales(list(reversed(SALES)), SCHEDULES)
    assert backward.total_profit == pytest.approx(forward.total_profit)
    for key, g in forward.by_category.items():
        assert backward.by_category[key].margin == pytest.approx(g.margin)


def test_sharded_run_matches_sequential():
    sequential = aggregate_sales(SALES, SCHEDULES)
    sharded = aggregate_sales(SALES, SCHEDULES, workers=4)
    assert sharded.sales_count == sequential.sales_count
    assert sharded.total_revenue == pytest.approx(sequential.total_revenue)
    assert sharded.total_profit == pytest.approx(sequential.total_profit)
    for key, g in sequential.by_channel.items():
        assert sharded.by_channel[key].count == g.count
        assert sharded.by_channel[key].margin == pytest.approx(g.margin)


def test_merge_of_partial_accumulators():
    left, right, whole = BatchAccumulator(), BatchAccumulator(), BatchAccumulator()
    for i, sale in enumerate(SALES):
        result = compose_settlement(sale, schedule_for(sale, SCHEDULES)[0])
        (left if i % 2 else right).add(result)
        whole.add(result)

    merged = left.merge(right).finalize()
    expected = whole.finalize()
    assert merged.sales_count == expected.sales_count
    assert merged.total_profit == pytest.approx(expected.total_profit)
    assert merged.by_category["Лампы"].margin == pytest.approx(expected.by_category["Лампы"].margin)
    # merge leaves its operands untouched
    assert left.count + right.count == len(SALES)


def test_custom_default_schedule():
    flat = CategoryCommissionSchedule(fbw=5, fbs=5, dbs=5, cc=5, edbs=5)
    with_default = aggregate_sales(SALES[4:5], {}, default_schedule=flat)
    standard = aggregate_sales(SALES[4:5], {})
    assert with_default.total_profit == pytest.approx(standard.total_profit + 2490 * 0.10 * 0.94)


def test_accepts_read_only_mapping():
    report = aggregate_sales(SALES, MappingProxyType(SCHEDULES))
    assert report.sales_count == len(SALES)


def test_empty_batch():
    report = aggregate_sales([], SCHEDULES)
    assert report.sales_count == 0
    assert report.total_revenue == 0
    assert report.overall_margin == 0
    assert report.by_channel == {}


def test_invalid_sale_propagates():
    with pytest.raises(InvalidSaleError):
        aggregate_sales(SALES + [_sale(9, "Лампы", 0)], SCHEDULES)


def test_report_as_dict():
    d = aggregate_sales(SALES, SCHEDULES).as_dict()
    assert d["sales_count"] == 6
    assert set(d["by_channel"]) == {"FBW", "FBS", "FBO", "DBS"}
    assert "margin" in d["by_category"]["Лампы"]


@pytest.mark.parametrize("workers", [1, 4])
def test_settle_sales_returns_the_aggregated_results(workers):
    report, results = settle_sales(SALES, SCHEDULES, workers=workers)
    assert [r.product_price for r in results] == [s.price_with_discount for s in SALES]
    assert report.sales_count == len(results)
    assert report.total_profit == pytest.approx(sum(r.profit.amount for r in results))
