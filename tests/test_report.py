"""Tests for report.py"""

import json
import tempfile

import pytest

from seller_settlement.aggregate import aggregate_sales
from seller_settlement.models import CategoryCommissionSchedule, SaleRecord
from seller_settlement.report import (
    generate_json_report,
    generate_markdown_report,
    generate_text_summary,
    settlement_table,
    write_reports,
)
from seller_settlement.settlement import compose_settlement

SCHEDULE = CategoryCommissionSchedule(fbw=15, fbs=17, dbs=19, cc=10, edbs=21)

SALES = [
    SaleRecord(product_id=1, vendor_code="A", category="Футболки", price_with_discount=1000,
               channel="FBW", volume_liters=3.0),
    SaleRecord(product_id=2, vendor_code="B", category="Кружки", price_with_discount=650,
               price_with_marketplace_discount=700, channel="FBS", volume_liters=0.9),
]
REPORT = aggregate_sales(SALES, {"Футболки": SCHEDULE, "Кружки": SCHEDULE})
EMPTY = aggregate_sales([], {})


def test_markdown_contains_title_and_sections():
    md = generate_markdown_report(REPORT, "2025-10-06", "sales.csv")
    assert "# Seller Settlement" in md
    assert "By Fulfillment Channel" in md
    assert "By Category" in md
    assert "Disclaimer" in md


def test_markdown_lists_groups():
    md = generate_markdown_report(REPORT, "2025-10-06", "sales.csv")
    assert "| FBW |" in md
    assert "| Кружки |" in md


def test_markdown_empty_report():
    md = generate_markdown_report(EMPTY, "2025-10-06", "")
    assert "_No sales._" in md


def test_json_report_structure():
    results = [compose_settlement(s, SCHEDULE) for s in SALES]
    payload = generate_json_report(REPORT, "2025-10-06", "sales.csv", results=results)
    assert payload["meta"]["date"] == "2025-10-06"
    assert payload["meta"]["sales_count"] == 2
    assert payload["summary"]["by_channel"]["FBS"]["count"] == 1
    assert len(payload["settlements"]) == 2


def test_json_report_without_settlements():
    payload = generate_json_report(REPORT, "2025-10-06", "sales.csv")
    assert "settlements" not in payload


def test_text_summary():
    summary = generate_text_summary(REPORT, "2025-10-06", "r.md", "r.json")
    assert "2025-10-06" in summary
    assert "FBW" in summary
    assert len(summary.splitlines()) <= 20


def test_text_summary_no_sales():
    summary = generate_text_summary(EMPTY, "2025-10-06", "r.md", "r.json")
    assert "No sales" in summary


def test_settlement_table_rows():
    result = compose_settlement(SALES[1], SCHEDULE)
    rows = dict((label, (amount, pct)) for label, amount, pct in settlement_table(result))
    assert rows["Seller price"] == (650, 100.0)
    assert rows["Marketplace-funded discount"][0] == pytest.approx(50)
    assert rows["Commission (17%)"][0] == pytest.approx(110.5)
    assert rows["Storage (30 days)"][0] == 0
    assert rows["Profit"][1] == pytest.approx(result.profit.margin_percent_of_customer_price)


def test_write_reports_creates_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        md_path, json_path, summary = write_reports(
            REPORT,
            reports_dir=tmpdir,
            source="sales.csv",
            timezone_str="Europe/Moscow",
        )
        assert md_path.exists()
        assert json_path.exists()
        assert md_path.name.startswith("settlement_")
        data = json.loads(json_path.read_text(encoding="utf-8"))
        assert data["summary"]["sales_count"] == 2
        assert summary.strip() != ""
