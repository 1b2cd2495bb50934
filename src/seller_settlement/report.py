"""Report generation: Markdown, JSON, and a short text summary."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

from dateutil import tz

from .models import AggregateReport, GroupTotals, SettlementResult

logger = logging.getLogger(__name__)

_DISCLAIMER = (
    "> **Disclaimer:** Figures are estimates reconstructed from published tariffs. "
    "Where product volume is unknown, logistics, storage and acceptance use "
    "price-based averages. Reconcile against the marketplace's weekly "
    "realization report before making pricing decisions."
)


def _now_local(timezone_str: str) -> datetime:
    local_tz = tz.gettz(timezone_str) or tz.tzlocal()
    return datetime.now(tz=local_tz)


def _money(value: float) -> str:
    return f"{value:,.2f}".replace(",", " ")


def _groups_table(title: str, groups: dict[str, GroupTotals]) -> str:
    if not groups:
        return "_No sales._\n"
    header = f"| {title} | Sales | Revenue | Profit | Margin % |\n"
    separator = "|---|---:|---:|---:|---:|\n"
    rows = [
        f"| {key} | {g.count} | {_money(g.revenue)} | {_money(g.profit)} | {g.margin:.2f} |"
        for key, g in sorted(groups.items(), key=lambda kv: kv[1].revenue, reverse=True)
    ]
    return header + separator + "\n".join(rows) + "\n"


def settlement_table(result: SettlementResult) -> list[tuple[str, float, float | None]]:
    """Flatten one settlement into ``(label, amount, percent)`` rows, in display order."""
    mp = result.marketplace_expenses
    se = result.seller_expenses
    rows: list[tuple[str, float, float | None]] = [
        ("Seller price", result.product_price, 100.0),
        ("Buyer price", result.customer_price, None),
    ]
    if result.marketplace_funded_discount is not None:
        rows.append(("Marketplace-funded discount", result.marketplace_funded_discount, None))
    rows += [
        (f"Commission ({mp.commission.rate:g}%)", mp.commission.amount, mp.commission.percent),
        ("Logistics to buyer", mp.logistics.outbound.amount, mp.logistics.outbound.percent),
        ("Return logistics", mp.logistics.return_leg.amount, mp.logistics.return_leg.percent),
        (f"Storage ({mp.storage.days} days)", mp.storage.amount, mp.storage.percent),
        ("Acceptance", mp.acceptance.amount, mp.acceptance.percent),
        ("Marketplace total", mp.total, mp.percent),
        ("Due to seller", result.amount_due_to_seller.amount, result.amount_due_to_seller.percent),
        (f"Tax ({se.taxes.rate:g}%)", se.taxes.amount, se.taxes.percent),
        ("Cost of goods", se.cost_of_goods.amount, se.cost_of_goods.percent),
        ("Advertising", se.advertising.amount, se.advertising.percent),
        ("Other", se.other.amount, se.other.percent),
        ("Seller total", se.total, se.percent),
        ("Total expenses", result.total_expenses.amount, result.total_expenses.percent),
        ("Profit", result.profit.amount, result.profit.margin_percent_of_customer_price),
    ]
    return rows


def generate_markdown_report(
    report: AggregateReport,
    run_date_str: str,
    source: str,
    timezone_str: str = "Europe/Moscow",
) -> str:
    return f"""# Seller Settlement — Profitability Report

**Date:** {run_date_str} ({timezone_str})
**Source:** {source or '_not specified_'}
**Sales settled:** {report.sales_count}

---

## 📌 Totals

| Revenue | Expenses | Profit | Margin % |
|---:|---:|---:|---:|
| {_money(report.total_revenue)} | {_money(report.total_expenses)} | {_money(report.total_profit)} | {report.overall_margin:.2f} |

---

## 🚚 By Fulfillment Channel

{_groups_table("Channel", report.by_channel)}
---

## 🗂 By Category

{_groups_table("Category", report.by_category)}
---

## ⚠️ Disclaimer

{_DISCLAIMER}
"""


def generate_json_report(
    report: AggregateReport,
    run_date_str: str,
    source: str,
    timezone_str: str = "Europe/Moscow",
    results: Sequence[SettlementResult] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "meta": {
            "date": run_date_str,
            "timezone": timezone_str,
            "source": source,
            "sales_count": report.sales_count,
        },
        "summary": report.as_dict(),
    }
    if results is not None:
        payload["settlements"] = [r.as_dict() for r in results]
    return payload


def generate_text_summary(
    report: AggregateReport,
    run_date_str: str,
    md_path: str,
    json_path: str,
) -> str:
    """Return a ≤20-line plain-text summary suitable for a chat notification."""
    lines = [
        f"📊 *Seller Settlement* — {run_date_str}",
        f"Sales: {report.sales_count}  Revenue: {_money(report.total_revenue)}",
        f"Profit: {_money(report.total_profit)}  Margin: {report.overall_margin:.2f}%",
        "",
    ]
    if not report.sales_count:
        lines.append("✅ No sales to settle.")
    else:
        lines.append("🚚 By channel:")
        top = sorted(report.by_channel.items(), key=lambda kv: kv[1].revenue, reverse=True)[:6]
        for key, g in top:
            lines.append(f"  • {key}: {g.count} sale(s), margin {g.margin:.2f}%")

    lines += [
        "",
        f"📄 Report (MD):   {md_path}",
        f"📋 Report (JSON): {json_path}",
    ]
    return "\n".join(lines)


def write_reports(
    report: AggregateReport,
    reports_dir: str | Path,
    source: str,
    timezone_str: str = "Europe/Moscow",
    results: Sequence[SettlementResult] | None = None,
) -> tuple[Path, Path, str]:
    """
    Write Markdown + JSON reports to reports_dir.
    Returns (md_path, json_path, text_summary).
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)

    now = _now_local(timezone_str)
    date_str = now.strftime("%Y-%m-%d")
    file_stem = f"settlement_{now.strftime('%Y%m%d')}"

    md_content = generate_markdown_report(report, date_str, source, timezone_str)
    json_content = generate_json_report(report, date_str, source, timezone_str, results)

    md_path = reports_dir / f"{file_stem}.md"
    json_path = reports_dir / f"{file_stem}.json"

    md_path.write_text(md_content, encoding="utf-8")
    json_path.write_text(
        json.dumps(json_content, indent=2, ensure_ascii=False, default=str), encoding="utf-8",
    )

    logger.info("Report written: %s", md_path)
    logger.info("Report written: %s", json_path)

    summary = generate_text_summary(report, date_str, str(md_path), str(json_path))
    return md_path, json_path, summary
