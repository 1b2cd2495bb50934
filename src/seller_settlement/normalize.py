"""Field cleaning and conversion of sales / commission tables into value types."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any

import pandas as pd

from .aggregate import DEFAULT_SCHEDULE
from .models import CategoryCommissionSchedule, FulfillmentChannel, SaleRecord

logger = logging.getLogger(__name__)

_AMOUNT_JUNK = re.compile(r"[\s  ₽]|руб\.?|rub", re.IGNORECASE)
_TRUE_VALUES = {"1", "true", "yes", "y", "да", "t"}

# Column name variants found in marketplace exports → canonical SaleRecord fields.
_SALE_ALIASES: dict[str, str] = {
    "nmid": "product_id",
    "nm_id": "product_id",
    "product_id": "product_id",
    "vendorcode": "vendor_code",
    "supplierarticle": "vendor_code",
    "vendor_code": "vendor_code",
    "subject": "category",
    "category": "category",
    "subjectid": "subcategory_id",
    "subcategoryid": "subcategory_id",
    "subcategory_id": "subcategory_id",
    "finishedprice": "price_with_discount",
    "pricewithdiscount": "price_with_discount",
    "price_with_discount": "price_with_discount",
    "pricewithdisc": "price_with_marketplace_discount",
    "pricewithwbdiscount": "price_with_marketplace_discount",
    "pricewithmarketplacediscount": "price_with_marketplace_discount",
    "price_with_marketplace_discount": "price_with_marketplace_discount",
    "totalprice": "original_price",
    "originalprice": "original_price",
    "original_price": "original_price",
    "deliverytype": "channel",
    "channel": "channel",
    "warehousename": "warehouse_name",
    "warehouse_name": "warehouse_name",
    "warehousektr": "ktr",
    "ktr": "ktr",
    "length": "length_cm",
    "length_cm": "length_cm",
    "width": "width_cm",
    "width_cm": "width_cm",
    "height": "height_cm",
    "height_cm": "height_cm",
    "weight": "weight_kg",
    "weight_kg": "weight_kg",
    "volumeliters": "volume_liters",
    "volume": "volume_liters",
    "volume_liters": "volume_liters",
    "isreturned": "is_returned",
    "isreturn": "is_returned",
    "is_returned": "is_returned",
    "returnrate": "return_rate",
    "return_rate": "return_rate",
    "date": "order_date",
    "orderdate": "order_date",
    "order_date": "order_date",
    "costprice": "cost_price",
    "cost_price": "cost_price",
}

_SCHEDULE_ALIASES: dict[str, str] = {
    "category": "category",
    "subject": "category",
    "subjectname": "category",
    "subjectid": "category_id",
    "category_id": "category_id",
    "commissionfbw": "fbw",
    "paidstoragekgvp": "fbw",
    "fbw": "fbw",
    "commissionfbs": "fbs",
    "kgvpmarketplace": "fbs",
    "fbs": "fbs",
    "commissiondbs": "dbs",
    "kgvpsupplier": "dbs",
    "dbs": "dbs",
    "commissioncc": "cc",
    "kgvppickup": "cc",
    "cc": "cc",
    "commissionedbs": "edbs",
    "kgvpsupplierexpress": "edbs",
    "edbs": "edbs",
}


def _is_missing(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, float) and pd.isna(raw):
        return True
    return isinstance(raw, str) and not raw.strip()


def parse_amount(raw: Any) -> float | None:
    """
    Parse a money/number cell into a float.

    Accepts plain numbers and strings such as ``"1 234,50"``, ``"1234.5"``
    or ``"1 234 ₽"``.  Returns ``None`` for empty / NaN / unparseable input.
    """
    if _is_missing(raw):
        return None
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, (int, float)):
        return float(raw)
    s = _AMOUNT_JUNK.sub("", str(raw)).replace(",", ".")
    try:
        return float(s)
    except ValueError:
        logger.debug("Unparseable amount %r", raw)
        return None


def parse_bool(raw: Any) -> bool:
    if _is_missing(raw):
        return False
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    return str(raw).strip().lower() in _TRUE_VALUES


def normalize_channel(raw: Any) -> FulfillmentChannel:
    """Map an export's delivery-type cell to a channel (unknown → FBW)."""
    if _is_missing(raw):
        return FulfillmentChannel.FBW
    return FulfillmentChannel.parse(raw)


def _parse_date(raw: Any) -> datetime | None:
    if _is_missing(raw):
        return None
    ts = pd.to_datetime(raw, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _text(raw: Any) -> str | None:
    if _is_missing(raw):
        return None
    return str(raw).strip()


def _identifier(raw: Any) -> int | str | None:
    if _is_missing(raw):
        return None
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, int):
        return int(raw)
    s = str(raw).strip()
    return int(s) if s.isdigit() else s


def _canonical_columns(df: pd.DataFrame, aliases: dict[str, str]) -> pd.DataFrame:
    mapping = {}
    for col in df.columns:
        key = str(col).strip().lower()
        canon = aliases.get(key) or aliases.get(key.replace("_", ""))
        if canon and canon not in mapping.values():
            mapping[col] = canon
    return df.rename(columns=mapping)[list(mapping.values())]


def sale_from_row(row: dict[str, Any]) -> SaleRecord | None:
    """Convert one canonical row to a :class:`SaleRecord`; ``None`` if unusable."""
    price = parse_amount(row.get("price_with_discount"))
    if price is None:
        return None
    product_id = _identifier(row.get("product_id"))
    return SaleRecord(
        product_id=product_id if product_id is not None else "",
        vendor_code=_text(row.get("vendor_code")) or "",
        category=_text(row.get("category")) or "Uncategorized",
        subcategory_id=_identifier(row.get("subcategory_id")),
        price_with_discount=price,
        original_price=parse_amount(row.get("original_price")) or price,
        price_with_marketplace_discount=parse_amount(row.get("price_with_marketplace_discount")),
        warehouse_name=_text(row.get("warehouse_name")),
        channel=normalize_channel(row.get("channel")),
        ktr=parse_amount(row.get("ktr")) or 1.0,
        length_cm=parse_amount(row.get("length_cm")),
        width_cm=parse_amount(row.get("width_cm")),
        height_cm=parse_amount(row.get("height_cm")),
        weight_kg=parse_amount(row.get("weight_kg")),
        volume_liters=parse_amount(row.get("volume_liters")),
        is_returned=parse_bool(row.get("is_returned")),
        return_rate=parse_amount(row.get("return_rate")),
        order_date=_parse_date(row.get("order_date")),
        cost_price=parse_amount(row.get("cost_price")),
    )


def sales_from_dataframe(df: pd.DataFrame) -> list[SaleRecord]:
    """
    Build sale records from a sales export.

    Column names are matched case-insensitively against the known aliases
    (``nmId``, ``finishedPrice``, ``priceWithDisc``, ``deliveryType`` …).
    Rows without a seller price are skipped.
    """
    if df is None or df.empty:
        return []
    canon = _canonical_columns(df, _SALE_ALIASES)
    if "price_with_discount" not in canon.columns:
        logger.warning("Sales table has no seller price column; columns=%s", list(df.columns))
        return []

    sales: list[SaleRecord] = []
    skipped = 0
    for row in canon.to_dict(orient="records"):
        sale = sale_from_row(row)
        if sale is None:
            skipped += 1
            continue
        sales.append(sale)
    if skipped:
        logger.warning("Skipped %d sales row(s) without a seller price", skipped)
    logger.info("Parsed %d sale(s)", len(sales))
    return sales


def schedules_from_dataframe(
    df: pd.DataFrame,
    default: CategoryCommissionSchedule | None = None,
) -> dict[str, CategoryCommissionSchedule]:
    """
    Build a category → commission schedule map from a commission table.

    Each row is keyed by its category name and, when present, by its
    category id.  A missing rate column falls back to ``default``.
    """
    default = default or DEFAULT_SCHEDULE
    if df is None or df.empty:
        return {}
    canon = _canonical_columns(df, _SCHEDULE_ALIASES)
    if "category" not in canon.columns and "category_id" not in canon.columns:
        logger.warning("Commission table has no category column; columns=%s", list(df.columns))
        return {}

    schedules: dict[str, CategoryCommissionSchedule] = {}
    for row in canon.to_dict(orient="records"):
        rates = {}
        for name in ("fbw", "fbs", "dbs", "cc", "edbs"):
            value = parse_amount(row.get(name))
            rates[name] = value if value is not None else getattr(default, name)
        schedule = CategoryCommissionSchedule(**rates)
        for key in (_text(row.get("category")), _text(_identifier(row.get("category_id")))):
            if key:
                schedules[key] = schedule
    logger.info("Loaded commission schedules for %d key(s)", len(schedules))
    return schedules
