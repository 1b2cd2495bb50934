"""
Warehouse logistics coefficients (KTR) from the marketplace box-tariff feed.

The feed lists, per warehouse, the base and per-liter prices for delivery
and storage together with a coefficient expressed in hundredths
(``"195"`` → 1.95).  The delivery coefficient multiplies the base outbound
tariff of a sale shipped from that warehouse.

Usage::

    payload = fetch_box_tariffs(token, date(2025, 10, 1))
    ktr_map = build_ktr_map(parse_box_tariffs(payload))
    sales = apply_ktr(sales, ktr_map)
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping

from .http import ParseError, get_json
from .models import SaleRecord
from .normalize import parse_amount

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://common-api.wildberries.ru"
_BOX_TARIFFS_PATH = "/api/v1/tariffs/box"


# ── Data class ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class WarehouseTariff:
    warehouse_name: str
    geo_name: str | None = None
    delivery_base: float | None = None
    delivery_liter: float | None = None
    delivery_coef: float | None = None
    marketplace_delivery_base: float | None = None
    marketplace_delivery_liter: float | None = None
    marketplace_delivery_coef: float | None = None
    storage_base: float | None = None
    storage_liter: float | None = None
    storage_coef: float | None = None

    def ktr(self, marketplace: bool = False) -> float | None:
        return self.marketplace_delivery_coef if marketplace else self.delivery_coef

    def as_dict(self) -> dict:
        return dataclasses.asdict(self)


def _coef(raw: Any) -> float | None:
    """Coefficient cells are in hundredths; ``"-"`` or blank means not offered."""
    value = parse_amount(raw) if raw != "-" else None
    return value / 100 if value is not None else None


def _price(raw: Any) -> float | None:
    return parse_amount(raw) if raw != "-" else None


# ── Parsing ───────────────────────────────────────────────────────────────────

def parse_box_tariffs(payload: Mapping[str, Any]) -> list[WarehouseTariff]:
    """
    Parse a box-tariff response into :class:`WarehouseTariff` records.

    Accepts the full envelope (``{"response": {"data": {...}}}``) or the
    inner ``data`` object.  Raises ParseError when no warehouse list exists.
    """
    data: Any = payload
    if isinstance(data, Mapping) and "response" in data:
        data = (data.get("response") or {}).get("data")
    if not isinstance(data, Mapping) or not isinstance(data.get("warehouseList"), list):
        raise ParseError("Box tariff payload has no warehouseList")

    tariffs: list[WarehouseTariff] = []
    for item in data["warehouseList"]:
        name = str(item.get("warehouseName") or "").strip()
        if not name:
            continue
        tariffs.append(
            WarehouseTariff(
                warehouse_name=name,
                geo_name=item.get("geoName") or None,
                delivery_base=_price(item.get("boxDeliveryBase")),
                delivery_liter=_price(item.get("boxDeliveryLiter")),
                delivery_coef=_coef(item.get("boxDeliveryCoefExpr")),
                marketplace_delivery_base=_price(item.get("boxDeliveryMarketplaceBase")),
                marketplace_delivery_liter=_price(item.get("boxDeliveryMarketplaceLiter")),
                marketplace_delivery_coef=_coef(item.get("boxDeliveryMarketplaceCoefExpr")),
                storage_base=_price(item.get("boxStorageBase")),
                storage_liter=_price(item.get("boxStorageLiter")),
                storage_coef=_coef(item.get("boxStorageCoefExpr")),
            )
        )
    logger.info(
        "Parsed %d warehouse tariff(s); valid until %s", len(tariffs), data.get("dtTillMax") or "?",
    )
    return tariffs


def build_ktr_map(tariffs: Iterable[WarehouseTariff], marketplace: bool = False) -> dict[str, float]:
    """Map warehouse name → delivery coefficient, skipping warehouses without one."""
    result: dict[str, float] = {}
    for t in tariffs:
        k = t.ktr(marketplace)
        if k is not None and k > 0:
            result[t.warehouse_name] = k
    return result


def lookup_ktr(ktr_map: Mapping[str, float], warehouse_name: str | None) -> float | None:
    """Case-insensitive warehouse lookup; ``None`` when the warehouse is unknown."""
    if not warehouse_name:
        return None
    if warehouse_name in ktr_map:
        return ktr_map[warehouse_name]
    wanted = warehouse_name.strip().lower()
    for name, k in ktr_map.items():
        if name.strip().lower() == wanted:
            return k
    return None


def apply_ktr(sales: Iterable[SaleRecord], ktr_map: Mapping[str, float]) -> list[SaleRecord]:
    """
    Return copies of ``sales`` carrying their warehouse coefficient.

    Only records still at the default coefficient (1.0) are updated, so an
    explicit per-sale KTR always wins.
    """
    out: list[SaleRecord] = []
    missing: set[str] = set()
    for sale in sales:
        if sale.ktr == 1.0 and sale.warehouse_name:
            k = lookup_ktr(ktr_map, sale.warehouse_name)
            if k is not None:
                sale = dataclasses.replace(sale, ktr=k)
            else:
                missing.add(sale.warehouse_name)
        out.append(sale)
    if missing:
        logger.info("No KTR for %d warehouse(s): %s", len(missing), ", ".join(sorted(missing)))
    return out


# ── Fetch ─────────────────────────────────────────────────────────────────────

def fetch_box_tariffs(
    token: str,
    on_date: date | None = None,
    base_url: str = DEFAULT_API_BASE_URL,
) -> dict[str, Any]:
    """
    GET the box-tariff feed for ``on_date`` (default: today).

    Raises:
        NetworkError: the request failed after retries.
        ParseError: the body is not JSON.
    """
    on_date = on_date or date.today()
    url = base_url.rstrip("/") + _BOX_TARIFFS_PATH
    logger.info("Fetching box tariffs for %s from %s", on_date.isoformat(), url)
    payload = get_json(url, token=token, params={"date": on_date.isoformat()})
    if not isinstance(payload, dict):
        raise ParseError(f"Unexpected box tariff response type: {type(payload).__name__}")
    return payload
