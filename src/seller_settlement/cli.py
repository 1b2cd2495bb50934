"""Command-line entry point for Seller Settlement."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = "config.yaml"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="seller-settlement",
        description="Reconstruct marketplace fees, seller costs and profit for sales.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── calc ───────────────────────────────────────────────────────────────
    calc_cmd = sub.add_parser("calc", help="Itemised settlement of a single sale.")
    calc_cmd.add_argument("--price", type=float, required=True, help="Seller's discounted price.")
    calc_cmd.add_argument("--customer-price", type=float, default=None, help="Price paid by the buyer.")
    calc_cmd.add_argument("--channel", default="FBW", help="FBO, FBW, FBS, DBS, CC or EDBS (default: FBW).")
    calc_cmd.add_argument("--category", default="Uncategorized")
    size = calc_cmd.add_mutually_exclusive_group()
    size.add_argument("--volume", type=float, default=None, help="Volume in liters.")
    size.add_argument("--dims", default=None, metavar="LxWxH", help="Dimensions in cm, e.g. 20x15x10.")
    calc_cmd.add_argument("--ktr", type=float, default=1.0, help="Warehouse logistics coefficient.")
    calc_cmd.add_argument("--return-rate", type=float, default=None, help="Returned units, percent.")
    calc_cmd.add_argument("--returned", action="store_true", help="Sale was returned (legacy flag).")
    calc_cmd.add_argument("--cost-price", type=float, default=None)
    calc_cmd.add_argument(
        "--commission", type=float, default=None,
        help="Commission rate in percent (default: configured default schedule).",
    )
    calc_cmd.add_argument("--config", default=None, help=f"Path to config (default: {_DEFAULT_CONFIG} if present)")
    calc_cmd.add_argument("--json", dest="output_json", action="store_true", help="Print JSON only.")

    # ── batch ──────────────────────────────────────────────────────────────
    batch_cmd = sub.add_parser("batch", help="Settle a sales table and write aggregate reports.")
    batch_cmd.add_argument("--sales", default=None, help="Sales CSV export.")
    batch_cmd.add_argument("--commissions", default=None, help="Category commission CSV.")
    batch_cmd.add_argument("--tariffs", default=None, help="Saved box-tariff JSON for warehouse KTR.")
    batch_cmd.add_argument("--workers", type=int, default=1, help="Parallel shards (default: 1).")
    batch_cmd.add_argument("--reports-dir", default=None, help="Override configured reports directory.")
    batch_cmd.add_argument(
        "--sample", action="store_true", help="Use the bundled sample_data/ tables instead of --sales.",
    )
    batch_cmd.add_argument("--config", default=None, help=f"Path to config (default: {_DEFAULT_CONFIG} if present)")

    # ── warehouses ─────────────────────────────────────────────────────────
    wh_cmd = sub.add_parser("warehouses", help="Fetch warehouse logistics coefficients (KTR).")
    wh_cmd.add_argument("--token-env", default="WB_API_TOKEN", help="Env var holding the API token.")
    wh_cmd.add_argument("--date", default=None, help="Tariff date YYYY-MM-DD (default: today).")
    wh_cmd.add_argument("--marketplace", action="store_true", help="Use marketplace (FBS) coefficients.")
    wh_cmd.add_argument("--config", default=None, help=f"Path to config (default: {_DEFAULT_CONFIG} if present)")
    wh_cmd.add_argument("--json", dest="output_json", action="store_true", help="Print JSON only.")

    return parser


def _load_config(path: str | None):
    from .config import AppConfig, ConfigError, load_config

    if path is None and not Path(_DEFAULT_CONFIG).exists():
        return AppConfig()
    try:
        return load_config(path or _DEFAULT_CONFIG)
    except ConfigError as exc:
        print(f"[ERROR] Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)


def _parse_dims(raw: str) -> tuple[float, float, float]:
    parts = raw.lower().replace("×", "x").split("x")
    if len(parts) != 3:
        raise ValueError(f"expected LxWxH, got {raw!r}")
    length, width, height = (float(p) for p in parts)
    return length, width, height


# ---------------------------------------------------------------------------
# Sub-command implementations
# ---------------------------------------------------------------------------

def _cmd_calc(args: argparse.Namespace) -> None:
    """Settle one sale described on the command line."""
    from .models import CategoryCommissionSchedule, SaleRecord
    from .report import settlement_table
    from .settlement import InvalidSaleError, compose_settlement

    cfg = _load_config(args.config)

    dims: tuple[float | None, float | None, float | None] = (None, None, None)
    if args.dims:
        try:
            dims = _parse_dims(args.dims)
        except ValueError as exc:
            print(f"[ERROR] Invalid --dims: {exc}", file=sys.stderr)
            sys.exit(2)

    schedule = cfg.default_commissions.to_schedule()
    if args.commission is not None:
        c = args.commission
        schedule = CategoryCommissionSchedule(fbw=c, fbs=c, dbs=c, cc=c, edbs=c)

    sale = SaleRecord(
        product_id="cli",
        vendor_code="",
        category=args.category,
        price_with_discount=args.price,
        original_price=args.price,
        price_with_marketplace_discount=args.customer_price,
        channel=args.channel,
        ktr=args.ktr,
        length_cm=dims[0],
        width_cm=dims[1],
        height_cm=dims[2],
        volume_liters=args.volume,
        is_returned=args.returned,
        return_rate=args.return_rate,
        cost_price=args.cost_price,
    )

    try:
        result = compose_settlement(sale, schedule, cfg.calculator.to_options())
    except InvalidSaleError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        sys.exit(2)

    if args.output_json:
        print(json.dumps(result.as_dict(), indent=2, ensure_ascii=False))
        return

    sep = "-" * 56
    volume = f"{result.volume_liters:.3f} L" if result.volume_liters is not None else "unknown"
    print(sep)
    print(f"  Settlement  •  {result.channel.value}  •  {result.category}  •  volume {volume}")
    print(sep)
    for label, amount, percent in settlement_table(result):
        pct = f"{percent:7.2f}%" if percent is not None else ""
        print(f"  {label:<30}{amount:>14.2f}  {pct}")
    print(sep)


def _cmd_batch(args: argparse.Namespace) -> None:
    """Settle a sales table, aggregate, and write reports."""
    import pandas as pd

    from .aggregate import settle_sales
    from .http import ParseError
    from .normalize import sales_from_dataframe, schedules_from_dataframe
    from .report import write_reports
    from .settlement import InvalidSaleError
    from .warehouses import apply_ktr, build_ktr_map, parse_box_tariffs

    cfg = _load_config(args.config)
    default_schedule = cfg.default_commissions.to_schedule()
    options = cfg.calculator.to_options()

    sales_path = Path(args.sales) if args.sales else None
    commissions_path = Path(args.commissions) if args.commissions else None
    if args.sample:
        sample_dir = Path(__file__).parents[2] / "sample_data"
        sales_path = sample_dir / "sales_sample.csv"
        commissions_path = commissions_path or sample_dir / "commissions_sample.csv"
    if sales_path is None:
        print("[ERROR] batch requires --sales or --sample.", file=sys.stderr)
        sys.exit(2)

    try:
        sales = sales_from_dataframe(pd.read_csv(sales_path, dtype=str))
        schedules = (
            schedules_from_dataframe(pd.read_csv(commissions_path, dtype=str), default_schedule)
            if commissions_path else {}
        )
    except (OSError, pd.errors.ParserError) as exc:
        print(f"[ERROR] Cannot read input table: {exc}", file=sys.stderr)
        sys.exit(2)

    if not sales:
        print(f"No sales found in {sales_path}", file=sys.stderr)
        sys.exit(1)

    if args.tariffs:
        try:
            payload = json.loads(Path(args.tariffs).read_text(encoding="utf-8"))
            ktr_map = build_ktr_map(parse_box_tariffs(payload), cfg.marketplace.use_marketplace_ktr)
        except (OSError, ValueError, ParseError) as exc:
            print(f"[ERROR] Cannot read --tariffs: {exc}", file=sys.stderr)
            sys.exit(2)
        sales = apply_ktr(sales, ktr_map)

    try:
        report, results = settle_sales(
            sales, schedules, options, default_schedule=default_schedule, workers=max(args.workers, 1),
        )
    except InvalidSaleError as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        _, _, summary = write_reports(
            report,
            reports_dir=args.reports_dir or cfg.storage.reports_dir,
            source=str(sales_path),
            timezone_str=cfg.runtime.timezone,
            results=results,
        )
    except OSError as exc:
        print(f"[ERROR] Report generation failed: {exc}", file=sys.stderr)
        sys.exit(4)

    print(summary)


def _cmd_warehouses(args: argparse.Namespace) -> None:
    """Fetch and print warehouse coefficients."""
    from .http import NetworkError, ParseError
    from .warehouses import fetch_box_tariffs, parse_box_tariffs

    cfg = _load_config(args.config)
    token = os.environ.get(args.token_env) or cfg.marketplace.api_token
    if not token:
        print(f"[ERROR] No API token: set {args.token_env} or marketplace.api_token.", file=sys.stderr)
        sys.exit(2)

    try:
        on_date = date.fromisoformat(args.date) if args.date else None
    except ValueError:
        print(f"[ERROR] Invalid --date: {args.date!r}", file=sys.stderr)
        sys.exit(2)

    try:
        tariffs = parse_box_tariffs(fetch_box_tariffs(token, on_date, cfg.marketplace.api_base_url))
    except (NetworkError, ParseError) as exc:
        print(f"[ERROR] Tariff fetch failed: {exc}", file=sys.stderr)
        sys.exit(3)

    if not tariffs:
        print("No warehouses in tariff response.", file=sys.stderr)
        sys.exit(1)

    if args.output_json:
        print(json.dumps([t.as_dict() for t in tariffs], indent=2, ensure_ascii=False))
        return

    sep = "-" * 56
    print(sep)
    for t in sorted(tariffs, key=lambda t: t.warehouse_name):
        k = t.ktr(args.marketplace)
        print(f"  {t.warehouse_name:<36}KTR {k:.2f}" if k is not None else f"  {t.warehouse_name:<36}KTR -")
    print(sep)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    parser = _build_parser()
    args = parser.parse_args(argv)

    handlers = {"calc": _cmd_calc, "batch": _cmd_batch, "warehouses": _cmd_warehouses}
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(0)

    try:
        handler(args)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected failure in %s", args.command)
        print(f"[ERROR] Unexpected error: {exc}", file=sys.stderr)
        sys.exit(4)

    sys.exit(0)


if __name__ == "__main__":
    main()
