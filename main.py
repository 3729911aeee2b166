# ============================================================================
#  main.py - Sync Entry Point
#  Version: 2.0.0
#  CHANGES: Verial -> WooCommerce commands (start/run/status/cancel/history/sync-product)
# ============================================================================
import os
import sys
import json
import argparse
import logging
from dotenv import load_dotenv
from batch_ranges import BatchRangeCalculator
from category_resolver import CategoryResolver
from config import Settings, load_settings
from customer_mapper import CustomerMapper
from errors import AlreadyRunningError, FatalConfigError, SyncError
from order_mapper import OrderMapper
from price_resolver import PriceResolver
from product_mapper import ProductMapper
from sanitizer import FieldSanitizer
from store import StateStore
from sync_engine import SyncOrchestrator
from verial_client import VerialClient
from woocommerce_client import WooCommerceClient

logger = logging.getLogger(__name__)


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    """Wires every service once; nothing below keeps global state."""
    store = StateStore(settings.state_file)
    erp = VerialClient(settings.verial_api_url, settings.verial_session, timeout=settings.timeout)
    woo = WooCommerceClient(settings.wc_base_url, settings.wc_consumer_key, settings.wc_consumer_secret,
                            timeout=settings.timeout)
    sanitizer = FieldSanitizer()
    categories = CategoryResolver(store, woo)
    mappers = {
        "products": ProductMapper(sanitizer, categories, sku_fields=settings.sku_fields,
                                  default_category_id=settings.default_category_id),
        "orders": OrderMapper(sanitizer),
        "customers": CustomerMapper(sanitizer),
    }
    return SyncOrchestrator(
        store=store,
        erp_client=erp,
        platform=woo,
        calculator=BatchRangeCalculator(settings.bad_ranges, settings.batch_sizes),
        mappers=mappers,
        price_resolver=PriceResolver(),
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay,
        stale_after=settings.run_timeout,
    )


def _filters_from_args(args) -> dict:
    filters = {}
    for key in ("category", "manufacturer", "price_min", "price_max", "since"):
        value = getattr(args, key, None)
        if value is not None:
            filters[key] = value
    return filters


def _drain(engine: SyncOrchestrator, run_id: str, max_batches: int = 0):
    """Processes batches until the run ends or ``max_batches`` is reached (0 = no limit)."""
    batches = 0
    while True:
        result = engine.process_next_batch(run_id)
        batches += 1
        logger.info(f"Batch {batches}: {result.start}-{result.end} processed={result.processed} "
                    f"succeeded={result.succeeded} errors={len(result.errors)} status={result.status.value}")
        if result.done or (max_batches and batches >= max_batches):
            return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verial ERP <-> WooCommerce Sync")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start a sync run")
    start.add_argument("entity", help="products, orders or customers (productos/pedidos/clientes)")
    start.add_argument("--direction", default="verial_to_wc", choices=["verial_to_wc", "wc_to_verial"])
    start.add_argument("--batch-size", type=int, help="Override the configured batch size")
    start.add_argument("--category", type=int, help="Only products in this ERP category")
    start.add_argument("--manufacturer", type=int, help="Only products of this ERP manufacturer")
    start.add_argument("--price-min", type=float, help="Minimum product price")
    start.add_argument("--price-max", type=float, help="Maximum product price")
    start.add_argument("--since", help="Only records modified since 'YYYY-MM-DD[ HH:MM:SS]'")
    start.add_argument("--run", action="store_true", help="Process batches until the run ends")

    run = sub.add_parser("run", help="Process batches of the running (or resumed) run")
    run.add_argument("entity")
    run.add_argument("--max-batches", type=int, default=1, help="0 processes until done (default: 1)")

    status = sub.add_parser("status", help="Show the status of the latest run")
    status.add_argument("entity")

    cancel = sub.add_parser("cancel", help="Cancel the running run at the next batch boundary")
    cancel.add_argument("entity")

    history = sub.add_parser("history", help="List finished runs")
    history.add_argument("--limit", type=int, default=10)

    single = sub.add_parser("sync-product", help="Re-sync one product by barcode/SKU or ERP id")
    single.add_argument("sku", help="ReferenciaBarras or ERP article id")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv(args.env_file, override=False)
    logging.basicConfig(
        level=os.getenv("VERIAL_SYNC_LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        settings = load_settings(env_file=None)
        engine = build_orchestrator(settings)

        if args.command == "start":
            run_id = engine.start_sync(args.entity, args.direction, _filters_from_args(args), args.batch_size)
            print(run_id)
            if args.run:
                _drain(engine, run_id)
        elif args.command == "run":
            run_id = engine.resume_sync(args.entity)
            if run_id is None:
                logger.warning(f"No running {args.entity} sync to process")
                return 1
            _drain(engine, run_id, args.max_batches)
        elif args.command == "status":
            print(json.dumps(engine.get_sync_status(args.entity), indent=2, ensure_ascii=False))
        elif args.command == "cancel":
            run_id = engine.resume_sync(args.entity)
            if run_id is None or not engine.cancel_sync(run_id):
                logger.warning(f"No running {args.entity} sync to cancel")
                return 1
        elif args.command == "history":
            print(json.dumps(engine.get_sync_history(args.limit), indent=2, ensure_ascii=False))
        elif args.command == "sync-product":
            outcome = engine.sync_single_product(args.sku)
            print(json.dumps(outcome.model_dump(mode="json"), indent=2, ensure_ascii=False))
            if not outcome.ok:
                return 1
    except AlreadyRunningError as e:
        logger.error(f"{e}. Use 'run {e.entity}' to continue it or 'cancel {e.entity}' to stop it")
        return 2
    except FatalConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 3
    except SyncError as e:
        logger.error(f"Sync error ({e.reason}): {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
# ============================================================================
# End of main.py - Version: 2.0.0
# ============================================================================
