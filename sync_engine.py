# ============================================================================
#  sync_engine.py - Batch Sync Orchestration Engine
#  Version: 2.0.0
#  CHANGES: Resumable single-flight runs, bad-range skipping, retry/backoff,
#           per-item outcomes, both sync directions
# ============================================================================
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from batch_ranges import BatchRangeCalculator
from errors import AlreadyRunningError, FatalConfigError, ResolutionError, SyncError, TransientIOError
from models import (BatchResult, Direction, EntityType, ItemError, ItemOutcome, NormalizedProduct, Rejected,
                    SyncRun, SyncStatus, utcnow)
from price_resolver import PriceResolver
from store import StateStore

logger = logging.getLogger(__name__)

MAX_RETRY_DELAY = 30.0
STATUS_ERROR_LIMIT = 20
# A running run with no heartbeat for this long is treated as abandoned
DEFAULT_STALE_AFTER = 3600.0

# entity -> singular used by the client/adapter method names (upsert_product, push_order...)
SINGULAR = {"products": "product", "orders": "order", "customers": "customer"}


class SyncOrchestrator:
    """Drives one bounded batch per call for a single-flight run per entity type.

    Collaborators are injected once: ``erp_client`` (fetch_records,
    fetch_tariff_conditions, push_*), ``platform`` (upsert_*, list_*),
    and one mapper per entity type.
    """

    def __init__(self, store: StateStore, erp_client, platform, calculator: BatchRangeCalculator,
                 mappers: Dict[str, Any], price_resolver: Optional[PriceResolver] = None,
                 max_retries: int = 3, base_delay: float = 1.0, sleep: Callable[[float], None] = time.sleep,
                 stale_after: Optional[float] = DEFAULT_STALE_AFTER):
        self.store = store
        self.erp_client = erp_client
        self.platform = platform
        self.calculator = calculator
        self.mappers = mappers
        self.price_resolver = price_resolver
        self.max_retries = max(1, int(max_retries))
        self.base_delay = base_delay
        self.sleep = sleep
        self.stale_after = stale_after

    # --- run lifecycle ----------------------------------------------------------

    def _is_stale(self, run: SyncRun) -> bool:
        if not self.stale_after:
            return False
        idle = run.seconds_since_heartbeat()
        return idle is not None and idle > self.stale_after

    def _active_run(self, entity: str) -> Optional[SyncRun]:
        """Running run for ``entity``. Abandoned runs are failed on the way."""
        for run in self.store.list_runs(entity):
            if not run.is_active:
                continue
            if self._is_stale(run):
                logger.warning(f"Run {run.id} has had no heartbeat for over {self.stale_after:.0f}s, marking it failed")
                self._finish(run, SyncStatus.FAILED, f"Abandoned: no heartbeat since {run.heartbeat_at or run.started_at}")
                continue
            return run
        return None

    def start(self, entity: str, direction=Direction.VERIAL_TO_WC, filters: Optional[Dict] = None,
              batch_size: Optional[int] = None) -> str:
        """Creates a running SyncRun at offset 0 and returns its id."""
        entity = self.calculator.normalize_entity(entity)
        if self.erp_client is None:
            raise FatalConfigError("No ERP client configured")
        if self.platform is None:
            raise FatalConfigError("No store write adapter configured")
        if entity not in self.mappers or entity not in SINGULAR:
            raise FatalConfigError(f"No mapper configured for entity '{entity}'", context={"entity": entity})
        try:
            direction = Direction(direction)
        except ValueError:
            raise FatalConfigError(f"Unknown sync direction '{direction}'")
        if direction == Direction.WC_TO_VERIAL and not hasattr(self.erp_client, f"push_{SINGULAR[entity]}"):
            raise FatalConfigError(f"The ERP client cannot receive {entity}", context={"entity": entity})

        active = self._active_run(entity)
        if active is not None:
            logger.warning(f"Refusing to start {entity} sync: run {active.id} is still running")
            raise AlreadyRunningError(entity, active.id)

        run = SyncRun(
            entity_type=EntityType(entity),
            direction=direction,
            status=SyncStatus.RUNNING,
            batch_size=self.calculator.batch_size(entity, batch_size),
            filters=dict(filters or {}),
            started_at=utcnow(),
        )
        run.heartbeat_at = run.started_at
        self.store.save_run(run)
        logger.info(f"Started {entity} sync ({direction.value}), run {run.id}, batch size {run.batch_size}")
        return run.id

    def _get_run(self, run_id: str) -> SyncRun:
        run = self.store.get_run(run_id)
        if run is None:
            raise SyncError(f"Unknown sync run '{run_id}'", reason="unknown_run", context={"run_id": run_id})
        return run

    def _finish(self, run: SyncRun, status: SyncStatus, message: str = "") -> SyncRun:
        run.status = status
        run.finished_at = utcnow()
        c = run.counters
        run.message = message or (f"{c.processed} processed, {c.succeeded} succeeded, "
                                  f"{c.errored} errored, {c.skipped} skipped")
        self.store.save_run(run)
        logger.info("=" * 80)
        logger.info(f"Sync run {run.id} ({run.entity_type.value}) finished: {status.value}")
        logger.info(f"  {run.message}")
        if run.skipped_ranges:
            logger.info(f"  Skipped ranges: {run.skipped_ranges}")
        logger.info("=" * 80)
        return run

    def complete(self, run_id: str, success: bool = True) -> SyncRun:
        """Terminal transition; persists the final counters."""
        run = self._get_run(run_id)
        if not run.is_active:
            return run
        return self._finish(run, SyncStatus.COMPLETED if success else SyncStatus.FAILED)

    def cancel(self, run_id: str) -> bool:
        """Flags the run; it moves to cancelled at the next batch boundary."""
        run = self._get_run(run_id)
        if not run.is_active:
            logger.info(f"Run {run_id} is not running ({run.status.value}), nothing to cancel")
            return False
        run.cancel_requested = True
        self.store.save_run(run)
        logger.info(f"Cancellation requested for run {run_id}")
        return True

    # --- retry --------------------------------------------------------------------

    def _with_retry(self, call: Callable[[], Any], label: str) -> Any:
        for attempt in range(1, self.max_retries + 1):
            try:
                return call()
            except TransientIOError as e:
                if attempt == self.max_retries:
                    logger.error(f"{label} failed after {attempt} attempt(s): {e}")
                    raise
                delay = min(self.base_delay * 2 ** (attempt - 1), MAX_RETRY_DELAY)
                logger.warning(f"{label} failed (attempt {attempt}/{self.max_retries}): {e}. Retrying in {delay}s...")
                self.sleep(delay)

    # --- batches ------------------------------------------------------------------

    def _skip_bad_ranges(self, run: SyncRun) -> Tuple[Dict[str, int], List[List[int]]]:
        skipped = []
        while True:
            rng = self.calculator.next_range(run.current_offset, run.batch_size)
            bad = self.calculator.overlapping_bad_range(rng["start"], rng["end"])
            if bad is None:
                return rng, skipped
            skip_to = max(rng["end"], bad[1])
            logger.warning(f"Range {rng['start']}-{rng['end']} overlaps known bad range {bad[0]}-{bad[1]}, "
                           f"skipping to {skip_to + 1}")
            skipped.append([rng["start"], skip_to])
            run.current_offset = skip_to

    def _fetch(self, run: SyncRun, start: int, size: int) -> List:
        entity = run.entity_type.value
        if run.direction == Direction.VERIAL_TO_WC:
            call = lambda: self.erp_client.fetch_records(entity, start - 1, size, run.filters)
            label = f"ERP fetch of {entity} {start}-{start + size - 1}"
        else:
            lister = getattr(self.platform, f"list_{entity}")
            call = lambda: lister(start - 1, size)
            label = f"Store listing of {entity} from offset {start - 1}"
        records = self._with_retry(call, label)
        return records if isinstance(records, list) else []

    def process_next_batch(self, run_id: str) -> BatchResult:
        """Processes exactly one range of the run and persists the outcome."""
        run = self._get_run(run_id)
        if not run.is_active:
            return BatchResult(run_id=run_id, done=True, status=run.status)
        if run.cancel_requested:
            self._finish(run, SyncStatus.CANCELLED, "Cancelled by request")
            return BatchResult(run_id=run_id, done=True, status=SyncStatus.CANCELLED)

        skipped: List[List[int]] = []
        if run.direction == Direction.VERIAL_TO_WC:
            rng, skipped = self._skip_bad_ranges(run)
            run.skipped_ranges.extend(skipped)
        else:
            rng = self.calculator.next_range(run.current_offset, run.batch_size)
        size = self.calculator.effective_size(rng["start"], rng["end"])

        try:
            records = self._fetch(run, rng["start"], size)
        except SyncError as e:
            run.errors.append(ItemError(offset=rng["start"], reason=e.reason, detail=str(e)))
            self._finish(run, SyncStatus.FAILED, f"Fetch failed at {rng['start']}-{rng['end']}: {e}")
            return BatchResult(run_id=run_id, start=rng["start"], end=rng["end"], done=True,
                               skipped_ranges=skipped, status=SyncStatus.FAILED,
                               errors=[run.errors[-1]])

        logger.info(f"Run {run_id}: {len(records)} {run.entity_type.value} in range {rng['start']}-{rng['end']}")
        batch_cache: Dict = {}
        errors: List[ItemError] = []
        succeeded = 0
        for index, record in enumerate(records):
            position = rng["start"] + index
            outcome, error = self._process_item(run, record, position, batch_cache)
            run.counters.processed += 1
            if outcome == "succeeded":
                succeeded += 1
                run.counters.succeeded += 1
            elif outcome == "skipped":
                run.counters.skipped += 1
            else:
                run.counters.errored += 1
                errors.append(error)
        run.errors.extend(errors)

        run.current_offset = rng["end"]
        run.heartbeat_at = utcnow()
        done = len(records) < size
        self.store.save_run(run)
        status = SyncStatus.RUNNING
        if done:
            status = self._finish(run, SyncStatus.COMPLETED).status

        return BatchResult(run_id=run_id, start=rng["start"], end=rng["end"], processed=len(records),
                           succeeded=succeeded, errors=errors, skipped_ranges=skipped, done=done, status=status)

    # --- items --------------------------------------------------------------------

    def _process_item(self, run: SyncRun, record: Any, position: Optional[int],
                      batch_cache: Dict) -> Tuple[str, Optional[ItemError]]:
        entity = run.entity_type.value
        item_id = None
        if isinstance(record, dict):
            item_id = record.get("Id", record.get("ID", record.get("id")))
            item_id = str(item_id) if item_id is not None else None
        try:
            if run.direction == Direction.VERIAL_TO_WC:
                return self._import_item(run, record, batch_cache, item_id, position)
            return self._export_item(run, record, item_id, position)
        except SyncError as e:
            logger.error(f"{entity} item {item_id} at {position} failed: {e}")
            return "errored", ItemError(item_id=item_id, offset=position, reason=e.reason, detail=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error on {entity} item {item_id} at {position}")
            return "errored", ItemError(item_id=item_id, offset=position, reason="unexpected_error", detail=str(e))

    def _import_item(self, run: SyncRun, record: Any, batch_cache: Dict, item_id, position: int):
        entity = run.entity_type.value
        mapper = self.mappers[entity]
        if entity == "products":
            if isinstance(record, dict) and not mapper.matches_filters(record, run.filters):
                logger.debug(f"Product {item_id} does not match filters {run.filters}, skipped")
                return "skipped", None
            mapped = mapper.to_normalized(record, batch_cache=batch_cache)
        else:
            mapped = mapper.to_normalized(record)

        if isinstance(mapped, Rejected):
            return "errored", ItemError(item_id=mapped.external_id or item_id, offset=position,
                                        reason=mapped.reason, detail=mapped.detail)

        if isinstance(mapped, NormalizedProduct):
            mapped = self._apply_tariff(mapped)

        upsert = getattr(self.platform, f"upsert_{SINGULAR[entity]}")
        result = self._with_retry(lambda: upsert(mapped), f"Store write of {entity} {item_id}")
        if not result.ok:
            return "errored", ItemError(item_id=item_id, offset=position, reason="write_failed",
                                        detail=result.error or "No id returned by the store")
        return "succeeded", None

    def _export_item(self, run: SyncRun, record: Any, item_id, position: int):
        entity = run.entity_type.value
        external = self.mappers[entity].to_external(record)
        if not external:
            return "errored", ItemError(item_id=item_id, offset=position, reason="unmappable",
                                        detail=f"Store {SINGULAR[entity]} could not be mapped to the ERP")
        push = getattr(self.erp_client, f"push_{SINGULAR[entity]}")
        self._with_retry(lambda: push(external), f"ERP push of {entity} {item_id}")
        return "succeeded", None

    # --- tariff prices ------------------------------------------------------------

    def _resolve_price(self, product: NormalizedProduct):
        try:
            payload = self._with_retry(lambda: self.erp_client.fetch_tariff_conditions(product.external_id, 0),
                                       f"Tariff lookup for {product.sku}")
        except SyncError as e:
            raise ResolutionError(f"Tariff lookup failed for {product.sku}: {e}",
                                  context={"sku": product.sku}) from e
        return self.price_resolver.resolve(payload)

    def _apply_tariff(self, product: NormalizedProduct) -> NormalizedProduct:
        if self.price_resolver is None or not product.external_id:
            return product
        try:
            resolution = self._resolve_price(product)
        except ResolutionError as e:
            logger.warning(f"{e}. Keeping record price {product.price}")
            return product
        if not resolution.found:
            return product
        sale_price = resolution.effective_price if resolution.effective_price < resolution.base_price else None
        return product.model_copy(update={"price": resolution.base_price, "sale_price": sale_price})

    # --- single product -------------------------------------------------------------

    def sync_single_product(self, sku_or_id) -> ItemOutcome:
        """Re-syncs one ERP article, looked up by barcode/SKU or ERP id, outside any run."""
        if self.erp_client is None or not hasattr(self.erp_client, "fetch_product"):
            raise FatalConfigError("The ERP client cannot look up single products")
        if self.platform is None:
            raise FatalConfigError("No store write adapter configured")
        if "products" not in self.mappers:
            raise FatalConfigError("No mapper configured for entity 'products'", context={"entity": "products"})

        key = str(sku_or_id or "").strip()
        if not key:
            return ItemOutcome(outcome="errored", error=ItemError(reason="missing_sku", detail="No SKU or id given"))
        try:
            record = self._with_retry(lambda: self.erp_client.fetch_product(key), f"ERP lookup of product {key}")
        except SyncError as e:
            return ItemOutcome(item_id=key, outcome="errored",
                               error=ItemError(item_id=key, reason=e.reason, detail=str(e)))
        if not record:
            logger.warning(f"Product {key} not found in the ERP")
            return ItemOutcome(item_id=key, outcome="errored",
                               error=ItemError(item_id=key, reason="not_found", detail=f"No ERP article matches '{key}'"))

        run = SyncRun(entity_type=EntityType.PRODUCTS)
        outcome, error = self._process_item(run, record, None, {})
        item_id = error.item_id if error and error.item_id else str(record.get("Id", key))
        if outcome == "succeeded":
            logger.info(f"Product {key} synced")
        return ItemOutcome(item_id=item_id, outcome=outcome, error=error)

    # --- status -------------------------------------------------------------------

    @staticmethod
    def snapshot(run: SyncRun) -> Dict:
        data = run.model_dump(mode="json", exclude={"errors"})
        data["error_count"] = len(run.errors)
        data["errors"] = [e.model_dump(mode="json") for e in run.errors[:STATUS_ERROR_LIMIT]]
        return data

    def get_status(self, entity: str) -> Dict:
        """Snapshot of the running run for ``entity``, or of its most recent one."""
        entity = self.calculator.normalize_entity(entity)
        runs = self.store.list_runs(entity)
        if not runs:
            return {"entity_type": entity, "status": SyncStatus.IDLE.value}
        active = [r for r in runs if r.is_active]
        latest = active[0] if active else max(runs, key=lambda r: r.started_at or r.finished_at or utcnow())
        return self.snapshot(latest)

    def resume_sync(self, entity: str) -> Optional[str]:
        """Returns the id of a run left running (e.g. before a restart), if any."""
        run = self._active_run(self.calculator.normalize_entity(entity))
        if run is None:
            return None
        logger.info(f"Resuming {run.entity_type.value} run {run.id} at offset {run.current_offset}")
        return run.id

    def get_sync_history(self, limit: int = 10) -> List[Dict]:
        finished = [r for r in self.store.list_runs() if r.finished_at is not None]
        finished.sort(key=lambda r: r.finished_at, reverse=True)
        return [self.snapshot(r) for r in finished[:limit]]

    # Procedural API used by the CLI and schedulers
    start_sync = start
    get_sync_status = get_status
    cancel_sync = cancel
# ============================================================================
# End of sync_engine.py - Version: 2.0.0
# ============================================================================
