# ============================================================================
#  batch_ranges.py - ERP Paging Ranges and Batch Sizes
#  Version: 1.0.0
# ============================================================================
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZES = {"products": 20, "customers": 50, "orders": 50, "prices": 20}
BATCH_SIZE_LIMITS = {"products": (1, 200), "customers": (1, 200), "orders": (1, 100), "prices": (1, 500)}
ENTITY_ALIASES = {"productos": "products", "clientes": "customers", "pedidos": "orders", "precios": "prices"}


class BatchRangeCalculator:
    """Computes 1-based inclusive ERP paging ranges.

    The ERP pages with ``inicio``/``fin`` (both inclusive, first record is 1),
    so an offset of 0 and a size of 20 asks for records 1..20.
    """

    def __init__(self, bad_ranges: Iterable[Sequence[int]] = (), batch_sizes: Optional[Dict[str, int]] = None):
        self.bad_ranges: List[Tuple[int, int]] = sorted((int(r[0]), int(r[1])) for r in bad_ranges)
        self.configured_sizes = dict(batch_sizes or {})

    @staticmethod
    def normalize_entity(entity: str) -> str:
        key = str(entity or "").strip().lower()
        return ENTITY_ALIASES.get(key, key)

    def batch_size(self, entity: str, override: Optional[int] = None) -> int:
        """Per-entity batch size, clamped to the entity's [min, max]."""
        entity = self.normalize_entity(entity)
        size = override if override is not None else self.configured_sizes.get(entity, DEFAULT_BATCH_SIZES.get(entity, 20))
        low, high = BATCH_SIZE_LIMITS.get(entity, (1, 200))
        size = int(size)
        clamped = max(low, min(high, size))
        if clamped != size:
            logger.warning(f"Batch size {size} for {entity} out of range [{low}, {high}], using {clamped}")
        return clamped

    @staticmethod
    def next_range(start_index: int, batch_size: int) -> Dict[str, int]:
        start = int(start_index) + 1
        return {"start": start, "end": start + int(batch_size) - 1}

    @staticmethod
    def effective_size(start: int, end: int) -> int:
        return end - start + 1

    def overlapping_bad_range(self, start: int, end: int) -> Optional[Tuple[int, int]]:
        """Returns the first known-bad range touching [start, end], if any."""
        for bad_start, bad_end in self.bad_ranges:
            if start <= bad_end and bad_start <= end:
                return bad_start, bad_end
        return None

    @staticmethod
    def chunk(items: Sequence, size: int) -> List[List]:
        size = max(1, int(size))
        return [list(items[i:i + size]) for i in range(0, len(items), size)]
# ============================================================================
# End of batch_ranges.py - Version: 1.0.0
# ============================================================================
