# ============================================================================
#  category_resolver.py - ERP Category -> Store Term Resolver
#  Version: 1.0.0
# ============================================================================
import logging
from typing import Dict, Iterable, List, Optional, Tuple
from errors import SyncError
from store import StateStore

logger = logging.getLogger(__name__)


class CategoryResolver:
    def __init__(self, store: StateStore, platform):
        """``platform`` needs ``find_category_by_name`` and ``create_category``."""
        self.store = store
        self.platform = platform

    @staticmethod
    def _cache_key(external_id, name: str) -> Optional[str]:
        if external_id not in (None, "", 0, "0"):
            return str(external_id)
        if name:
            return f"name:{name.lower()}"
        return None

    def resolve(self, external_id, external_name: str = "", batch_cache: Optional[Dict] = None) -> Optional[int]:
        """Returns the local term id for an ERP category, creating the term if needed.

        Lookup order: batch cache, persistent index, existing term with the same
        name, new term. Returns None when nothing usable was supplied or the
        term could not be created.
        """
        if batch_cache is None:
            batch_cache = {}
        name = (external_name or "").strip()
        key = self._cache_key(external_id, name)
        if key is None:
            return None

        if key in batch_cache:
            return batch_cache[key]

        has_id = not key.startswith("name:")
        if has_id:
            term_id = self.store.get_category(key)
            if term_id is not None:
                batch_cache[key] = term_id
                return term_id

        if not name:
            logger.warning(f"No mapping for ERP category {key} and no name to create it from")
            return None

        try:
            term_id = self.platform.find_category_by_name(name)
            if term_id is None:
                term_id = self.platform.create_category(name)
                logger.info(f"Created store category '{name}' (ID: {term_id}) for ERP category {key}")
        except SyncError as e:
            logger.error(f"Could not create store category '{name}' for ERP category {key}: {e}")
            return None

        if term_id is None:
            return None
        if has_id:
            self.store.save_category(key, term_id, name)
        batch_cache[key] = term_id
        return term_id

    def resolve_many(self, slots: Iterable[Tuple[object, str]], batch_cache: Optional[Dict] = None) -> List[int]:
        """Resolves every populated (id, name) slot, deduplicating the result in order."""
        if batch_cache is None:
            batch_cache = {}
        resolved = []
        for external_id, name in slots:
            term_id = self.resolve(external_id, name, batch_cache)
            if term_id is not None and term_id not in resolved:
                resolved.append(term_id)
        return resolved
# ============================================================================
# End of category_resolver.py - Version: 1.0.0
# ============================================================================
