# ============================================================================
#  store.py - Persistent Sync State (category index + sync runs)
#  Version: 1.1.0
#  CHANGES: Re-reads the file before every read and merges before every write
#           so a CLI process sees cancels and runs written by another one
# ============================================================================
import json
import logging
import os
from typing import Dict, List, Optional
from pydantic import ValidationError
from models import SyncRun

logger = logging.getLogger(__name__)


class StateStore:
    """Durable key/value state backed by a single JSON file.

    Holds the external-category -> local-term index and every SyncRun.
    Several processes may share the file (a draining ``run`` and a
    ``cancel`` from another shell), so every read reloads it and every
    write merges into what is on disk. With ``path=None`` nothing touches
    the disk.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._categories: Dict[str, Dict] = {}
        self._runs: Dict[str, Dict] = {}
        self._load()
        if self.path and os.path.exists(self.path):
            logger.info(f"Loaded state: {len(self._categories)} category mapping(s), {len(self._runs)} run(s)")

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read state file {self.path}: {e}")
            raise
        self._categories = data.get("categories", {})
        self._runs = data.get("runs", {})

    def _flush(self):
        if not self.path:
            return
        tmp_path = f"{self.path}.{os.getpid()}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"categories": self._categories, "runs": self._runs}, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    # --- category index --------------------------------------------------------

    def get_category(self, external_id) -> Optional[int]:
        self._load()
        entry = self._categories.get(str(external_id))
        return int(entry["term_id"]) if entry else None

    def save_category(self, external_id, term_id: int, name: str = ""):
        self._load()
        self._categories[str(external_id)] = {"term_id": int(term_id), "name": name}
        self._flush()

    def category_mappings(self) -> Dict[str, int]:
        self._load()
        return {ext_id: int(entry["term_id"]) for ext_id, entry in self._categories.items()}

    # --- sync runs ---------------------------------------------------------------

    def save_run(self, run: SyncRun):
        """Writes ``run``; a cancel already recorded on disk is never cleared."""
        self._load()
        data = run.model_dump(mode="json")
        stored = self._runs.get(run.id) or {}
        if stored.get("cancel_requested") and not data["cancel_requested"]:
            logger.info(f"Run {run.id} was cancelled by another process, keeping the request")
            data["cancel_requested"] = True
            run.cancel_requested = True
        self._runs[run.id] = data
        self._flush()

    def get_run(self, run_id: str) -> Optional[SyncRun]:
        self._load()
        data = self._runs.get(run_id)
        if data is None:
            return None
        try:
            return SyncRun.model_validate(data)
        except ValidationError as e:
            logger.error(f"Corrupt run record {run_id}: {e}")
            return None

    def list_runs(self, entity: Optional[str] = None) -> List[SyncRun]:
        self._load()
        runs = []
        for run_id in list(self._runs):
            run = self.get_run(run_id)
            if run and (entity is None or run.entity_type.value == entity):
                runs.append(run)
        return runs
# ============================================================================
# End of store.py - Version: 1.1.0
# ============================================================================
