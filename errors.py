# ============================================================================
#  errors.py - Sync Error Taxonomy
#  Version: 1.0.0
# ============================================================================
from typing import Dict, Optional


class SyncError(Exception):
    """Base error for the sync engine. Carries a short reason code."""
    reason = "sync_error"

    def __init__(self, message: str, reason: Optional[str] = None, context: Optional[Dict] = None):
        super().__init__(message)
        if reason:
            self.reason = reason
        self.context = context or {}


class ValidationError(SyncError):
    """Malformed or missing required field. Record-level, never fatal to a batch."""
    reason = "validation_error"


class ResolutionError(SyncError):
    """Category or price lookup failed. Callers degrade to a fallback value."""
    reason = "resolution_error"


class TransientIOError(SyncError):
    """ERP or platform call failed in a way that may succeed on retry."""
    reason = "transient_io"


class FatalConfigError(SyncError):
    """Required configuration is missing. Aborts the run before it starts."""
    reason = "fatal_config"


class AlreadyRunningError(SyncError):
    reason = "already_running"

    def __init__(self, entity: str, run_id: str):
        super().__init__(f"A sync for '{entity}' is already running (run {run_id})",
                         context={"entity": entity, "run_id": run_id})
        self.entity = entity
        self.run_id = run_id
# ============================================================================
# End of errors.py - Version: 1.0.0
# ============================================================================
