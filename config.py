# ============================================================================
#  config.py - Environment Configuration
#  Version: 1.0.0
# ============================================================================
import os
import logging
from typing import Dict, List, Optional, Tuple
from dotenv import load_dotenv
from pydantic import BaseModel, Field
from errors import FatalConfigError

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "VERIAL_API_URL",
    "VERIAL_SESSION",
    "WC_BASE_URL",
    "WC_CONSUMER_KEY",
    "WC_CONSUMER_SECRET",
]

DEFAULT_SKU_FIELDS = "ReferenciaBarras,Id,CodigoArticulo"


class Settings(BaseModel):
    verial_api_url: str
    verial_session: str
    wc_base_url: str
    wc_consumer_key: str
    wc_consumer_secret: str
    state_file: str = "verial_sync_state.json"
    sku_fields: List[str] = Field(default_factory=lambda: DEFAULT_SKU_FIELDS.split(","))
    batch_sizes: Dict[str, int] = Field(default_factory=dict)
    bad_ranges: List[Tuple[int, int]] = Field(default_factory=list)
    max_retries: int = 3
    retry_base_delay: float = 1.0
    timeout: float = 30.0
    run_timeout: float = 3600.0
    default_category_id: int = 15
    log_level: str = "INFO"


def parse_bad_ranges(raw: Optional[str]) -> List[Tuple[int, int]]:
    """Parses '3201-3210,4801-4810' into [(3201, 3210), (4801, 4810)]."""
    ranges = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            start, end = (int(part) for part in chunk.split("-", 1))
        except ValueError:
            raise FatalConfigError(f"Invalid bad range '{chunk}' in VERIAL_SYNC_BAD_RANGES")
        if start > end:
            start, end = end, start
        ranges.append((start, end))
    return ranges


def load_settings(env_file: Optional[str] = ".env") -> Settings:
    """Loads settings from the environment, optionally seeded from a .env file."""
    if env_file:
        load_dotenv(env_file, override=False)

    required = {var: (os.getenv(var) or "").strip() for var in REQUIRED_VARS}
    missing = [var for var, value in required.items() if not value]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        raise FatalConfigError(f"Missing required environment variables: {', '.join(missing)}",
                               context={"missing": missing})

    batch_sizes = {}
    for entity in ("products", "orders", "customers", "prices"):
        raw = os.getenv(f"VERIAL_SYNC_BATCH_SIZE_{entity.upper()}")
        if raw:
            try:
                batch_sizes[entity] = int(raw)
            except ValueError:
                logger.warning(f"Ignoring non-numeric batch size for {entity}: {raw!r}")

    sku_fields = [f.strip() for f in os.getenv("VERIAL_SYNC_SKU_FIELDS", DEFAULT_SKU_FIELDS).split(",") if f.strip()]

    settings = Settings(
        verial_api_url=required["VERIAL_API_URL"].rstrip("/"),
        # Quotes are a common .env leftover
        verial_session=required["VERIAL_SESSION"].strip('"\'').strip(),
        wc_base_url=required["WC_BASE_URL"].rstrip("/"),
        wc_consumer_key=required["WC_CONSUMER_KEY"].strip('"\'').strip(),
        wc_consumer_secret=required["WC_CONSUMER_SECRET"].strip('"\'').strip(),
        state_file=os.getenv("VERIAL_SYNC_STATE_FILE", "verial_sync_state.json"),
        sku_fields=sku_fields,
        batch_sizes=batch_sizes,
        bad_ranges=parse_bad_ranges(os.getenv("VERIAL_SYNC_BAD_RANGES")),
        max_retries=int(os.getenv("VERIAL_SYNC_MAX_RETRIES", 3)),
        retry_base_delay=float(os.getenv("VERIAL_SYNC_RETRY_BASE_DELAY", 1)),
        timeout=float(os.getenv("VERIAL_SYNC_TIMEOUT", 30)),
        run_timeout=float(os.getenv("VERIAL_SYNC_RUN_TIMEOUT", 3600)),
        default_category_id=int(os.getenv("WC_DEFAULT_CATEGORY_ID", 15)),
        log_level=os.getenv("VERIAL_SYNC_LOG_LEVEL", "INFO").upper(),
    )

    logger.info("=" * 80)
    logger.info("Configuration Summary:")
    logger.info(f"  VERIAL_API_URL: {settings.verial_api_url}")
    logger.info(f"  VERIAL_SESSION: {'*' * min(len(settings.verial_session), 20)}... (hidden)")
    logger.info(f"  WC_BASE_URL: {settings.wc_base_url}")
    logger.info(f"  WC_CONSUMER_KEY: {'*' * min(len(settings.wc_consumer_key), 20)}... (hidden)")
    logger.info(f"  State file: {settings.state_file}")
    logger.info(f"  Bad ranges: {settings.bad_ranges or 'none'}")
    logger.info("=" * 80)
    return settings
# ============================================================================
# End of config.py - Version: 1.0.0
# ============================================================================
