# ============================================================================
#  models.py - Pydantic Data Models
#  Version: 2.0.0
# ============================================================================
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, computed_field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityType(str, Enum):
    PRODUCTS = "products"
    ORDERS = "orders"
    CUSTOMERS = "customers"


class Direction(str, Enum):
    VERIAL_TO_WC = "verial_to_wc"
    WC_TO_VERIAL = "wc_to_verial"


class SyncStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class Rejected(BaseModel):
    """A record the mapper refused to translate, with the reason code."""
    reason: str
    detail: str = ""
    external_id: Optional[str] = None


# --- Products -----------------------------------------------------------------

class ProductAttribute(BaseModel):
    name: str
    values: List[str] = Field(default_factory=list)
    is_variation: bool = False
    visible: bool = True


class VariationAttribute(BaseModel):
    name: str
    option: str


class Dimensions(BaseModel):
    weight: Optional[float] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class BundleComponent(BaseModel):
    sku: str
    quantity: int = Field(1, ge=1)


class Bundle(BaseModel):
    name: str = ""
    components: List[BundleComponent] = Field(default_factory=list)


class NormalizedVariation(BaseModel):
    sku: str
    price: float = 0.0
    sale_price: Optional[float] = None
    stock_quantity: Optional[int] = None
    attributes: List[VariationAttribute] = Field(default_factory=list)
    external_id: Optional[str] = None


class NormalizedProduct(BaseModel):
    sku: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    type: str = "simple"
    price: float = 0.0
    sale_price: Optional[float] = None
    stock_quantity: Optional[int] = None
    manage_stock: bool = False
    dimensions: Dimensions = Field(default_factory=Dimensions)
    category_ids: List[int] = Field(default_factory=list)
    attributes: List[ProductAttribute] = Field(default_factory=list)
    variations: List[NormalizedVariation] = Field(default_factory=list)
    bundle: Optional[Bundle] = None
    external_id: Optional[str] = None
    meta_data: Dict[str, Any] = Field(default_factory=dict)
    sync_status: str = "synced"
    last_sync: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def stock_status(self) -> str:
        if self.stock_quantity is None or self.stock_quantity > 0:
            return "instock"
        return "outofstock"


# --- Orders & customers -------------------------------------------------------

class Address(BaseModel):
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    email: str = ""
    phone: str = ""
    address_1: str = ""
    address_2: str = ""
    city: str = ""
    state: str = ""
    postcode: str = ""
    country: str = ""


class LineItem(BaseModel):
    product_id: int = 0
    sku: str = ""
    name: str = ""
    quantity: int = 0
    subtotal: float = 0.0
    total: float = 0.0
    tax: float = 0.0


class ShippingLine(BaseModel):
    method_id: str = "flat_rate"
    method_title: str = ""
    total: float = 0.0


class FeeLine(BaseModel):
    name: str = ""
    total: float = 0.0
    tax: float = 0.0


class CouponLine(BaseModel):
    code: str
    discount: float = 0.0


class NormalizedOrder(BaseModel):
    id: int = Field(..., gt=0)
    customer_id: int = 0
    status: OrderStatus = OrderStatus.PENDING
    currency: str = "EUR"
    total: float = Field(0.0, ge=0)
    subtotal: float = Field(0.0, ge=0)
    tax_total: float = Field(0.0, ge=0)
    shipping_total: float = Field(0.0, ge=0)
    discount_total: float = Field(0.0, ge=0)
    payment_method: str = ""
    payment_method_title: str = ""
    billing: Address = Field(default_factory=Address)
    shipping: Address = Field(default_factory=Address)
    line_items: List[LineItem] = Field(default_factory=list)
    shipping_lines: List[ShippingLine] = Field(default_factory=list)
    fee_lines: List[FeeLine] = Field(default_factory=list)
    coupon_lines: List[CouponLine] = Field(default_factory=list)
    customer_note: str = ""
    date_created: Optional[str] = None
    date_modified: Optional[str] = None
    date_completed: Optional[str] = None
    date_paid: Optional[str] = None
    external_id: Optional[str] = None
    sync_status: str = "synced"
    last_sync: datetime = Field(default_factory=utcnow)


class NormalizedCustomer(BaseModel):
    id: int = Field(..., gt=0)
    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    billing: Address = Field(default_factory=Address)
    shipping: Address = Field(default_factory=Address)
    external_id: Optional[str] = None
    sync_status: str = "synced"
    last_sync: datetime = Field(default_factory=utcnow)


# --- Pricing ------------------------------------------------------------------

class TariffCondition(BaseModel):
    """One ERP tariff rule. Non-numeric values arrive as None."""
    model_config = ConfigDict(populate_by_name=True)

    price: Optional[float] = Field(None, alias="Precio")
    percent_discount: Optional[float] = Field(None, alias="Dto")
    per_unit_discount: Optional[float] = Field(None, alias="DtoEurosXUd")


class PriceResolution(BaseModel):
    found: bool = False
    base_price: Optional[float] = None
    effective_price: Optional[float] = None


# --- Sync runs ----------------------------------------------------------------

class ItemError(BaseModel):
    item_id: Optional[str] = None
    offset: Optional[int] = None
    reason: str
    detail: str = ""


class SyncCounters(BaseModel):
    processed: int = 0
    succeeded: int = 0
    errored: int = 0
    skipped: int = 0


class SyncRun(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    entity_type: EntityType
    direction: Direction = Direction.VERIAL_TO_WC
    status: SyncStatus = SyncStatus.IDLE
    current_offset: int = 0
    batch_size: int = 20
    filters: Dict[str, Any] = Field(default_factory=dict)
    counters: SyncCounters = Field(default_factory=SyncCounters)
    errors: List[ItemError] = Field(default_factory=list)
    skipped_ranges: List[List[int]] = Field(default_factory=list)
    cancel_requested: bool = False
    message: str = ""
    started_at: Optional[datetime] = None
    heartbeat_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == SyncStatus.RUNNING

    def seconds_since_heartbeat(self, now: Optional[datetime] = None) -> Optional[float]:
        last = self.heartbeat_at or self.started_at
        if last is None:
            return None
        return ((now or utcnow()) - last).total_seconds()


class BatchResult(BaseModel):
    run_id: str
    start: Optional[int] = None
    end: Optional[int] = None
    processed: int = 0
    succeeded: int = 0
    errors: List[ItemError] = Field(default_factory=list)
    skipped_ranges: List[List[int]] = Field(default_factory=list)
    done: bool = False
    status: SyncStatus = SyncStatus.RUNNING


class ItemOutcome(BaseModel):
    """Result of syncing a single record outside a ranged run."""
    item_id: Optional[str] = None
    outcome: str
    error: Optional[ItemError] = None

    @property
    def ok(self) -> bool:
        return self.outcome == "succeeded"


class WriteResult(BaseModel):
    id: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.id is not None
# ============================================================================
# End of models.py - Version: 2.0.0
# ============================================================================
