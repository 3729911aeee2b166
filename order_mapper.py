# ============================================================================
#  order_mapper.py - Verial <-> WooCommerce Order Mapping
#  Version: 1.0.0
# ============================================================================
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union
from pydantic import ValidationError
from models import NormalizedOrder, OrderStatus, Rejected
from sanitizer import FieldSanitizer

logger = logging.getLogger(__name__)

VERIAL_TO_WC_STATUS = {
    "Pendiente": OrderStatus.PENDING,
    "Procesando": OrderStatus.PROCESSING,
    "Completado": OrderStatus.COMPLETED,
    "Cancelado": OrderStatus.CANCELLED,
    "Reembolsado": OrderStatus.REFUNDED,
    "Fallido": OrderStatus.FAILED,
}
WC_TO_VERIAL_STATUS = {wc: verial for verial, wc in VERIAL_TO_WC_STATUS.items()}

# Address block field -> (ERP field, sanitize kind)
ADDRESS_FIELDS = {
    "first_name": ("Nombre", "text"),
    "last_name": ("Apellidos", "text"),
    "company": ("Empresa", "text"),
    "email": ("Email", "email"),
    "phone": ("Telefono", "phone"),
    "address_1": ("Direccion", "text"),
    "address_2": ("Direccion2", "text"),
    "city": ("Ciudad", "text"),
    "state": ("Provincia", "text"),
    "postcode": ("CodigoPostal", "postcode"),
    "country": ("Pais", "text"),
}


def map_status_from_verial(raw: Any) -> OrderStatus:
    if isinstance(raw, str):
        for verial, wc in VERIAL_TO_WC_STATUS.items():
            if raw.strip().lower() == verial.lower():
                return wc
    logger.debug(f"Unknown ERP order status {raw!r}, defaulting to pending")
    return OrderStatus.PENDING


def map_status_to_verial(raw: Any) -> str:
    try:
        return WC_TO_VERIAL_STATUS[OrderStatus(str(raw).replace("wc-", ""))]
    except ValueError:
        return WC_TO_VERIAL_STATUS[OrderStatus.PENDING]


def map_address(sanitizer: FieldSanitizer, source: Any, prefix: str = "") -> Dict:
    """Builds an address block from ERP fields, optionally prefixed (EnvioNombre...)."""
    if not isinstance(source, dict):
        return {}
    address = {}
    for target, (field, kind) in ADDRESS_FIELDS.items():
        value = source.get(f"{prefix}{field}")
        address[target] = sanitizer.sanitize(value, kind) if value is not None else ""
    return address


def address_to_verial(sanitizer: FieldSanitizer, address: Any, prefix: str = "") -> Dict:
    if not isinstance(address, dict):
        address = {}
    return {f"{prefix}{field}": sanitizer.sanitize(address.get(target), kind)
            for target, (field, kind) in ADDRESS_FIELDS.items()}


def _first(record: Dict, fields: Sequence[str]) -> Any:
    for field in fields:
        if record.get(field) not in (None, ""):
            return record[field]
    return None


class OrderMapper:
    def __init__(self, sanitizer: FieldSanitizer):
        self.sanitizer = sanitizer

    def _map_list(self, entries: Any, mapper: Callable[[Dict], Optional[Dict]], label: str, order_ref) -> List[Dict]:
        if not isinstance(entries, list):
            return []
        mapped = []
        for position, entry in enumerate(entries, start=1):
            if not isinstance(entry, dict):
                logger.debug(f"Order {order_ref}: skipping malformed {label} #{position}")
                continue
            item = mapper(entry)
            if item is not None:
                mapped.append(item)
        return mapped

    def _line_item(self, entry: Dict) -> Optional[Dict]:
        s = self.sanitizer
        return {
            "product_id": s.sanitize(_first(entry, ("ID_Articulo", "ID_Producto")), "int"),
            "sku": s.sanitize(_first(entry, ("SKU", "ReferenciaBarras")), "sku"),
            "name": s.sanitize(_first(entry, ("Nombre", "Descripcion")), "text"),
            "quantity": max(0, s.sanitize(_first(entry, ("Cantidad", "Uds")), "int")),
            "subtotal": s.sanitize(entry.get("Subtotal"), "price"),
            "total": s.sanitize(_first(entry, ("Total", "ImporteLinea")), "price"),
            "tax": s.sanitize(_first(entry, ("IVA", "ImporteIVA")), "price"),
        }

    def _fee_line(self, entry: Dict) -> Optional[Dict]:
        return {
            "name": self.sanitizer.sanitize(entry.get("Concepto"), "text") or "Gasto adicional",
            "total": self.sanitizer.sanitize(entry.get("Importe"), "price"),
            "tax": self.sanitizer.sanitize(entry.get("IVA"), "price"),
        }

    def _coupon_line(self, entry: Dict) -> Optional[Dict]:
        code = self.sanitizer.sanitize(entry.get("Codigo"), "text")
        if not code:
            return None
        return {"code": code, "discount": self.sanitizer.sanitize(entry.get("Descuento"), "price")}

    def to_normalized(self, record: Any, overrides: Optional[Dict] = None) -> Union[NormalizedOrder, Rejected]:
        if not isinstance(record, dict) or not record:
            return Rejected(reason="invalid_record", detail="Order record is not a non-empty map")
        s = self.sanitizer

        raw_id = _first(record, ("ID", "Id", "ID_Pedido"))
        if not s.validate(raw_id, "int") or s.sanitize(raw_id, "int") <= 0:
            logger.warning(f"Rejecting ERP order with invalid id {raw_id!r}")
            return Rejected(reason="invalid_id", detail=f"Order id {raw_id!r} is not a positive integer",
                            external_id=str(raw_id) if raw_id is not None else None)
        order_id = s.sanitize(raw_id, "int")

        client = record.get("Cliente") if isinstance(record.get("Cliente"), dict) else {}
        raw_email = _first(client, ("Email",)) or record.get("Email")
        billing = map_address(s, client)
        if raw_email not in (None, ""):
            billing["email"] = s.sanitize(raw_email, "email")
            if not s.validate(billing["email"], "email"):
                logger.warning(f"Rejecting ERP order {order_id}: invalid billing email {raw_email!r}")
                return Rejected(reason="invalid_email", detail=f"Billing email {raw_email!r} is not valid",
                                external_id=str(order_id))

        shipping_total = s.sanitize(record.get("GastosEnvio"), "price")
        data = {
            "id": order_id,
            "customer_id": s.sanitize(_first(client, ("ID", "Id")) or record.get("ID_Cliente"), "int"),
            "status": map_status_from_verial(record.get("Estado")),
            "currency": s.sanitize(record.get("Moneda"), "text") or "EUR",
            "total": s.sanitize(_first(record, ("Total", "TotalImporte")), "price"),
            "subtotal": s.sanitize(_first(record, ("Subtotal", "BaseImponible")), "price"),
            "tax_total": s.sanitize(record.get("TotalIVA"), "price"),
            "shipping_total": shipping_total,
            "discount_total": s.sanitize(record.get("Descuento"), "price"),
            "payment_method": s.sanitize(record.get("FormaPago"), "text"),
            "payment_method_title": s.sanitize(record.get("FormaPagoDescripcion"), "text"),
            "billing": billing,
            "shipping": map_address(s, record.get("Envio")),
            "line_items": self._map_list(record.get("Lineas"), self._line_item, "line item", order_id),
            "shipping_lines": ([{"method_id": "flat_rate", "method_title": "Envío estándar", "total": shipping_total}]
                               if shipping_total > 0 else []),
            "fee_lines": self._map_list(record.get("GastosAdicionales"), self._fee_line, "fee line", order_id),
            "coupon_lines": self._map_list(record.get("Cupones"), self._coupon_line, "coupon", order_id),
            "customer_note": s.sanitize(record.get("Nota"), "text"),
            "date_created": s.sanitize(record.get("Fecha"), "datetime"),
            "date_modified": s.sanitize(record.get("FechaModificacion"), "datetime"),
            "date_completed": s.sanitize(record.get("FechaCompletado"), "datetime"),
            "date_paid": s.sanitize(record.get("FechaPago"), "datetime"),
            "external_id": str(order_id),
        }
        if overrides:
            data.update(overrides)

        try:
            return NormalizedOrder.model_validate(data)
        except ValidationError as e:
            logger.warning(f"ERP order {order_id} failed validation: {e}")
            return Rejected(reason="validation_error", detail=str(e), external_id=str(order_id))

    def to_external(self, platform_record: Any) -> Dict:
        """Maps a store order (REST shape) to the ERP order document."""
        if isinstance(platform_record, NormalizedOrder):
            platform_record = platform_record.model_dump(mode="json")
        if not isinstance(platform_record, dict):
            return {}
        s = self.sanitizer
        order_id = platform_record.get("id")
        if not s.validate(order_id, "int") or s.sanitize(order_id, "int") <= 0:
            logger.error(f"Cannot map store order with invalid id {order_id!r}")
            return {}
        billing = platform_record.get("billing") or {}
        if billing.get("email") and not s.validate(s.sanitize(billing["email"], "email"), "email"):
            logger.error(f"Cannot map store order {order_id}: invalid billing email")
            return {}

        client = address_to_verial(s, billing)
        client["ID"] = s.sanitize(platform_record.get("customer_id"), "int")

        lines = []
        for item in platform_record.get("line_items") or []:
            if not isinstance(item, dict):
                continue
            lines.append({
                "ID_Articulo": s.sanitize(item.get("product_id"), "int"),
                "SKU": s.sanitize(item.get("sku"), "sku"),
                "Nombre": s.sanitize(item.get("name"), "text"),
                "Cantidad": s.sanitize(item.get("quantity"), "int"),
                "Subtotal": s.sanitize(item.get("subtotal"), "price"),
                "Total": s.sanitize(item.get("total"), "price"),
                "IVA": s.sanitize(item.get("total_tax", item.get("tax")), "price"),
            })
        fees = [{"Concepto": s.sanitize(fee.get("name"), "text"), "Importe": s.sanitize(fee.get("total"), "price")}
                for fee in platform_record.get("fee_lines") or [] if isinstance(fee, dict)]
        coupons = [{"Codigo": s.sanitize(c.get("code"), "text"), "Descuento": s.sanitize(c.get("discount"), "price")}
                   for c in platform_record.get("coupon_lines") or [] if isinstance(c, dict)]

        return {
            "ID": s.sanitize(order_id, "int"),
            "Cliente": client,
            "Envio": address_to_verial(s, platform_record.get("shipping")),
            "Estado": map_status_to_verial(platform_record.get("status")),
            "Moneda": s.sanitize(platform_record.get("currency"), "text") or "EUR",
            "Total": s.sanitize(platform_record.get("total"), "price"),
            "TotalIVA": s.sanitize(platform_record.get("total_tax", platform_record.get("tax_total")), "price"),
            "GastosEnvio": s.sanitize(platform_record.get("shipping_total"), "price"),
            "Descuento": s.sanitize(platform_record.get("discount_total"), "price"),
            "Lineas": lines,
            "GastosAdicionales": fees,
            "Cupones": coupons,
            "Fecha": s.sanitize(platform_record.get("date_created"), "datetime"),
            "Nota": s.sanitize(platform_record.get("customer_note"), "text"),
        }
# ============================================================================
# End of order_mapper.py - Version: 1.0.0
# ============================================================================
