# ============================================================================
#  customer_mapper.py - Verial <-> WooCommerce Customer Mapping
#  Version: 1.0.0
# ============================================================================
import logging
from typing import Any, Dict, Optional, Union
from pydantic import ValidationError
from models import NormalizedCustomer, Rejected
from order_mapper import address_to_verial, map_address
from sanitizer import FieldSanitizer

logger = logging.getLogger(__name__)

ID_FIELDS = ("ID", "Id", "ID_Cliente")
EMAIL_FIELDS = ("Email", "EMail", "email")
PHONE_FIELDS = ("Telefono", "Telefono1", "Movil")
SHIPPING_PREFIX = "Envio"


class CustomerMapper:
    def __init__(self, sanitizer: FieldSanitizer):
        self.sanitizer = sanitizer

    @staticmethod
    def _first(record: Dict, fields) -> Any:
        for field in fields:
            if record.get(field) not in (None, ""):
                return record[field]
        return None

    def to_normalized(self, record: Any, overrides: Optional[Dict] = None) -> Union[NormalizedCustomer, Rejected]:
        if not isinstance(record, dict) or not record:
            return Rejected(reason="invalid_record", detail="Customer record is not a non-empty map")
        s = self.sanitizer

        raw_id = self._first(record, ID_FIELDS)
        if not s.validate(raw_id, "int") or s.sanitize(raw_id, "int") <= 0:
            logger.warning(f"Rejecting ERP customer with invalid id {raw_id!r}")
            return Rejected(reason="invalid_id", detail=f"Customer id {raw_id!r} is not a positive integer",
                            external_id=str(raw_id) if raw_id is not None else None)
        customer_id = s.sanitize(raw_id, "int")

        raw_email = self._first(record, EMAIL_FIELDS)
        email = s.sanitize(raw_email, "email")
        if not s.validate(email, "email"):
            logger.warning(f"Rejecting ERP customer {customer_id}: invalid email {raw_email!r}")
            return Rejected(reason="invalid_email", detail=f"Email {raw_email!r} is not valid",
                            external_id=str(customer_id))

        phone = s.sanitize(self._first(record, PHONE_FIELDS), "phone")
        billing = map_address(s, record)
        billing["email"] = email
        billing["phone"] = phone

        # The ERP keeps a single shipping address as Envio* fields; fall back to billing
        if any(record.get(f"{SHIPPING_PREFIX}{field}") for field in ("Nombre", "Direccion", "Ciudad")):
            shipping = map_address(s, record, prefix=SHIPPING_PREFIX)
            shipping["email"] = ""
        else:
            shipping = dict(billing, email="")

        data = {
            "id": customer_id,
            "email": email,
            "first_name": billing["first_name"],
            "last_name": billing["last_name"],
            "phone": phone,
            "billing": billing,
            "shipping": shipping,
            "external_id": str(customer_id),
        }
        if overrides:
            data.update(overrides)

        try:
            return NormalizedCustomer.model_validate(data)
        except ValidationError as e:
            logger.warning(f"ERP customer {customer_id} failed validation: {e}")
            return Rejected(reason="validation_error", detail=str(e), external_id=str(customer_id))

    def to_external(self, platform_record: Any) -> Dict:
        if isinstance(platform_record, NormalizedCustomer):
            platform_record = platform_record.model_dump(mode="json")
        if not isinstance(platform_record, dict):
            return {}
        s = self.sanitizer
        customer_id = platform_record.get("id")
        if not s.validate(customer_id, "int") or s.sanitize(customer_id, "int") <= 0:
            logger.error(f"Cannot map store customer with invalid id {customer_id!r}")
            return {}
        billing = platform_record.get("billing") or {}
        email = s.sanitize(platform_record.get("email") or billing.get("email"), "email")
        if not s.validate(email, "email"):
            logger.error(f"Cannot map store customer {customer_id}: invalid email")
            return {}

        external = address_to_verial(s, billing)
        external.update(address_to_verial(s, platform_record.get("shipping"), prefix=SHIPPING_PREFIX))
        external.pop(f"{SHIPPING_PREFIX}Email", None)
        external["ID"] = s.sanitize(customer_id, "int")
        external["Email"] = email
        external["Nombre"] = s.sanitize(platform_record.get("first_name"), "text") or external["Nombre"]
        external["Apellidos"] = s.sanitize(platform_record.get("last_name"), "text") or external["Apellidos"]
        return external
# ============================================================================
# End of customer_mapper.py - Version: 1.0.0
# ============================================================================
