# ============================================================================
#  woocommerce_client.py - WooCommerce REST API Handler
#  Version: 1.1.0
# ============================================================================
import requests
import logging
from typing import Dict, List, Optional
from errors import FatalConfigError, TransientIOError
from models import NormalizedCustomer, NormalizedOrder, NormalizedProduct, WriteResult

logger = logging.getLogger(__name__)

WC_MAX_PER_PAGE = 100
ORDER_META_KEY = "_verial_order_id"
CUSTOMER_META_KEY = "_verial_customer_id"


def _money(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.2f}"


class WooCommerceClient:
    def __init__(self, base_url: str, consumer_key: str, consumer_secret: str, timeout: float = 30.0):
        """Initializes the WooCommerce REST v3 client with basic auth."""
        # Trim whitespace from keys (common issue with env vars)
        consumer_key = (consumer_key or "").strip()
        consumer_secret = (consumer_secret or "").strip()
        if not base_url or not consumer_key or not consumer_secret:
            raise FatalConfigError("WooCommerce URL, consumer key and consumer secret are required")

        self.api_url = f"{base_url.rstrip('/')}/wp-json/wc/v3"
        self.timeout = timeout
        # Use session for connection pooling and reuse
        self.session = requests.Session()
        self.session.auth = (consumer_key, consumer_secret)
        self.session.headers.update({"Content-Type": "application/json"})

        logger.info("=" * 80)
        logger.info("WooCommerce API Configuration:")
        logger.info(f"  REST URL: {self.api_url}")
        logger.info(f"  Consumer Key: {'*' * min(len(consumer_key), 20)}... (hidden)")
        logger.info("=" * 80)

    def _call(self, method: str, path: str, params: Optional[Dict] = None, payload: Optional[Dict] = None):
        """One REST call. Transient failures raise, permanent ones return (status, body)."""
        url = f"{self.api_url}/{path.lstrip('/')}"
        try:
            response = self.session.request(method, url, params=params, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise TransientIOError(f"WooCommerce {method} {path}: timed out", context={"path": path})
        except requests.exceptions.ConnectionError as e:
            raise TransientIOError(f"WooCommerce {method} {path}: connection error: {e}", context={"path": path})

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientIOError(f"WooCommerce {method} {path}: HTTP {response.status_code}",
                                   context={"path": path, "status": response.status_code})
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text[:500]}
        if response.status_code == 401:
            logger.error("WooCommerce authentication failed (401 Unauthorized)")
            logger.error("  Please verify the consumer key/secret and that they have read/write access")
        return response.status_code, body

    @staticmethod
    def _error(status: int, body) -> str:
        message = body.get("message") if isinstance(body, dict) else str(body)
        return f"HTTP {status}: {message}"

    def _save(self, path: str, existing_id: Optional[int], payload: Dict, label: str) -> WriteResult:
        if existing_id:
            status, body = self._call("PUT", f"{path}/{existing_id}", payload=payload)
        else:
            status, body = self._call("POST", path, payload=payload)
        if status >= 400 or not isinstance(body, dict) or not body.get("id"):
            logger.error(f"Could not save {label}: {self._error(status, body)}")
            return WriteResult(id=existing_id, error=self._error(status, body))
        logger.info(f"{label} {'updated' if existing_id else 'created'} successfully: {body['id']}")
        return WriteResult(id=int(body["id"]))

    # --- categories -----------------------------------------------------------

    def find_category_by_name(self, name: str) -> Optional[int]:
        status, body = self._call("GET", "products/categories", params={"search": name, "per_page": WC_MAX_PER_PAGE})
        if status >= 400 or not isinstance(body, list):
            return None
        for term in body:
            if str(term.get("name", "")).strip().lower() == name.strip().lower():
                return int(term["id"])
        return None

    def create_category(self, name: str) -> Optional[int]:
        status, body = self._call("POST", "products/categories", payload={"name": name})
        if status < 400 and isinstance(body, dict) and body.get("id"):
            return int(body["id"])
        # Lost a race with another writer: the term exists now
        if isinstance(body, dict) and body.get("code") == "term_exists":
            resource_id = (body.get("data") or {}).get("resource_id")
            if resource_id:
                return int(resource_id)
        logger.error(f"Category '{name}' could not be created: {self._error(status, body)}")
        return None

    def find_or_create_category(self, name: str) -> Optional[int]:
        return self.find_category_by_name(name) or self.create_category(name)

    # --- products -------------------------------------------------------------

    def _find_id_by_sku(self, path: str, sku: str) -> Optional[int]:
        status, body = self._call("GET", path, params={"sku": sku})
        if status < 400 and isinstance(body, list) and body:
            return int(body[0]["id"])
        return None

    def _product_payload(self, product: NormalizedProduct) -> Dict:
        payload = {
            "name": product.name or product.sku,
            "sku": product.sku,
            "type": product.type,
            "description": product.description,
            "manage_stock": product.manage_stock,
            "stock_status": product.stock_status,
            "categories": [{"id": term_id} for term_id in product.category_ids],
            "attributes": [
                {"name": a.name, "options": a.values, "variation": a.is_variation, "visible": a.visible}
                for a in product.attributes
            ],
            "meta_data": [{"key": k, "value": v} for k, v in product.meta_data.items()],
        }
        if product.type == "simple":
            payload["regular_price"] = _money(product.price)
            payload["sale_price"] = _money(product.sale_price)
        if product.manage_stock:
            payload["stock_quantity"] = product.stock_quantity
        dims = product.dimensions
        if dims:
            payload["weight"] = "" if dims.weight is None else str(dims.weight)
            payload["dimensions"] = {k: "" if getattr(dims, k) is None else str(getattr(dims, k))
                                     for k in ("length", "width", "height")}
        if product.bundle:
            payload["meta_data"].append({"key": "_verial_bundle", "value": product.bundle.model_dump()})
        return payload

    def upsert_product(self, product: NormalizedProduct) -> WriteResult:
        """Creates or updates a product (and its variations) keyed by SKU."""
        existing_id = self._find_id_by_sku("products", product.sku)
        result = self._save("products", existing_id, self._product_payload(product), f"Product {product.sku}")
        if not result.ok or product.type != "variable":
            return result

        path = f"products/{result.id}/variations"
        failed = []
        for variation in product.variations:
            payload = {
                "sku": variation.sku,
                "regular_price": _money(variation.price),
                "sale_price": _money(variation.sale_price),
                "attributes": [{"name": a.name, "option": a.option} for a in variation.attributes],
            }
            if variation.stock_quantity is not None:
                payload.update(manage_stock=True, stock_quantity=variation.stock_quantity)
            var_result = self._save(path, self._find_id_by_sku(path, variation.sku), payload,
                                    f"Variation {variation.sku}")
            if not var_result.ok:
                failed.append(variation.sku)
        if failed:
            return WriteResult(id=result.id, error=f"Variations not saved: {', '.join(failed)}")
        return result

    # --- orders / customers ---------------------------------------------------

    def _find_by_meta(self, path: str, key: str, value: str, search: str) -> Optional[int]:
        status, body = self._call("GET", path, params={"search": search, "per_page": WC_MAX_PER_PAGE})
        if status >= 400 or not isinstance(body, list):
            return None
        for record in body:
            for meta in record.get("meta_data") or []:
                if meta.get("key") == key and str(meta.get("value")) == value:
                    return int(record["id"])
        return None

    def upsert_order(self, order: NormalizedOrder) -> WriteResult:
        external_id = order.external_id or str(order.id)
        payload = {
            "status": order.status.value,
            "currency": order.currency,
            "customer_id": 0,
            "payment_method": order.payment_method,
            "payment_method_title": order.payment_method_title,
            "customer_note": order.customer_note,
            "billing": order.billing.model_dump(),
            "shipping": {k: v for k, v in order.shipping.model_dump().items() if k not in ("email", "phone")},
            "line_items": [
                {"sku": li.sku, "name": li.name, "quantity": li.quantity,
                 "subtotal": _money(li.subtotal), "total": _money(li.total)}
                for li in order.line_items
            ],
            "shipping_lines": [{"method_id": s.method_id, "method_title": s.method_title, "total": _money(s.total)}
                               for s in order.shipping_lines],
            "fee_lines": [{"name": f.name, "total": _money(f.total)} for f in order.fee_lines],
            "coupon_lines": [{"code": c.code} for c in order.coupon_lines],
            "meta_data": [{"key": ORDER_META_KEY, "value": external_id},
                          {"key": "_verial_customer_id", "value": order.customer_id}],
        }
        if order.date_paid:
            payload["set_paid"] = True
        existing_id = self._find_by_meta("orders", ORDER_META_KEY, external_id, order.billing.email or external_id)
        return self._save("orders", existing_id, payload, f"Order {external_id}")

    def upsert_customer(self, customer: NormalizedCustomer) -> WriteResult:
        payload = {
            "email": customer.email,
            "first_name": customer.first_name,
            "last_name": customer.last_name,
            "billing": customer.billing.model_dump(),
            "shipping": {k: v for k, v in customer.shipping.model_dump().items() if k not in ("email",)},
            "meta_data": [{"key": CUSTOMER_META_KEY, "value": customer.external_id or str(customer.id)}],
        }
        status, body = self._call("GET", "customers", params={"email": customer.email, "role": "all"})
        existing_id = int(body[0]["id"]) if status < 400 and isinstance(body, list) and body else None
        if existing_id:
            payload.pop("email")
        return self._save("customers", existing_id, payload, f"Customer {customer.email}")

    # --- listing (store -> ERP direction) ---------------------------------------

    def _list(self, path: str, offset: int, limit: int) -> List[Dict]:
        """Returns up to ``limit`` records from ``offset``, paging past the REST per_page cap."""
        records: List[Dict] = []
        limit = max(1, limit)
        while len(records) < limit:
            per_page = min(limit - len(records), WC_MAX_PER_PAGE)
            params = {"per_page": per_page, "offset": offset + len(records), "orderby": "id", "order": "asc"}
            status, body = self._call("GET", path, params=params)
            if status >= 400 or not isinstance(body, list):
                raise TransientIOError(f"Listing {path} failed: {self._error(status, body)}", context={"path": path})
            records.extend(body[:per_page])
            if len(body) < per_page:
                break
        return records

    def list_products(self, offset: int, limit: int) -> List[Dict]:
        return self._list("products", offset, limit)

    def list_orders(self, offset: int, limit: int) -> List[Dict]:
        return self._list("orders", offset, limit)

    def list_customers(self, offset: int, limit: int) -> List[Dict]:
        return self._list("customers", offset, limit)
# ============================================================================
# End of woocommerce_client.py - Version: 1.1.0
# ============================================================================
