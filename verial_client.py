# ============================================================================
#  verial_client.py - Verial ERP Web Service Client
#  Version: 1.0.0
# ============================================================================
import requests
import logging
from typing import Any, Dict, List, Optional
from errors import FatalConfigError, TransientIOError, ValidationError

logger = logging.getLogger(__name__)

# entity -> (GET endpoint, list key in the response)
LIST_ENDPOINTS = {
    "products": ("GetArticulosWS", "Articulos"),
    "customers": ("GetClientesWS", "Clientes"),
    "orders": ("GetPedidosWS", "Pedidos"),
}
PUSH_ENDPOINTS = {
    "customers": "NuevoClienteWS",
    "orders": "NuevoDocClienteWS",
}
TARIFF_ENDPOINT = "GetCondicionesTarifaWS"
# NuevoDocClienteWS document type for a customer order
DOC_TYPE_ORDER = 5


class VerialClient:
    def __init__(self, base_url: str, session_id: str, timeout: float = 30.0):
        if not base_url or not session_id:
            raise FatalConfigError("Verial API URL and session number are required")
        self.base_url = base_url.rstrip("/")
        self.session_id = str(session_id).strip()
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        logger.info("=" * 80)
        logger.info("Verial API Configuration:")
        logger.info(f"  Base URL: {self.base_url}")
        logger.info(f"  Session: {'*' * min(len(self.session_id), 20)}... (hidden)")
        logger.info(f"  Timeout: {self.timeout}s")
        logger.info("=" * 80)

    def _request(self, method: str, endpoint: str, params: Optional[Dict] = None, payload: Optional[Dict] = None) -> Dict:
        """Single call to the ERP; raises TransientIOError for anything worth retrying."""
        url = f"{self.base_url}/{endpoint}"
        try:
            if method == "GET":
                response = self.session.get(url, params={"x": self.session_id, **(params or {})}, timeout=self.timeout)
            else:
                body = {"sesionwcf": self.session_id, **(payload or {})}
                response = self.session.post(url, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise TransientIOError(f"{endpoint}: request timed out after {self.timeout}s", context={"endpoint": endpoint})
        except requests.exceptions.ConnectionError as e:
            raise TransientIOError(f"{endpoint}: connection error: {e}", context={"endpoint": endpoint})

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientIOError(f"{endpoint}: HTTP {response.status_code}",
                                   context={"endpoint": endpoint, "status": response.status_code})
        if response.status_code >= 400:
            logger.error(f"{endpoint} rejected the request: HTTP {response.status_code} - {response.text[:500]}")
            raise ValidationError(f"{endpoint}: HTTP {response.status_code}",
                                  context={"endpoint": endpoint, "status": response.status_code})

        try:
            data = response.json()
        except ValueError:
            logger.error(f"{endpoint}: invalid JSON response: {response.text[:500]}")
            raise TransientIOError(f"{endpoint}: invalid JSON response", context={"endpoint": endpoint})

        if not isinstance(data, dict):
            return {"_items": data}
        info = data.get("InfoError") or {}
        code = info.get("Codigo", 0) if isinstance(info, dict) else 0
        if str(code) not in ("0", ""):
            raise TransientIOError(f"{endpoint}: ERP error {code} - {info.get('Descripcion', '')}",
                                   context={"endpoint": endpoint, "code": code})
        return data

    def fetch_records(self, entity: str, offset: int, limit: int, filters: Optional[Dict] = None) -> List[Dict]:
        """Fetches ``limit`` records starting after ``offset`` (ERP range offset+1 .. offset+limit)."""
        if entity not in LIST_ENDPOINTS:
            raise FatalConfigError(f"Unsupported ERP entity '{entity}'")
        endpoint, key = LIST_ENDPOINTS[entity]
        params: Dict[str, Any] = {"inicio": offset + 1, "fin": offset + limit}

        since = (filters or {}).get("since")
        if since:
            # The ERP takes the date and the time as separate parameters
            since_date, _, since_time = str(since).partition(" ")
            params["fecha"] = since_date
            if since_time:
                params["hora"] = since_time

        logger.info(f"Fetching {entity} {params['inicio']}-{params['fin']} from {endpoint}")
        data = self._request("GET", endpoint, params=params)
        records = data.get(key, data.get("_items", []))
        if not isinstance(records, list):
            logger.warning(f"{endpoint}: '{key}' is not a list, treating as empty")
            return []
        return records

    def fetch_product(self, sku_or_id) -> Optional[Dict]:
        """Looks one article up by barcode, then by ERP id when the key is numeric."""
        key = str(sku_or_id).strip()
        endpoint, list_key = LIST_ENDPOINTS["products"]
        lookups = [("referenciaBarras", "ReferenciaBarras")]
        if key.isdigit():
            lookups.append(("id_articulo", "Id"))
        for param, field in lookups:
            data = self._request("GET", endpoint, params={"inicio": 1, "fin": 10, param: key})
            records = data.get(list_key)
            if not isinstance(records, list):
                continue
            # The ERP may ignore the filter and return the first page
            for record in records:
                if isinstance(record, dict) and str(record.get(field, "")).strip() == key:
                    return record
        logger.info(f"No article found for '{key}'")
        return None

    def fetch_tariff_conditions(self, product_id, customer_id: int = 0) -> Any:
        """Returns the raw tariff-condition payload for a product/customer pair."""
        return self._request("GET", TARIFF_ENDPOINT, params={"id_articulo": product_id, "id_cliente": customer_id})

    def push_customer(self, record: Dict) -> Dict:
        return self._request("POST", PUSH_ENDPOINTS["customers"], payload=record)

    def push_order(self, record: Dict) -> Dict:
        return self._request("POST", PUSH_ENDPOINTS["orders"], payload={"Tipo": DOC_TYPE_ORDER, **record})
# ============================================================================
# End of verial_client.py - Version: 1.0.0
# ============================================================================
