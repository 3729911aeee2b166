import pytest
import requests

from errors import FatalConfigError, TransientIOError, ValidationError
from models import NormalizedProduct, NormalizedVariation, SyncStatus
from verial_client import VerialClient
from woocommerce_client import WooCommerceClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture
def verial():
    return VerialClient("http://erp.local/WcfServiceLibraryVerial/", "18", timeout=5)


def test_verial_fetch_uses_one_based_inclusive_range(verial, monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params, timeout))
        return FakeResponse(payload={"InfoError": {"Codigo": 0}, "Articulos": [{"Id": 1}]})

    monkeypatch.setattr(verial.session, "get", fake_get)
    records = verial.fetch_records("products", 20, 20, {"since": "2024-06-01 10:00:00"})

    assert records == [{"Id": 1}]
    url, params, timeout = calls[0]
    assert url == "http://erp.local/WcfServiceLibraryVerial/GetArticulosWS"
    assert params == {"x": "18", "inicio": 21, "fin": 40, "fecha": "2024-06-01", "hora": "10:00:00"}
    assert timeout == 5


@pytest.mark.parametrize("response, error", [
    (FakeResponse(503, {}), TransientIOError),
    (FakeResponse(429, {}), TransientIOError),
    (FakeResponse(200, {"InfoError": {"Codigo": 13, "Descripcion": "Sesión no válida"}}), TransientIOError),
    (FakeResponse(200, None, "<html>"), TransientIOError),
    (FakeResponse(404, {}), ValidationError),
])
def test_verial_errors(verial, monkeypatch, response, error):
    monkeypatch.setattr(verial.session, "get", lambda *a, **k: response)
    with pytest.raises(error):
        verial.fetch_records("customers", 0, 10)


def test_verial_timeout_is_transient(verial, monkeypatch):
    def boom(*args, **kwargs):
        raise requests.exceptions.Timeout()

    monkeypatch.setattr(verial.session, "get", boom)
    with pytest.raises(TransientIOError):
        verial.fetch_tariff_conditions(1001)


def test_verial_push_order_sends_session_and_type(verial, monkeypatch):
    sent = {}

    def fake_post(url, json=None, timeout=None):
        sent.update(url=url, body=json)
        return FakeResponse(payload={"InfoError": {"Codigo": 0}, "Id": 5})

    monkeypatch.setattr(verial.session, "post", fake_post)
    verial.push_order({"ID": 91})
    assert sent["url"].endswith("/NuevoDocClienteWS")
    assert sent["body"]["sesionwcf"] == "18"
    assert sent["body"]["Tipo"] == 5


def test_clients_require_configuration():
    with pytest.raises(FatalConfigError):
        VerialClient("", "18")
    with pytest.raises(FatalConfigError):
        WooCommerceClient("https://tienda.example.com", "ck", "")


class RecordingSession:
    """Replays canned responses keyed by (method, path)."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def request(self, method, url, params=None, json=None, timeout=None):
        path = url.split("/wp-json/wc/v3/")[1]
        self.calls.append((method, path, params, json))
        return self.routes[(method, path)]


@pytest.fixture
def woo():
    return WooCommerceClient("https://tienda.example.com/", "ck_1", "cs_2")


def test_upsert_product_updates_existing_sku(woo):
    session = RecordingSession({
        ("GET", "products"): FakeResponse(200, [{"id": 44}]),
        ("PUT", "products/44"): FakeResponse(200, {"id": 44}),
    })
    woo.session = session
    result = woo.upsert_product(NormalizedProduct(sku="ABC", name="Algo", price=9.5, category_ids=[15]))

    assert result.ok and result.id == 44
    method, path, _, payload = session.calls[-1]
    assert (method, path) == ("PUT", "products/44")
    assert payload["regular_price"] == "9.50"
    assert payload["categories"] == [{"id": 15}]


def test_upsert_product_reports_store_error(woo):
    woo.session = RecordingSession({
        ("GET", "products"): FakeResponse(200, []),
        ("POST", "products"): FakeResponse(400, {"code": "invalid", "message": "SKU duplicado"}),
    })
    result = woo.upsert_product(NormalizedProduct(sku="ABC"))
    assert not result.ok
    assert "SKU duplicado" in result.error


def test_create_category_recovers_from_term_exists(woo):
    woo.session = RecordingSession({
        ("POST", "products/categories"): FakeResponse(400, {"code": "term_exists", "data": {"resource_id": 12}}),
    })
    assert woo.create_category("Perros") == 12


def test_store_5xx_is_transient(woo):
    woo.session = RecordingSession({("GET", "orders"): FakeResponse(502, {})})
    with pytest.raises(TransientIOError):
        woo.list_orders(0, 20)


def test_upsert_product_reports_failed_variations(woo):
    woo.session = RecordingSession({
        ("GET", "products"): FakeResponse(200, []),
        ("POST", "products"): FakeResponse(201, {"id": 70}),
        ("GET", "products/70/variations"): FakeResponse(200, []),
        ("POST", "products/70/variations"): FakeResponse(400, {"message": "SKU inválido"}),
    })
    product = NormalizedProduct(sku="COLLAR", type="variable",
                                variations=[NormalizedVariation(sku="COLLAR-S", price=9)])

    result = woo.upsert_product(product)

    assert not result.ok
    assert result.id == 70
    assert result.error == "Variations not saved: COLLAR-S"


class PagedSession:
    """Serves GET listings honouring offset/per_page like the REST API."""

    def __init__(self, records):
        self.records = records
        self.calls = []

    def request(self, method, url, params=None, json=None, timeout=None):
        self.calls.append((params["offset"], params["per_page"]))
        offset, per_page = params["offset"], params["per_page"]
        return FakeResponse(200, self.records[offset:offset + per_page])


def test_list_pages_past_the_per_page_cap(woo):
    session = PagedSession([{"id": i} for i in range(1, 301)])
    woo.session = session

    rows = woo.list_customers(0, 150)

    assert [r["id"] for r in rows] == list(range(1, 151))
    assert session.calls == [(0, 100), (100, 50)]


def test_list_stops_on_a_short_page(woo):
    session = PagedSession([{"id": i} for i in range(1, 121)])
    woo.session = session

    rows = woo.list_orders(100, 150)

    assert [r["id"] for r in rows] == list(range(101, 121))
    assert session.calls == [(100, 100)]


def test_reverse_customer_run_reaches_every_store_customer(woo, make_orchestrator, erp):
    woo.session = PagedSession([{"id": i, "email": f"cliente{i}@tienda.es", "first_name": "Ana"}
                                for i in range(1, 301)])
    engine = make_orchestrator(store_adapter=woo)
    run_id = engine.start_sync("customers", "wc_to_verial", batch_size=150)

    first = engine.process_next_batch(run_id)
    second = engine.process_next_batch(run_id)
    last = engine.process_next_batch(run_id)

    assert (first.processed, first.done) == (150, False)
    assert (second.start, second.end, second.processed, second.done) == (151, 300, 150, False)
    assert (last.processed, last.done, last.status) == (0, True, SyncStatus.COMPLETED)
    assert [c["ID"] for c in erp.pushed["customers"]] == list(range(1, 301))


def test_verial_fetch_product_falls_back_to_id(verial, monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append(params)
        if "referenciaBarras" in params:
            return FakeResponse(payload={"InfoError": {"Codigo": 0}, "Articulos": []})
        return FakeResponse(payload={"InfoError": {"Codigo": 0}, "Articulos": [{"Id": 6}, {"Id": 7}]})

    monkeypatch.setattr(verial.session, "get", fake_get)

    assert verial.fetch_product("7") == {"Id": 7}
    assert calls[0]["referenciaBarras"] == "7"
    assert calls[1]["id_articulo"] == "7"
    assert verial.fetch_product("ABC") is None
