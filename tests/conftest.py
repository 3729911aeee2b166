"""Shared fakes for the ERP client, the store adapter and the state store."""
from typing import Dict, List, Optional

import pytest

from batch_ranges import BatchRangeCalculator
from category_resolver import CategoryResolver
from customer_mapper import CustomerMapper
from errors import TransientIOError
from models import WriteResult
from order_mapper import OrderMapper
from price_resolver import PriceResolver
from product_mapper import ProductMapper
from sanitizer import FieldSanitizer
from store import StateStore
from sync_engine import SyncOrchestrator


class FakeErpClient:
    """Serves a fixed list of records, 1-based like the ERP pager."""

    def __init__(self, records: Optional[Dict[str, List]] = None, tariffs: Optional[Dict] = None):
        self.records = records or {}
        self.tariffs = tariffs or {}
        self.fetch_calls = []
        self.fetch_failures = 0
        self.pushed = {"orders": [], "customers": []}

    def fetch_records(self, entity, offset, limit, filters=None):
        self.fetch_calls.append((entity, offset + 1, offset + limit))
        if self.fetch_failures:
            self.fetch_failures -= 1
            raise TransientIOError("ERP timed out")
        return list(self.records.get(entity, [])[offset:offset + limit])

    def fetch_product(self, sku_or_id):
        for record in self.records.get("products", []):
            if str(record.get("ReferenciaBarras", "")) == sku_or_id or str(record.get("Id", "")) == sku_or_id:
                return record
        return None

    def fetch_tariff_conditions(self, product_id, customer_id=0):
        payload = self.tariffs.get(str(product_id))
        if isinstance(payload, Exception):
            raise payload
        return payload

    def push_order(self, record):
        self.pushed["orders"].append(record)
        return {"InfoError": {"Codigo": 0}}

    def push_customer(self, record):
        self.pushed["customers"].append(record)
        return {"InfoError": {"Codigo": 0}}


class FakePlatform:
    """In-memory store adapter that records every write."""

    def __init__(self):
        self.categories: Dict[str, int] = {}
        self.create_category_calls = 0
        self.fail_category_create = False
        self.products = {}
        self.orders = {}
        self.customers = {}
        self.fail_skus = set()
        self.write_failures = 0
        self.listings = {"products": [], "orders": [], "customers": []}
        self._next_id = 100

    def find_category_by_name(self, name):
        return self.categories.get(name.lower())

    def create_category(self, name):
        self.create_category_calls += 1
        if self.fail_category_create:
            raise TransientIOError(f"term '{name}' could not be created")
        self._next_id += 1
        self.categories[name.lower()] = self._next_id
        return self._next_id

    def find_or_create_category(self, name):
        return self.find_category_by_name(name) or self.create_category(name)

    def upsert_product(self, product):
        if self.write_failures:
            self.write_failures -= 1
            raise TransientIOError("store busy")
        if product.sku in self.fail_skus:
            return WriteResult(error="HTTP 400: invalid product")
        self._next_id += 1
        self.products[product.sku] = product
        return WriteResult(id=self._next_id)

    def upsert_order(self, order):
        self._next_id += 1
        self.orders[order.id] = order
        return WriteResult(id=self._next_id)

    def upsert_customer(self, customer):
        self._next_id += 1
        self.customers[customer.id] = customer
        return WriteResult(id=self._next_id)

    def list_orders(self, offset, limit):
        return self.listings["orders"][offset:offset + limit]

    def list_customers(self, offset, limit):
        return self.listings["customers"][offset:offset + limit]

    def list_products(self, offset, limit):
        return self.listings["products"][offset:offset + limit]


@pytest.fixture
def sanitizer():
    return FieldSanitizer()


@pytest.fixture
def state_store():
    return StateStore(path=None)


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def erp():
    return FakeErpClient()


@pytest.fixture
def categories(state_store, platform):
    return CategoryResolver(state_store, platform)


@pytest.fixture
def product_mapper(sanitizer, categories):
    return ProductMapper(sanitizer, categories)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_orchestrator(state_store, erp, platform, sanitizer, categories, sleeps):
    def _make(bad_ranges=(), batch_sizes=None, erp_client=erp, store_adapter=platform, max_retries=3,
              store=None, stale_after=3600.0):
        mappers = {
            "products": ProductMapper(sanitizer, categories),
            "orders": OrderMapper(sanitizer),
            "customers": CustomerMapper(sanitizer),
        }
        return SyncOrchestrator(
            store=store or state_store,
            erp_client=erp_client,
            platform=store_adapter,
            calculator=BatchRangeCalculator(bad_ranges, batch_sizes),
            mappers=mappers,
            price_resolver=PriceResolver(),
            max_retries=max_retries,
            base_delay=1.0,
            sleep=sleeps.append,
            stale_after=stale_after,
        )
    return _make
