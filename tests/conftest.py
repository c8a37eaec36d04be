"""Pytest configuration and fixtures"""
import asyncio
import copy
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("ADMIN_API_KEY", "test_admin_key")
os.environ.setdefault("CRON_SECRET", "test_cron_secret")
os.environ.setdefault("PHONEPE_CLIENT_ID", "test_client")
os.environ.setdefault("PHONEPE_CLIENT_SECRET", "test_client_secret")
os.environ.setdefault("PHONEPE_CLIENT_VERSION", "1")
os.environ.setdefault("PHONEPE_WEBHOOK_USERNAME", "hook_user")
os.environ.setdefault("PHONEPE_WEBHOOK_PASSWORD", "hook_pass")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "rzp_webhook_secret")
os.environ.setdefault("ORDER_ID_PREFIX", "ORD_")

from checkout.payments.constants import ProviderState  # noqa: E402
from checkout.services.database import Database  # noqa: E402
from checkout.services.gateways import GatewayAdapter, GatewayRegistry, CashOnDeliveryAdapter  # noqa: E402
from checkout.services.gateways.base import (  # noqa: E402
    GatewayStatus,
    GatewayTransaction,
    WebhookNotification,
)
from checkout.services.shipping import ShipmentResult, ShippingPushError  # noqa: E402


# ==================== IN-MEMORY SUPABASE ====================

class _Result:
    def __init__(self, data):
        self.data = data


# Columns each table keeps unique, like the migration's constraints
UNIQUE_COLUMNS: Dict[str, tuple] = {
    "products": ("id",),
    "product_variants": ("id",),
    "payment_intents": ("intent_id", "merchant_order_id"),
    "payment_attempts": ("attempt_id",),
    "orders": ("order_id", "intent_id", "merchant_order_id"),
}

# Tables whose "id" is a generated identity column
IDENTITY_TABLES = {"payment_attempts"}


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value
    return value


def _duplicate(table: str, column: str) -> APIError:
    return APIError({
        "message": f'duplicate key value violates unique constraint "{table}_{column}_key"',
        "code": "23505",
        "hint": None,
        "details": f"Key ({column}) already exists.",
    })


class _FakeQuery:
    """Chainable PostgREST-style query over one in-memory table."""

    def __init__(self, store: "FakeSupabase", table: str):
        self.store = store
        self.table = table
        self._mode = "select"
        self._payload: Any = None
        self._filters: List = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None

    # ---- verbs ----
    def select(self, *_columns):
        self._mode = "select"
        return self

    def insert(self, data):
        self._mode = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._mode = "update"
        self._payload = data
        return self

    # ---- filters ----
    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def is_(self, column, value):
        assert value in ("null", None)
        self._filters.append(lambda row: row.get(column) is None)
        return self

    def lt(self, column, value):
        bound = _comparable(value)
        self._filters.append(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) < bound
        )
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    # ---- execution ----
    def _matching(self) -> List[dict]:
        rows = [row for row in self.store.tables[self.table] if all(f(row) for f in self._filters)]
        if self._order:
            column, desc = self._order
            rows.sort(key=lambda row: _comparable(row.get(column)) or 0, reverse=desc)
        if self._limit is not None:
            rows = rows[: self._limit]
        return rows

    def _check_unique(self, candidate: dict, ignore: Optional[dict] = None) -> None:
        for column in UNIQUE_COLUMNS.get(self.table, ()):
            value = candidate.get(column)
            if value is None:
                continue
            for row in self.store.tables[self.table]:
                if row is not ignore and row.get(column) == value:
                    raise _duplicate(self.table, column)

    async def execute(self):
        # Yield so concurrent callers interleave between statements
        await asyncio.sleep(0)
        self.store.calls.append((self.table, self._mode))
        if self.table in self.store.failing_tables and self._mode in self.store.failing_tables[self.table]:
            raise APIError({"message": "connection reset", "code": "08006", "hint": None, "details": None})

        if self._mode == "insert":
            rows = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for data in rows:
                row = copy.deepcopy(data)
                if self.table in IDENTITY_TABLES:
                    self.store.sequence += 1
                    row["id"] = self.store.sequence
                self._check_unique(row)
                self.store.tables[self.table].append(row)
                inserted.append(copy.deepcopy(row))
            return _Result(inserted)

        if self._mode == "update":
            updated = []
            for row in self._matching():
                candidate = {**row, **copy.deepcopy(self._payload)}
                self._check_unique(candidate, ignore=row)
                row.update(copy.deepcopy(self._payload))
                updated.append(copy.deepcopy(row))
            return _Result(updated)

        return _Result([copy.deepcopy(row) for row in self._matching()])


class _FakeRpc:
    def __init__(self, store: "FakeSupabase", name: str, params: dict):
        self.store = store
        self.name = name
        self.params = params

    async def execute(self):
        await asyncio.sleep(0)
        handler = getattr(self.store, f"_rpc_{self.name}")
        return _Result(handler(**self.params))


class FakeSupabase:
    """In-memory stand-in for the async Supabase client."""

    def __init__(self):
        self.tables: Dict[str, List[dict]] = {name: [] for name in UNIQUE_COLUMNS}
        self.sequence = 0
        self.calls: List[tuple] = []
        # table -> modes that raise, e.g. {"orders": {"insert"}}
        self.failing_tables: Dict[str, set] = {}

    def table(self, name: str) -> _FakeQuery:
        return _FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> _FakeRpc:
        return _FakeRpc(self, name, params)

    # ---- helpers ----
    def rows(self, table: str, **match) -> List[dict]:
        return [
            row for row in self.tables[table]
            if all(row.get(k) == v for k, v in match.items())
        ]

    def row(self, table: str, **match) -> Optional[dict]:
        found = self.rows(table, **match)
        return found[0] if found else None

    def _product_stock(self, product_id: str) -> int:
        variants = self.rows("product_variants", product_id=product_id)
        if variants:
            return sum(v["stock"] for v in variants)
        product = self.row("products", id=product_id)
        return product["stock"] if product else 0

    def _adjust(self, p_product_id, p_variant_id, delta: int) -> int:
        if p_variant_id:
            target = self.row("product_variants", id=p_variant_id, product_id=p_product_id)
        else:
            target = self.row("products", id=p_product_id)
        if target is not None:
            target["stock"] = max(target["stock"] + delta, 0)
        return self._product_stock(p_product_id)

    def _rpc_decrement_stock(self, p_product_id, p_variant_id, p_quantity):
        return self._adjust(p_product_id, p_variant_id, -p_quantity)

    def _rpc_restore_stock(self, p_product_id, p_variant_id, p_quantity):
        return self._adjust(p_product_id, p_variant_id, p_quantity)


# ==================== CATALOG ====================

@pytest.fixture
def fake_client():
    client = FakeSupabase()
    client.tables["products"].extend([
        # Priced at product level, no variants
        {"id": "prod-mug", "name": "Ceramic Mug", "price": "250.00", "stock": 10, "is_active": True},
        # Priced per variant
        {"id": "prod-tee", "name": "Cotton Tee", "price": None, "stock": 0, "is_active": True},
        {"id": "prod-poster", "name": "Poster", "price": "150.00", "stock": 2, "is_active": True},
        {"id": "prod-pen", "name": "Pen", "price": "0.50", "stock": 100, "is_active": True},
    ])
    client.tables["product_variants"].extend([
        {"id": "var-tee-s", "product_id": "prod-tee", "size": "S", "price": "599.00", "stock": 5, "position": 0},
        {"id": "var-tee-m", "product_id": "prod-tee", "size": "M", "price": "649.00", "stock": 1, "position": 1},
    ])
    return client


@pytest.fixture
def db(fake_client):
    return Database(fake_client)


@pytest.fixture
def customer_info():
    return {"fullName": "Asha Rao", "email": "asha@example.com", "mobileNumber": "9876543210"}


@pytest.fixture
def shipping_address():
    return {
        "addressLine1": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }


# ==================== COLLABORATORS ====================

class FakeGateway(GatewayAdapter):
    """Scriptable gateway: records calls and answers with preset states."""

    name = "phonepe"

    def __init__(self, name: str = "phonepe"):
        super().__init__()
        self.name = name
        self.status_state = ProviderState.PENDING
        self.status_error: Optional[Exception] = None
        self.create_error: Optional[Exception] = None
        self.created: List[tuple] = []
        self.queried: List[str] = []
        self.webhook_token = "good-token"

    async def create_transaction(self, merchant_order_id, amount_minor_units, redirect_url, callback_url):
        self.created.append((merchant_order_id, amount_minor_units))
        if self.create_error:
            raise self.create_error
        return GatewayTransaction(
            provider_state=ProviderState.INITIATED,
            redirect_url=f"https://pay.example/{merchant_order_id}",
            gateway_order_id=f"GW-{merchant_order_id}",
            raw={"orderId": f"GW-{merchant_order_id}", "state": "PENDING"},
        )

    async def query_status(self, merchant_order_id):
        self.queried.append(merchant_order_id)
        if self.status_error:
            raise self.status_error
        return GatewayStatus(
            provider_state=self.status_state,
            transaction_id="T-1" if self.status_state == ProviderState.COMPLETED else None,
            raw={"state": self.status_state.value},
        )

    def verify_webhook(self, headers, raw_body):
        return headers.get("authorization") == self.webhook_token

    def parse_webhook(self, payload):
        return WebhookNotification(
            provider_state=ProviderState(payload["state"]),
            merchant_order_id=payload.get("merchantOrderId"),
            transaction_id=payload.get("transactionId"),
            raw=payload,
        )


class FakeShipping:
    def __init__(self, configured: bool = True, error: Optional[str] = None):
        self.configured = configured
        self.error = error
        self.pushed: List[str] = []

    def is_configured(self):
        return self.configured

    async def push(self, order):
        await asyncio.sleep(0)
        self.pushed.append(order.order_id)
        if self.error:
            raise ShippingPushError(self.error)
        return ShipmentResult(
            carrier_order_id=f"SHIP-{order.order_id}",
            tracking_number="AWB123",
            carrier_name="test-carrier",
        )

    async def aclose(self):
        pass


class FakeNotifier:
    def __init__(self, configured: bool = True, error: Optional[str] = None):
        self.configured = configured
        self.error = error
        self.sent: List[tuple] = []

    def is_configured(self):
        return self.configured

    async def send_order_confirmation(self, order, recipient):
        await asyncio.sleep(0)
        self.sent.append((order.order_id, recipient))
        if self.error:
            raise RuntimeError(self.error)
        return "msg-1"

    async def aclose(self):
        pass


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def registry(gateway):
    return GatewayRegistry({"phonepe": gateway, "cod": CashOnDeliveryAdapter()})


@pytest.fixture
def shipping():
    return FakeShipping()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def materializer(db, shipping, notifier):
    from checkout.orders import OrderMaterializer
    return OrderMaterializer(db, shipping, notifier)


@pytest.fixture
def intent_service(db, registry):
    from checkout.payments.intents import PaymentIntentService
    return PaymentIntentService(db, registry)


@pytest.fixture
def confirmation_service(db, registry, materializer):
    from checkout.payments.confirmation import PaymentConfirmationService
    return PaymentConfirmationService(db, registry, materializer)
