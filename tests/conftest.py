"""Pytest configuration and fixtures."""

import json
import os
import time
from collections.abc import Generator
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from jwt.algorithms import ECAlgorithm

# Signing key for test tokens; the public half is what the app verifies against
TEST_PRIVATE_KEY = ec.generate_private_key(ec.SECP256R1())
TEST_PUBLIC_JWK = ECAlgorithm.to_jwk(TEST_PRIVATE_KEY.public_key())

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ["SUPABASE_SIGNING_KEY_JWK"] = TEST_PUBLIC_JWK
os.environ.setdefault("CARRIER_WEBHOOK_SECRET", "test-carrier-secret")
os.environ.setdefault("RESEND_API_KEY", "")

CARRIER_SECRET = os.environ["CARRIER_WEBHOOK_SECRET"]
USER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "770e8400-e29b-41d4-a716-446655440000"
ADMIN_ID = "990e8400-e29b-41d4-a716-446655440000"
ORDER_UUID = "660e8400-e29b-41d4-a716-446655440000"


def create_test_token(
    sub: str = USER_ID,
    email: str | None = "test@example.com",
    app_role: str | None = None,
    exp_offset: int = 3600,
    private_key: Any = None,
) -> str:
    """Create an ES256 test JWT shaped like a Supabase access token.

    Args:
        sub: Subject (user ID).
        email: User email.
        app_role: Role placed in app_metadata.
        exp_offset: Seconds from now for expiration (negative for expired).
        private_key: Signing key, defaults to the test key.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": "authenticated",
        "app_metadata": {"role": app_role} if app_role else {},
        "exp": now + exp_offset,
        "iat": now,
        "aud": "authenticated",
        "iss": "https://test.supabase.co/auth/v1",
    }
    return jwt.encode(payload, private_key or TEST_PRIVATE_KEY, algorithm="ES256")


def auth_headers(sub: str = USER_ID, app_role: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_test_token(sub=sub, app_role=app_role)}"}


def admin_headers() -> dict[str, str]:
    return auth_headers(sub=ADMIN_ID, app_role="admin")


def ts(days_ago: float = 0, base: datetime | None = None) -> str:
    """ISO timestamp `days_ago` days before `base` (default now)."""
    base = base or datetime.now(timezone.utc)
    return (base - timedelta(days=days_ago)).isoformat()


def make_item(
    item_id: str = "item-1",
    status: str = "Ordered",
    quantity: int = 1,
    amount: float = 499.0,
    history: list[tuple[str, str]] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build an order item; history defaults to a single entry for `status`."""
    if history is None:
        history = [("Ordered", ts(10))]
        if status != "Ordered":
            history.append((status, ts(1)))
    item = {
        "id": item_id,
        "product": {"product_id": "prod-1", "name": "Linen Shirt", "image": None},
        "color": {"name": "Blue", "hex_code": "#0000ff"},
        "size": "M",
        "quantity": quantity,
        "amount": amount,
        "status": status,
        "status_history": [
            {"status": entry_status, "note": None, "changed_at": changed_at}
            for entry_status, changed_at in history
        ],
    }
    item.update(extra)
    return item


def make_order(
    items: list[dict[str, Any]] | None = None,
    order_uuid: str = ORDER_UUID,
    user_id: str = USER_ID,
    payment_method: str = "ONLINE",
    **extra: Any,
) -> dict[str, Any]:
    order = {
        "id": order_uuid,
        "order_id": "ORD-1001",
        "user_id": user_id,
        "items": items if items is not None else [make_item()],
        "shipping_info": {
            "address": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "country": "India",
            "postal_code": "560001",
            "phone": "9999999999",
        },
        "customer_name": "Asha Rao",
        "customer_email": "asha@example.com",
        "payment_method": payment_method,
        "payment_status": "PAID",
        "amount": {"shipping_charges": 50.0, "total_amount": 549.0},
        "ordered_at": ts(10),
        "version": 1,
        "created_at": ts(10),
        "updated_at": ts(10),
    }
    order.update(extra)
    return order


def json_contains(value: Any, pattern: Any) -> bool:
    """Postgres JSONB containment (value @> pattern)."""
    if isinstance(pattern, dict):
        return isinstance(value, dict) and all(
            key in value and json_contains(value[key], sub) for key, sub in pattern.items()
        )
    if isinstance(pattern, list):
        return isinstance(value, list) and all(
            any(json_contains(candidate, sub) for candidate in value) for sub in pattern
        )
    return value == pattern


class FakeOrderRepository:
    """In-memory stand-in for OrderRepository with the same version semantics."""

    def __init__(self, orders: list[dict[str, Any]] | None = None) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.saves: list[dict[str, Any]] = []
        # Simulated concurrent commits: each one bumps the version before our save
        self.concurrent_commits = 0
        for order in orders or []:
            self.add(order)

    def add(self, order: dict[str, Any]) -> None:
        self.rows[str(order["id"])] = deepcopy(order)

    def row(self, order_id: str = ORDER_UUID) -> dict[str, Any]:
        return self.rows[str(order_id)]

    async def get(self, order_id: str) -> dict[str, Any] | None:
        row = self.rows.get(str(order_id))
        return deepcopy(row) if row else None

    def _matching(self, element: dict[str, Any] | None, user_id: str | None) -> list[dict[str, Any]]:
        rows = [
            row
            for row in self.rows.values()
            if (element is None or json_contains(row.get("items"), json.loads(json.dumps([element]))))
            and (user_id is None or str(row.get("user_id")) == str(user_id))
        ]
        return [deepcopy(row) for row in sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)]

    async def find_by_item_id(self, item_id: str, user_id: str | None = None) -> dict[str, Any] | None:
        found = self._matching({"id": str(item_id)}, user_id)
        return found[0] if found else None

    async def find_by_carrier_order_id(self, carrier_order_id: str) -> dict[str, Any] | None:
        found = self._matching({"carrier": {"order_id": str(carrier_order_id)}}, None)
        if not found:
            found = self._matching({"carrier": {"return_order_id": str(carrier_order_id)}}, None)
        return found[0] if found else None

    async def find_by_return_id(self, return_id: str) -> dict[str, Any] | None:
        found = self._matching({"return_id": str(return_id)}, None)
        return found[0] if found else None

    async def list_containing(
        self,
        element: dict[str, Any] | None = None,
        user_id: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        return self._matching(element, user_id)[:limit]

    async def save(self, order: dict[str, Any], expected_version: int) -> dict[str, Any] | None:
        row = self.rows.get(str(order["id"]))
        if row is None:
            return None
        if self.concurrent_commits:
            self.concurrent_commits -= 1
            row["version"] = row.get("version", 0) + 1
        if row.get("version", 0) != expected_version:
            return None
        row["items"] = deepcopy(order.get("items", []))
        row["version"] = expected_version + 1
        if order.get("payment_status"):
            row["payment_status"] = order["payment_status"]
        self.saves.append(deepcopy(row))
        return deepcopy(row)


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def repository() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with (
        patch("src.core.supabase.get_supabase_client", return_value=mock_client),
        patch("src.services.order_repository.get_supabase_client", return_value=mock_client),
    ):
        yield mock_client


@pytest.fixture
def app_with_repository(
    repository: FakeOrderRepository,
    mock_supabase_client: MagicMock,
) -> Generator[Any, None, None]:
    """The FastAPI app with every service wired to the in-memory repository."""
    from src.api import deps
    from src.main import app
    from src.services.carrier_webhook_service import CarrierWebhookService
    from src.services.order_lifecycle_service import OrderLifecycleService
    from src.services.refund_service import RefundService
    from src.services.shipment_service import ShipmentService

    app.dependency_overrides[deps.get_lifecycle_service] = lambda: OrderLifecycleService(repository=repository)
    app.dependency_overrides[deps.get_refund_service] = lambda: RefundService(repository=repository)
    app.dependency_overrides[deps.get_shipment_service] = lambda: ShipmentService(repository=repository)
    app.dependency_overrides[deps.get_webhook_service] = lambda: CarrierWebhookService(repository=repository)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app_with_repository: Any) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Yields:
        TestClient: FastAPI test client.
    """
    with TestClient(app_with_repository) as test_client:
        yield test_client
