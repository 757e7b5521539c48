"""Shared test fixtures for the access-control and API tests."""

import os
from typing import AsyncGenerator

# Must be set before the app (and its settings) are imported.
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from garagehub.main import app
from garagehub.api.deps import get_db, get_repository
from garagehub.auth.descriptors import ResourceKind
from garagehub.auth.engine import AuthorizationEngine
from garagehub.auth.jwt import create_access_token
from garagehub.auth.principal import Principal
from garagehub.auth.roles import Role
from tests.fakes import InMemoryRepository


# ── Principals ───────────────────────────────────────────────────────────────

ADMIN_ID = "admin-1"
TECH_ID = "tech-7"
OTHER_TECH_ID = "tech-8"
CLIENT_ID = "user-client-1"
OTHER_CLIENT_ID = "user-client-2"
UNMAPPED_CLIENT_ID = "user-client-9"


def admin() -> Principal:
    return Principal(id=ADMIN_ID, role=Role.ADMIN, email="admin@garagehub.test")


def technician(tech_id: str = TECH_ID) -> Principal:
    return Principal(id=tech_id, role=Role.TECHNICIAN, email=f"{tech_id}@garagehub.test")


def client(user_id: str = CLIENT_ID, email: str | None = None) -> Principal:
    return Principal(id=user_id, role=Role.CLIENT, email=email)


# ── Repository with a small shop ─────────────────────────────────────────────

@pytest.fixture
def repo() -> InMemoryRepository:
    """
    Two customers, each with a linked client account and a vehicle.
    tech-7 is assigned repair order ro-1 on veh-1 and appointment apt-1;
    ro-2 on veh-2 is unassigned.
    """
    r = InMemoryRepository()
    r.add(ResourceKind.CUSTOMER, id="cust-1", first_name="Ana", last_name="Silva", email="ana@example.com")
    r.add(ResourceKind.CUSTOMER, id="cust-2", first_name="Ben", last_name="Okafor", email="ben@example.com")

    r.add(ResourceKind.USER, id=ADMIN_ID, username="admin", email="admin@garagehub.test", role="admin")
    r.add(ResourceKind.USER, id=TECH_ID, username="tech7", email="tech-7@garagehub.test", role="technician")
    r.add(ResourceKind.USER, id=OTHER_TECH_ID, username="tech8", email="tech-8@garagehub.test", role="technician")
    r.add(ResourceKind.USER, id=CLIENT_ID, username="ana", email="ana@example.com", role="client",
          customer_id="cust-1")
    r.add(ResourceKind.USER, id=OTHER_CLIENT_ID, username="ben", email="ben@example.com", role="client",
          customer_id="cust-2")
    r.add(ResourceKind.USER, id=UNMAPPED_CLIENT_ID, username="nobody", email="nobody@example.com", role="client")

    r.add(ResourceKind.VEHICLE, id="veh-1", customer_id="cust-1", year=2019, make="Honda", model="Civic")
    r.add(ResourceKind.VEHICLE, id="veh-2", customer_id="cust-2", year=2021, make="Ford", model="Focus")

    r.add(ResourceKind.APPOINTMENT, id="apt-1", customer_id="cust-1", vehicle_id="veh-1",
          technician_id=TECH_ID, service_type="Oil change", status="scheduled")
    r.add(ResourceKind.APPOINTMENT, id="apt-2", customer_id="cust-2", vehicle_id="veh-2",
          technician_id=None, service_type="Brakes", status="scheduled")

    r.add(ResourceKind.REPAIR_ORDER, id="ro-1", order_number="RO-1001", customer_id="cust-1",
          vehicle_id="veh-1", appointment_id="apt-1", technician_id=TECH_ID,
          status="in-progress", description="Replace pads")
    r.add(ResourceKind.REPAIR_ORDER, id="ro-2", order_number="RO-1002", customer_id="cust-2",
          vehicle_id="veh-2", technician_id=None, status="created", description="Noise at idle")

    r.add(ResourceKind.INVOICE, id="inv-1", invoice_number="INV-1", customer_id="cust-1",
          repair_order_id="ro-1", subtotal=100, tax=10, total=110, status="pending")
    r.add(ResourceKind.INVOICE, id="inv-2", invoice_number="INV-2", customer_id="cust-2",
          repair_order_id="ro-2", subtotal=200, tax=20, total=220, status="pending")

    r.add(ResourceKind.INSPECTION, id="insp-1", customer_id="cust-1", vehicle_id="veh-1",
          repair_order_id="ro-1", technician_id=TECH_ID, vehicle_info="2019 Honda Civic",
          customer_name="Ana Silva", service_type="Safety", status="pending")

    r.add(ResourceKind.INVENTORY, id="part-1", part_number="BP-100", name="Brake pads",
          category="brakes", quantity=12, unit_cost=25)
    return r


@pytest.fixture
def engine(repo: InMemoryRepository) -> AuthorizationEngine:
    return AuthorizationEngine(repo)


# ── HTTP clients ─────────────────────────────────────────────────────────────

def _make_auth_header(user_id: str, email: str | None, role: str) -> dict:
    """Create an Authorization header with a valid JWT."""
    token = create_access_token(user_id, email, role)
    return {"Authorization": f"Bearer {token}"}


async def _no_db():
    yield None


def _override_repository(repository: InMemoryRepository):
    async def _get_repository():
        return repository
    return _get_repository


@pytest_asyncio.fixture
async def make_client(repo: InMemoryRepository):
    """Factory for HTTP clients backed by the in-memory repository."""
    app.dependency_overrides[get_db] = _no_db
    app.dependency_overrides[get_repository] = _override_repository(repo)
    clients: list[AsyncClient] = []

    async def _make(principal: Principal | None = None, role: str | None = None) -> AsyncClient:
        headers = {}
        if principal is not None:
            headers = _make_auth_header(principal.id, principal.email, role or principal.role.value)
        http = AsyncClient(transport=ASGITransport(app=app), base_url="http://test", headers=headers)
        clients.append(http)
        return http

    yield _make

    for http in clients:
        await http.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_client(make_client) -> AsyncGenerator[AsyncClient, None]:
    yield await make_client(admin())


@pytest_asyncio.fixture
async def tech_client(make_client) -> AsyncGenerator[AsyncClient, None]:
    yield await make_client(technician())


@pytest_asyncio.fixture
async def client_client(make_client) -> AsyncGenerator[AsyncClient, None]:
    yield await make_client(client(email="ana@example.com"))


@pytest_asyncio.fixture
async def anon_client(make_client) -> AsyncGenerator[AsyncClient, None]:
    yield await make_client()
