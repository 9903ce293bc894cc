# conftest.py
import copy

import httpx
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from canteen.deps import forwarded_token, get_upstream
from canteen.main import app
from canteen.schemas.common import decode_list
from canteen.schemas.menu import MenuItem
from canteen.schemas.reservations import Reservation
from canteen.schemas.topups import TopUp
from canteen.services.fetcher import fetcher_for
from canteen.services.store import EventChannel, ReportStore
from canteen.services.upstream import UpstreamClient

# --- Raw upstream payloads ------------------------------------------------
MENU = [
    {"id": "menu-1", "name": "Rice Meal", "category": "Meals", "price": 50, "stock": 10,
     "createdAt": "2025-01-10T08:00:00"},
    {"_id": "menu-2", "name": "Iced Tea", "category": {"name": "Drinks", "iconID": 3}, "price": "20",
     "stock": 3, "created_at": "2025-02-01T08:00:00"},
    {"id": "menu-3", "name": "Banana Cue", "category": "Snacks", "price": 15, "stock": 0,
     "createdAt": "2025-03-15T08:00:00"},
    {"id": "menu-4", "name": "New Snack", "category": "Snacks", "price": 25, "stock": 8,
     "createdAt": "2025-06-01T08:00:00"},
]

RESERVATIONS = [
    {"id": "R1", "createdAt": "2025-03-05T10:00:00", "status": "approved",
     "items": [{"id": "menu-1", "name": "Rice Meal", "qty": 2, "price": 50}]},
    {"id": "R2", "createdAt": "2025-03-06T10:00:00", "status": "rejected",
     "items": [{"id": "menu-1", "name": "Rice Meal", "qty": 5, "price": 50}]},
    # composite cart id, resolved through the id suffix; price comes from the catalog
    {"id": "R3", "createdAt": "2025-03-31T23:59:59", "status": "Claimed",
     "items": [{"id": "cart-2", "name": "iced tea", "quantity": 3}]},
    {"id": "R4", "createdAt": "2025-04-01T00:00:00", "status": "pending",
     "items": [{"name": "Banana Cue", "qty": 4, "price": 15}]},
    {"id": "R5", "submittedAt": "2025-05-20T12:00:00Z", "status": "picked-up",
     "items": [{"productId": "x", "name": "Halo-Halo", "qty": 1, "price": "35.5", "category": "Desserts"}]},
    # no timestamp at all: never inside any window
    {"id": "R6", "status": "approved", "items": [{"name": "Rice Meal", "qty": 9, "price": 50}]},
]

TOPUPS = [
    {"id": "T1", "createdAt": "2025-03-10T09:00:00", "status": "Approved", "amount": 100, "provider": "GCash"},
    {"id": "T2", "createdAt": "2025-03-11T09:00:00", "status": "pending", "amount": 50},
    {"id": "T3", "createdAt": "2025-03-12T09:00:00", "status": "Declined", "amt": 30},
    {"id": "T4", "createdAt": "2025-04-02T09:00:00", "status": "approved", "amount": 200},
    {"id": "T5", "createdAt": "2025-03-13T09:00:00", "status": "on-hold", "value": 10},
]

DASHBOARD = {"totalSales": 0, "ordersToday": 2, "newUsers": 1, "pending": 1, "recentOrders": {"id": "R4"}}

SERVER_REPORT = {"month": 3, "year": 2025, "topProducts": [], "topCategories": [], "years": [2024]}


class FakeBackend:
    """In-process canteen API behind httpx.MockTransport."""

    def __init__(self):
        self.routes = {
            "/api/menu": copy.deepcopy(MENU),
            "/api/reservations/admin": {"data": copy.deepcopy(RESERVATIONS)},
            "/api/admin/topups": {"status": 200, "data": copy.deepcopy(TOPUPS)},
            "/api/admin/dashboard": copy.deepcopy(DASHBOARD),
            "/api/reports/monthly": copy.deepcopy(SERVER_REPORT),
        }
        self.fail: set[str] = set()
        self.calls: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path in self.fail:
            return httpx.Response(500, json={"error": "boom"})
        if path not in self.routes:
            return httpx.Response(404, json={"error": "not found"})
        body = self.routes[path]
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)

    def paths(self) -> list[str]:
        return [c.url.path for c in self.calls]


# --- Fixtures ---------------------------------------------------------------
@pytest.fixture
def menu():
    return decode_list(MENU, MenuItem)

@pytest.fixture
def reservations():
    return decode_list(RESERVATIONS, Reservation)

@pytest.fixture
def topups():
    return decode_list(TOPUPS, TopUp)

@pytest.fixture
def backend():
    return FakeBackend()

@pytest.fixture
def client(backend):
    async def upstream(token: str | None = Depends(forwarded_token)):
        c = UpstreamClient(token=token, transport=backend.transport)
        try:
            yield c
        finally:
            await c.aclose()

    store = ReportStore(fetcher_for(transport=backend.transport))
    events = EventChannel()
    store.bind(events)
    saved = (app.state.report_store, app.state.events)
    app.state.report_store, app.state.events = store, events
    app.dependency_overrides[get_upstream] = upstream
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
        app.state.report_store, app.state.events = saved
