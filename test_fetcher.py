# test_fetcher.py
import asyncio

import httpx
import pytest

from canteen.schemas.menu import MenuItem
from canteen.schemas.reports import ReportPeriod
from canteen.services.exporter import ExportError
from canteen.services.fetcher import ReportDataset, fetch_dataset, fetch_export, fetcher_for, report_query
from canteen.services.store import EventChannel, ReportStore
from canteen.services.upstream import UpstreamClient, UpstreamError, api_path

MARCH = ReportPeriod(month="3", year="2025")


def run(coro):
    return asyncio.run(coro)


async def _with_client(backend, fn, token=None):
    async with UpstreamClient(token=token, transport=backend.transport) as client:
        return await fn(client)


# ===== upstream client =====

def test_api_path():
    assert api_path("/menu", "/api") == "/api/menu"
    assert api_path("menu", "api") == "/api/menu"
    assert api_path("/api/menu", "/api") == "/api/menu"
    assert api_path("/menu", "") == "/menu"


def test_get_json_raises_with_backend_message(backend):
    backend.fail.add("/api/menu")
    with pytest.raises(UpstreamError) as ei:
        run(_with_client(backend, lambda c: c.get_json("/menu")))
    assert ei.value.status == 500
    assert str(ei.value) == "boom"


def test_non_json_body_reads_as_none(backend):
    backend.routes["/api/menu"] = httpx.Response(200, text="<html>maintenance</html>")
    assert run(_with_client(backend, lambda c: c.get_json("/menu"))) is None


def test_bearer_token_forwarded(backend):
    run(_with_client(backend, lambda c: c.get_json("/menu"), token="abc"))
    assert backend.calls[-1].headers["authorization"] == "Bearer abc"


# ===== dataset fan-out =====

def test_fetch_dataset_decodes_all_envelopes(backend):
    ds = run(_with_client(backend, lambda c: fetch_dataset(c, MARCH)))
    assert [m.name for m in ds.menu] == ["Rice Meal", "Iced Tea", "Banana Cue", "New Snack"]
    assert ds.menu[1].id == "menu-2" and ds.menu[1].category == "Drinks" and ds.menu[1].price == 20
    assert len(ds.reservations) == 6
    assert len(ds.top_ups) == 5
    assert ds.dashboard.orders_today == 2
    assert ds.dashboard.recent_orders == [{"id": "R4"}]
    assert ds.server_report.years == ["2024"]

    paths = backend.paths()
    assert set(paths) == {"/api/menu", "/api/reservations/admin", "/api/admin/topups",
                          "/api/admin/dashboard", "/api/reports/monthly"}
    menu_call = next(c for c in backend.calls if c.url.path == "/api/menu")
    assert menu_call.url.params["includeDeleted"] == "true"
    report_call = next(c for c in backend.calls if c.url.path == "/api/reports/monthly")
    assert dict(report_call.url.params) == {"month": "03", "year": "2025"}


def test_one_failing_endpoint_does_not_block_the_rest(backend):
    backend.fail.update({"/api/admin/topups", "/api/reports/monthly"})
    ds = run(_with_client(backend, lambda c: fetch_dataset(c, MARCH)))
    assert ds.top_ups == []
    assert ds.server_report is None
    assert len(ds.menu) == 4 and len(ds.reservations) == 6


def test_malformed_collections_become_empty(backend):
    backend.routes["/api/menu"] = {"data": "nope"}
    backend.routes["/api/admin/dashboard"] = ["not", "an", "object"]
    ds = run(_with_client(backend, lambda c: fetch_dataset(c, ReportPeriod())))
    assert ds.menu == []
    assert ds.dashboard.total_sales == 0


def test_report_query():
    assert report_query(ReportPeriod()) == {}
    assert report_query(ReportPeriod(month="11")) == {"month": "11"}
    assert report_query(MARCH) == {"month": "03", "year": "2025"}


# ===== export proxy =====

def test_export_url_answer(backend):
    backend.routes["/api/reports/export"] = {"url": "https://files.example/report.xlsx"}
    out = run(_with_client(backend, lambda c: fetch_export(c, MARCH, "xlsx")))
    assert out.url == "https://files.example/report.xlsx"
    assert dict(backend.calls[-1].url.params) == {"month": "03", "year": "2025", "format": "xlsx"}


def test_export_file_answer(backend):
    backend.routes["/api/reports/export"] = httpx.Response(
        200, content=b"%PDF-1.4",
        headers={"content-type": "application/pdf", "content-disposition": 'attachment; filename="march.pdf"'},
    )
    out = run(_with_client(backend, lambda c: fetch_export(c, MARCH, "pdf")))
    assert out.url is None
    assert (out.filename, out.content, out.media_type) == ("march.pdf", b"%PDF-1.4", "application/pdf")


def test_export_default_filename(backend):
    backend.routes["/api/reports/export"] = httpx.Response(200, content=b"a,b", headers={"content-type": "text/csv"})
    out = run(_with_client(backend, lambda c: fetch_export(c, MARCH, "csv")))
    assert out.filename == "March_2025.csv"


@pytest.mark.parametrize("answer", [
    httpx.Response(500, json={"error": "boom"}),
    httpx.Response(200, json={"ok": True}),
])
def test_export_failures(backend, answer):
    backend.routes["/api/reports/export"] = answer
    with pytest.raises(ExportError):
        run(_with_client(backend, lambda c: fetch_export(c, MARCH, "xlsx")))


def test_export_rejects_unknown_format(backend):
    with pytest.raises(ExportError):
        run(_with_client(backend, lambda c: fetch_export(c, MARCH, "docx")))
    assert backend.calls == []


# ===== report store =====

def test_stale_refresh_is_discarded():
    async def scenario():
        gates = {}

        async def fetch(period, token=None):
            gates[period.month] = gate = asyncio.Event()
            await gate.wait()
            return ReportDataset(menu=[MenuItem(name=f"month {period.month}")])

        store = ReportStore(fetch)
        older = asyncio.create_task(store.refresh(ReportPeriod(month="3")))
        await asyncio.sleep(0)
        newer = asyncio.create_task(store.refresh(ReportPeriod(month="4")))
        await asyncio.sleep(0)
        gates["4"].set()
        new_res = await newer
        gates["3"].set()
        old_res = await older
        return store, old_res, new_res

    store, old_res, new_res = run(scenario())
    assert new_res.committed and new_res.generation == 2
    assert not old_res.committed and old_res.generation == 1
    assert store.state.period.month == "4"
    assert store.state.dataset.menu[0].name == "month 4"


def test_view_is_memoized_per_generation_and_category(reservations, topups, menu):
    async def fetch(period, token=None):
        return ReportDataset(menu=menu, reservations=reservations, top_ups=topups)

    store = ReportStore(fetch, period=MARCH)
    run(store.refresh())
    first = store.view()
    assert store.view() is first
    assert first.tables.orders == 3
    store.set_category("Drinks")
    second = store.view()
    assert second is not first
    assert [p.name for p in second.products] == ["Iced Tea"]
    run(store.refresh())
    assert store.view() is not second


def test_event_channel_publish_and_unsubscribe():
    seen = []

    async def on_async(topic, payload):
        seen.append(("async", topic, payload))

    channel = EventChannel()
    unsub = channel.subscribe("menu:updated", lambda t, p: seen.append(("sync", t, p)))
    channel.subscribe("menu:updated", on_async)
    assert run(channel.publish("menu:updated", {"id": 1})) == 2
    assert seen == [("sync", "menu:updated", {"id": 1}), ("async", "menu:updated", {"id": 1})]
    unsub()
    unsub()
    assert run(channel.publish("menu:updated")) == 1
    assert run(channel.publish("topups:updated")) == 0
    with pytest.raises(ValueError):
        channel.subscribe("orders:updated", on_async)
    with pytest.raises(ValueError):
        run(channel.publish("orders:updated"))


def test_bound_store_refreshes_on_update_events():
    calls = []

    async def fetch(period, token=None):
        calls.append(period)
        return ReportDataset()

    channel = EventChannel()
    store = ReportStore(fetch, period=MARCH)
    unsubs = store.bind(channel)
    run(channel.publish("reservations:updated"))
    assert calls == [MARCH]
    assert store.state.generation == 1
    for u in unsubs:
        u()
    run(channel.publish("menu:updated"))
    assert len(calls) == 1


def test_update_event_refreshes_with_the_publishers_token():
    tokens = []

    async def fetch(period, token=None):
        tokens.append(token)
        return ReportDataset()

    channel = EventChannel()
    ReportStore(fetch).bind(channel)
    run(channel.publish("topups:updated", None, token="admin-token"))
    assert tokens == ["admin-token"]


def test_store_fetch_sends_the_caller_token_upstream(backend):
    store = ReportStore(fetcher_for(transport=backend.transport, token="service-token"), period=MARCH)
    res = run(store.refresh(token="caller-token"))
    assert res.committed
    assert len(store.state.dataset.menu) == 4
    assert {c.headers.get("authorization") for c in backend.calls} == {"Bearer caller-token"}

    backend.calls.clear()
    run(store.refresh())
    assert {c.headers.get("authorization") for c in backend.calls} == {"Bearer service-token"}
