import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, List, Optional
from urllib.parse import unquote

from canteen.schemas.common import decode_list, decode_one, decode_optional
from canteen.schemas.menu import MenuItem
from canteen.schemas.reports import ALL, DashboardSummary, ReportPeriod, ServerReport
from canteen.schemas.reservations import Reservation
from canteen.schemas.topups import TopUp
from canteen.services.exporter import ExportError, filename_slug
from canteen.services.upstream import UpstreamClient, UpstreamError
from canteen.services.window import period_label

logger = logging.getLogger("canteen.fetch")

EXPORT_FORMATS = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "pdf": "application/pdf",
}

_FILENAME_RE = re.compile(r"filename\*?=(?:UTF-8'')?[\"']?([^;\"']+)", re.IGNORECASE)


@dataclass(frozen=True)
class ReportDataset:
    """Raw entities for one report run, already decoded."""
    menu: List[MenuItem] = field(default_factory=list)
    reservations: List[Reservation] = field(default_factory=list)
    top_ups: List[TopUp] = field(default_factory=list)
    dashboard: DashboardSummary = field(default_factory=DashboardSummary)
    server_report: Optional[ServerReport] = None


@dataclass(frozen=True)
class ExportPayload:
    filename: str = ""
    content: bytes = b""
    media_type: str = "application/octet-stream"
    url: Optional[str] = None


def report_query(period: ReportPeriod) -> dict:
    qp = {}
    if period.month != ALL:
        qp["month"] = period.month.zfill(2)
    if period.year != ALL:
        qp["year"] = period.year
    return qp


async def _or_default(label: str, call: Awaitable[Any], default: Any) -> Any:
    try:
        return await call
    except UpstreamError as e:
        logger.warning("fetch %s failed, using empty default: %s", label, e)
        return default


async def fetch_dataset(client: UpstreamClient, period: ReportPeriod) -> ReportDataset:
    """
    Fan out the five reads and join them. Each read falls back to its own
    empty value so one failing endpoint never blocks the others.
    """
    menu, reservations, top_ups, dashboard, report = await asyncio.gather(
        _or_default("menu", client.get_json("/menu", params={"includeDeleted": "true"}), []),
        _or_default("reservations", client.get_json("/reservations/admin"), []),
        _or_default("topups", client.get_json("/admin/topups"), []),
        _or_default("dashboard", client.get_json("/admin/dashboard"), {}),
        _or_default("report", client.get_json("/reports/monthly", params=report_query(period) or None), None),
    )
    ds = ReportDataset(
        menu=decode_list(menu, MenuItem),
        reservations=decode_list(reservations, Reservation),
        top_ups=decode_list(top_ups, TopUp),
        dashboard=decode_one(dashboard, DashboardSummary),
        server_report=decode_optional(report, ServerReport),
    )
    logger.info(
        "fetched %d menu items, %d reservations, %d top-ups for %s",
        len(ds.menu), len(ds.reservations), len(ds.top_ups), period_label(period),
    )
    return ds


async def fetch_export(client: UpstreamClient, period: ReportPeriod, fmt: str = "xlsx") -> ExportPayload:
    """Proxy the backend's own export: a file body or a `{url}` redirect."""
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"unsupported export format: {fmt}")
    try:
        r = await client.get("/reports/export", params={**report_query(period), "format": fmt})
    except UpstreamError as e:
        raise ExportError(str(e)) from e

    content_type = r.headers.get("content-type", "").lower()
    body: Any = None
    if "application/json" in content_type or not r.is_success:
        try:
            body = r.json()
        except ValueError:
            body = None
    if isinstance(body, dict) and body.get("url"):
        return ExportPayload(url=str(body["url"]))
    if not r.is_success:
        raise ExportError(f"export failed ({r.status_code})")
    if "application/json" in content_type:
        raise ExportError("export returned no file URL")

    filename = f"{filename_slug(period_label(period))}.{fmt}"
    m = _FILENAME_RE.search(r.headers.get("content-disposition", ""))
    if m and m.group(1):
        filename = unquote(m.group(1))
    return ExportPayload(
        filename=filename,
        content=r.content,
        media_type=content_type or EXPORT_FORMATS[fmt],
    )


def fetcher_for(transport=None, token: Optional[str] = None):
    """
    A fetch callable for ReportStore that opens its own client per run.
    A per-call token (the caller's bearer) takes precedence over `token`.
    """
    async def fetch(period: ReportPeriod, caller_token: Optional[str] = None) -> ReportDataset:
        async with UpstreamClient(token=caller_token or token, transport=transport) as client:
            return await fetch_dataset(client, period)
    return fetch
