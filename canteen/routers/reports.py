import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response

from canteen.deps import get_dataset, get_period, get_store, get_upstream, require_token
from canteen.schemas.reports import RefreshOut, ReportPeriod, ReportSummaryOut
from canteen.services.exporter import REPORT_BUILDERS, ExportError, build_export
from canteen.services.fetcher import EXPORT_FORMATS, ReportDataset, fetch_export
from canteen.services.report import build_view, export_context, summary_out
from canteen.services.store import ReportStore
from canteen.services.upstream import UpstreamClient
from canteen.services.window import period_label

logger = logging.getLogger("canteen.reports")

router = APIRouter(prefix="/reports", tags=["reports"])


def _attachment(filename: str) -> dict:
    # plain ASCII fallback plus the RFC 5987 form for non-ASCII names
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "'")
    return {"Content-Disposition": f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"}


@router.get("/summary", response_model=ReportSummaryOut)
async def summary(
    category: Optional[str] = None,
    period: ReportPeriod = Depends(get_period),
    dataset: ReportDataset = Depends(get_dataset),
):
    """
    Aggregates for the admin reports screen, recomputed from the raw
    entities on every call.
    """
    view = build_view(dataset, period, category or "All")
    return summary_out(view, dataset)


@router.get("/export/{report_type}")
async def export_csv(
    report_type: str,
    category: Optional[str] = None,
    period: ReportPeriod = Depends(get_period),
    dataset: ReportDataset = Depends(get_dataset),
):
    if report_type not in REPORT_BUILDERS:
        raise HTTPException(404, detail=f"unknown report type: {report_type}")
    view = build_view(dataset, period, category or "All")
    try:
        out = build_export(report_type, export_context(view, dataset))
    except ExportError:
        logger.exception("export %s for %s failed", report_type, period_label(period))
        raise HTTPException(500, detail="Export failed")
    return Response(content=out.encode(), media_type=out.media_type, headers=_attachment(out.filename))


@router.get("/export")
async def export_upstream(
    format: str = "xlsx",
    period: ReportPeriod = Depends(get_period),
    client: UpstreamClient = Depends(get_upstream),
):
    """Backend-rendered export (csv/xlsx/pdf): streamed through, or its `{url}` echoed back."""
    fmt = format.lower()
    if fmt not in EXPORT_FORMATS:
        raise HTTPException(400, detail=f"unsupported format: {format}")
    try:
        payload = await fetch_export(client, period, fmt)
    except ExportError as e:
        logger.warning("upstream export failed: %s", e)
        raise HTTPException(502, detail="Export failed")
    if payload.url:
        return JSONResponse({"url": payload.url})
    return Response(content=payload.content, media_type=payload.media_type, headers=_attachment(payload.filename))


@router.get("/current", response_model=ReportSummaryOut)
def current(store: ReportStore = Depends(get_store)):
    return summary_out(store.view(), store.state.dataset)


@router.post("/refresh", response_model=RefreshOut)
async def refresh(
    category: Optional[str] = None,
    period: ReportPeriod = Depends(get_period),
    store: ReportStore = Depends(get_store),
    token: str = Depends(require_token),
):
    if category is not None:
        store.set_category(category)
    res = await store.refresh(period, token=token)
    return RefreshOut(generation=res.generation, committed=res.committed, period=period_label(res.state.period))
