import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from canteen.config import settings
from canteen.schemas.menu import MenuItem, stock_status
from canteen.schemas.reports import AggregateTables, CategoryRow, DashboardSummary, ItemTotal, ReportPeriod
from canteen.services.aggregator import category_rows
from canteen.services.window import period_label
from canteen.util.money import _money

logger = logging.getLogger("canteen.export")

BOM = "\ufeff"
DELIMITER = ","

Row = List[Any]


class ExportError(Exception):
    """No complete CSV document could be produced."""


@dataclass(frozen=True)
class CsvExport:
    filename: str
    content: str
    media_type: str = "text/csv; charset=utf-8"

    def encode(self) -> bytes:
        return self.content.encode("utf-8")


@dataclass(frozen=True)
class ReportContext:
    """Everything a report builder may print, computed once per request."""
    period: ReportPeriod
    tables: AggregateTables
    top_items: Sequence[ItemTotal]
    products: Sequence[ItemTotal]
    dashboard: DashboardSummary
    catalog: Sequence[MenuItem] = ()
    generated_at: Optional[datetime] = None


# ---------- encoding ----------

def quote_field(value: Any, delimiter: str = DELIMITER, currency: Optional[str] = None) -> str:
    text = "" if value is None else str(value)
    glyph = currency if currency is not None else settings.CURRENCY_SYMBOL
    if delimiter in text or "\n" in text or "\r" in text or '"' in text or (glyph and glyph in text):
        return '"' + text.replace('"', '""') + '"'
    return text

def money(amount: Any) -> str:
    return f"{settings.CURRENCY_SYMBOL}{_money(amount or 0):.2f}"

def to_delimited_text(rows: Iterable[Row], delimiter: str = DELIMITER) -> str:
    lines = [delimiter.join(quote_field(c, delimiter) for c in row) for row in rows]
    return BOM + "\n".join(lines)

def filename_slug(label: str) -> str:
    # whitespace runs become "_", date separators become "-"
    return re.sub(r"\s+", "_", label.strip()).replace("/", "-")

def export_filename(report_type: str, label: str) -> str:
    return f"{report_type}_{filename_slug(label)}.csv"


# ---------- sections ----------

def _kpi_revenue(ctx: ReportContext) -> float:
    return ctx.dashboard.total_sales or ctx.tables.revenue

def _summary(ctx: ReportContext) -> List[Row]:
    return [
        ["SUMMARY"],
        ["Metric", "Value"],
        ["Revenue (this period)", money(_kpi_revenue(ctx))],
        ["Total Orders (this period)", ctx.tables.orders],
        ["Pending Reservations", ctx.tables.pending_reservations],
        ["Pending Top-ups", ctx.tables.top_ups.pending],
    ]

def _status_breakdown(ctx: ReportContext) -> List[Row]:
    return [
        ["RESERVATION STATUS BREAKDOWN"],
        ["Status", "Count"],
        *[[status, count] for status, count in ctx.tables.status_counts.items()],
    ]

def _topups(ctx: ReportContext) -> List[Row]:
    t = ctx.tables.top_ups
    return [
        ["TOP-UPS ANALYSIS"],
        ["Metric", "Value"],
        ["Approved Wallets", t.approved_count],
        ["Total Approved Amount", money(t.approved_amount)],
        ["Pending Approvals", t.pending],
        ["Rejected Top-ups", t.rejected],
    ]

def _categories(rows: Sequence[CategoryRow]) -> List[Row]:
    return [
        ["REVENUE BY CATEGORY"],
        ["Category", "Revenue"],
        *[[r.category, money(r.amount)] for r in rows],
    ]

def _products(title: str, first_col: str, items: Sequence[ItemTotal]) -> List[Row]:
    return [
        [title],
        [first_col, "Category", "Quantity Sold", "Revenue"],
        *[[it.name, it.category or "Uncategorized", it.qty, money(it.revenue)] for it in items],
    ]

def _stamp(ctx: ReportContext) -> str:
    return (ctx.generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M")


# ---------- report builders ----------

def full_report(ctx: ReportContext) -> List[Row]:
    by_revenue = sorted(ctx.products, key=lambda it: it.revenue, reverse=True)
    by_quantity = sorted(ctx.products, key=lambda it: it.qty, reverse=True)
    return [
        [f"FULL REPORT - {period_label(ctx.period)}"],
        ["Report Generated", _stamp(ctx)],
        [],
        *_summary(ctx), [],
        *_status_breakdown(ctx), [],
        *_topups(ctx), [],
        *_categories(category_rows(ctx.tables)), [],
        *_products("TOP SELLING ITEMS", "Item", ctx.top_items), [],
        *_products("TOP PRODUCTS BY REVENUE", "Product", by_revenue), [],
        *_products("TOP PRODUCTS BY QUANTITY", "Product", by_quantity),
    ]

def combined_stats(ctx: ReportContext) -> List[Row]:
    return [
        *_summary(ctx), [],
        *_status_breakdown(ctx), [],
        *_topups(ctx), [],
        *_categories(category_rows(ctx.tables)),
    ]

def top_items_table(ctx: ReportContext) -> List[Row]:
    return _products("TOP SELLING ITEMS", "Item", ctx.top_items)[1:]

def products_table(ctx: ReportContext) -> List[Row]:
    return _products("PRODUCTS", "Product", ctx.products)[1:]

def categories_table(ctx: ReportContext) -> List[Row]:
    return _categories(category_rows(ctx.tables))[1:]

def reservations_table(ctx: ReportContext) -> List[Row]:
    return [["Reservation Status", "Count"], *_status_breakdown(ctx)[2:]]

def topups_table(ctx: ReportContext) -> List[Row]:
    return _topups(ctx)[1:]

def inventory_report(ctx: ReportContext) -> List[Row]:
    threshold = settings.LOW_STOCK_THRESHOLD
    items = [m for m in ctx.catalog if not m.deleted]
    low = [m for m in items if 0 < m.stock <= threshold]
    out = [m for m in items if m.stock == 0]
    per_cat: Dict[str, Dict[str, int]] = {}
    for m in items:
        c = per_cat.setdefault(m.category, {"items": 0, "stock": 0, "low": 0, "out": 0})
        c["items"] += 1
        c["stock"] += m.stock
        c["low"] += 1 if 0 < m.stock <= threshold else 0
        c["out"] += 1 if m.stock == 0 else 0
    return [
        [f"INVENTORY REPORT - {_stamp(ctx)[:10]}"],
        [],
        ["SUMMARY"],
        ["Metric", "Value"],
        ["Total Items", len(items)],
        ["Total Stock", sum(m.stock for m in items)],
        ["Low Stock Items", len(low)],
        ["Out of Stock Items", len(out)],
        [],
        ["DETAILED INVENTORY"],
        ["Item", "Category", "Stock", "Price", "Status"],
        *[[m.name, m.category, m.stock, money(m.price), stock_status(m, threshold)] for m in items],
        [],
        ["BY CATEGORY"],
        ["Category", "Total Items", "Total Stock", "Low Stock", "Out of Stock"],
        *[[cat, c["items"], c["stock"], c["low"], c["out"]] for cat, c in per_cat.items()],
    ]

def low_stock_report(ctx: ReportContext) -> List[Row]:
    threshold = settings.LOW_STOCK_THRESHOLD
    items = [m for m in ctx.catalog if not m.deleted]
    return [
        [f"LOW STOCK & OUT OF STOCK REPORT - {_stamp(ctx)[:10]}"],
        [],
        [f"LOW STOCK ITEMS (<= {threshold} units)"],
        ["Item", "Category", "Current Stock", "Price"],
        *[[m.name, m.category, m.stock, money(m.price)] for m in items if 0 < m.stock <= threshold],
        [],
        ["OUT OF STOCK ITEMS"],
        ["Item", "Category", "Price"],
        *[[m.name, m.category, money(m.price)] for m in items if m.stock == 0],
    ]


REPORT_BUILDERS: Dict[str, Callable[[ReportContext], List[Row]]] = {
    "full_report": full_report,
    "combined_stats": combined_stats,
    "top_items": top_items_table,
    "products": products_table,
    "categories": categories_table,
    "reservations": reservations_table,
    "topups": topups_table,
    "inventory_report": inventory_report,
    "low_stock_report": low_stock_report,
}

# named by export date rather than by report period
DATED_REPORTS = frozenset({"inventory_report", "low_stock_report"})


def build_export(report_type: str, ctx: ReportContext) -> CsvExport:
    builder = REPORT_BUILDERS.get(report_type)
    if builder is None:
        raise ExportError(f"unknown report type: {report_type}")
    try:
        content = to_delimited_text(builder(ctx))
    except Exception as e:
        logger.exception("building %s export failed", report_type)
        raise ExportError(f"{report_type} export failed") from e
    if report_type in DATED_REPORTS:
        label = (ctx.generated_at.date() if ctx.generated_at else date.today()).isoformat()
    else:
        label = period_label(ctx.period)
    return CsvExport(filename=export_filename(report_type, label), content=content)
