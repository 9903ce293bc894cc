"""
Report aggregation over one snapshot of menu, reservations and top-ups.

Everything here is a pure function of its arguments: inputs are never
mutated and every call builds its tables from scratch.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from canteen.schemas.menu import DEFAULT_CATEGORY, MenuItem
from canteen.schemas.reports import (
    AggregateTables, CategoryRow, ItemTotal, ReportPeriod, ServerReport, TopUpStats,
)
from canteen.schemas.reservations import Reservation
from canteen.schemas.topups import TopUp
from canteen.services.resolver import SEPARATOR, CatalogIndex, id_suffix, resolve_line
from canteen.services.status import (
    CANONICAL_STATUSES, REVENUE_STATUSES, normalize_reservation_status, normalize_topup_status,
)
from canteen.services.window import filter_window, in_window
from canteen.util.money import _money

ALL_CATEGORIES = "All"


# ---------- helpers ----------

def _dec(x) -> Decimal:
    return Decimal(str(x))

def _item(entry: dict) -> ItemTotal:
    return ItemTotal(
        name=entry["name"],
        qty=entry["qty"],
        revenue=_money(entry["revenue"]),
        category=entry["category"],
        unit_price=_money(entry["unit_price"]),
    )

def _entry(item: ItemTotal) -> dict:
    return {
        "name": item.name,
        "qty": item.qty,
        "revenue": _dec(item.revenue),
        "category": item.category,
        "unit_price": _dec(item.unit_price),
    }


@dataclass
class _Bucket:
    qty: int = 0
    revenue: Decimal = Decimal(0)

    def add(self, qty: int, revenue: Decimal) -> None:
        self.qty += qty
        self.revenue += revenue


@dataclass
class HistoryTotals:
    """Revenue-eligible sales in one window, keyed three ways for catalog matching."""
    by_id: Dict[str, _Bucket] = field(default_factory=dict)
    by_suffix: Dict[str, _Bucket] = field(default_factory=dict)
    by_name: Dict[str, _Bucket] = field(default_factory=dict)

    def lookup(self, m: MenuItem) -> _Bucket:
        # id, then id suffix, then name; first non-empty match wins
        candidates = []
        if m.id:
            candidates.append(self.by_id.get(m.id))
            if SEPARATOR in m.id:
                candidates.append(self.by_suffix.get(id_suffix(m.id)))
        if m.name:
            candidates.append(self.by_name.get(m.name.lower()))
        for c in candidates:
            if c is not None and (c.qty > 0 or c.revenue > 0):
                return c
        return _Bucket()


def history_totals(reservations: Iterable[Reservation], catalog: Sequence[MenuItem],
                   period: ReportPeriod) -> HistoryTotals:
    index = CatalogIndex(catalog)
    out = HistoryTotals()
    for r in filter_window(reservations, period):
        if normalize_reservation_status(r.status) not in REVENUE_STATUSES:
            continue
        for line in r.items:
            if line.quantity <= 0:
                continue
            resolved = resolve_line(line, index)
            rev = _dec(resolved.unit_price) * line.quantity
            if line.product_ref:
                out.by_id.setdefault(line.product_ref, _Bucket()).add(line.quantity, rev)
                out.by_suffix.setdefault(id_suffix(line.product_ref), _Bucket()).add(line.quantity, rev)
            if line.name:
                out.by_name.setdefault(line.name.lower(), _Bucket()).add(line.quantity, rev)
    return out


def merge_catalog(entries: Dict[str, dict], catalog: Sequence[MenuItem], history: HistoryTotals,
                  period: ReportPeriod) -> Dict[str, dict]:
    """
    Return a copy of `entries` with catalog items folded in.

    All time: every named catalog item shows up, zero totals if it never sold.
    Specific period: only items with sales in the window, or (month/year mode)
    items whose catalog timestamp falls inside the period.
    """
    merged = {k: dict(v) for k, v in entries.items()}
    for m in catalog:
        name = m.name.strip()
        if not name:
            continue
        key = name.lower()
        if key in merged:
            if not merged[key]["unit_price"]:
                merged[key]["unit_price"] = _dec(m.price)
            continue
        sold = history.lookup(m)
        has_sales = sold.qty > 0 or sold.revenue > 0
        if period.is_all_time:
            include = has_sales or not m.deleted
        elif has_sales:
            include = True
        else:
            include = not period.is_date_range and in_window(m.catalog_timestamp, period)
        if not include:
            continue
        merged[key] = {
            "name": name,
            "qty": sold.qty,
            "revenue": sold.revenue,
            "category": m.category or DEFAULT_CATEGORY,
            "unit_price": _dec(m.price),
        }
    return merged


def topup_stats(top_ups: Iterable[TopUp]) -> TopUpStats:
    approved_count = pending = rejected = 0
    approved_amount = Decimal(0)
    for t in top_ups:
        st = normalize_topup_status(t.status)
        if st == "Approved":
            approved_count += 1
            approved_amount += _dec(t.amount)
        elif st == "Rejected":
            rejected += 1
        else:
            pending += 1
    return TopUpStats(
        approved_count=approved_count,
        approved_amount=_money(approved_amount),
        pending=pending,
        rejected=rejected,
    )


def sort_views(items: Iterable[ItemTotal]) -> tuple[List[ItemTotal], List[ItemTotal]]:
    # sorted() is stable: ties keep discovery order
    items = list(items)
    by_revenue = sorted(items, key=lambda it: it.revenue, reverse=True)
    by_quantity = sorted(items, key=lambda it: it.qty, reverse=True)
    return by_revenue, by_quantity


def aggregate(reservations: Sequence[Reservation], top_ups: Sequence[TopUp],
              catalog: Sequence[MenuItem], period: ReportPeriod) -> AggregateTables:
    index = CatalogIndex(catalog)
    filtered = filter_window(reservations, period)

    counts = {s: 0 for s in CANONICAL_STATUSES}
    by_category: Dict[str, Decimal] = {}
    entries: Dict[str, dict] = {}
    revenue = Decimal(0)

    for r in filtered:
        status = normalize_reservation_status(r.status)
        counts[status] += 1
        if status == "Rejected":
            continue
        earns = status in REVENUE_STATUSES
        for line in r.items:
            resolved = resolve_line(line, index)
            line_revenue = _dec(resolved.unit_price) * resolved.quantity
            entry = entries.setdefault(resolved.key, {
                "name": resolved.name,
                "qty": 0,
                "revenue": Decimal(0),
                "category": resolved.category,
                "unit_price": _dec(resolved.unit_price),
            })
            if earns:
                entry["qty"] += resolved.quantity
                entry["revenue"] += line_revenue
                by_category[resolved.category] = by_category.get(resolved.category, Decimal(0)) + line_revenue
                revenue += line_revenue
            if resolved.unit_price:
                entry["unit_price"] = _dec(resolved.unit_price)

    history = history_totals(reservations, catalog, period)
    entries = merge_catalog(entries, catalog, history, period)

    items = {k: _item(v) for k, v in entries.items()}
    by_revenue, by_quantity = sort_views(items.values())

    return AggregateTables(
        revenue=_money(revenue),
        orders=len(filtered),
        revenue_by_category={c: _money(v) for c, v in by_category.items()},
        item_totals=items,
        status_counts=counts,
        top_ups=topup_stats(filter_window(top_ups, period)),
        by_revenue=by_revenue,
        by_quantity=by_quantity,
    )


# ---------- presentation feeds ----------

def category_rows(tables: AggregateTables) -> List[CategoryRow]:
    rows = [CategoryRow(category=c, amount=a) for c, a in tables.revenue_by_category.items()]
    return sorted(rows, key=lambda r: r.amount, reverse=True)


def top_products(tables: AggregateTables, server_report: Optional[ServerReport],
                 catalog: Sequence[MenuItem], reservations: Sequence[Reservation],
                 period: ReportPeriod, policy: str = "prefer_server") -> List[ItemTotal]:
    """
    Product rows for the charts. With `prefer_server` a non-empty server
    report is taken wholesale and only patched with missing catalog items.
    """
    if policy != "prefer_server" or server_report is None or not server_report.top_products:
        return list(tables.item_totals.values())
    base: Dict[str, dict] = {}
    for p in server_report.top_products:
        base.setdefault(p.name.lower(), _entry(p))
    merged = merge_catalog(base, catalog, history_totals(reservations, catalog, period), period)
    return [_item(v) for v in merged.values()]


def top_categories(tables: AggregateTables, server_report: Optional[ServerReport],
                   policy: str = "prefer_server") -> List[CategoryRow]:
    if policy == "prefer_server" and server_report is not None and server_report.top_categories:
        return list(server_report.top_categories)
    return category_rows(tables)


def categories(tables: AggregateTables, catalog: Iterable[MenuItem],
               server_report: Optional[ServerReport] = None) -> List[str]:
    found: Dict[str, None] = {ALL_CATEGORIES: None}
    if server_report is not None:
        for c in server_report.top_categories:
            found.setdefault(c.category, None)
        for p in server_report.top_products:
            found.setdefault(p.category, None)
    for c in tables.revenue_by_category:
        found.setdefault(c, None)
    for m in catalog:
        if m.category:
            found.setdefault(m.category, None)
    return list(found)


def filter_by_category(items: Iterable[ItemTotal], category: Optional[str]) -> List[ItemTotal]:
    if not category or category == ALL_CATEGORIES:
        return list(items)
    wanted = category.lower()
    return [it for it in items if it.category.lower() == wanted]


def products_chart(items: Sequence[ItemTotal]) -> Dict[str, list]:
    return {
        "labels": [it.name for it in items],
        "qty": [it.qty for it in items],
        "revenue": [it.revenue for it in items],
    }
