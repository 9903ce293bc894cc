from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from canteen.config import settings
from canteen.schemas.reports import (
    AggregateTables, CategoryRow, ItemTotal, KpiOut, ReportPeriod, ReportSummaryOut,
)
from canteen.services.aggregator import (
    ALL_CATEGORIES, aggregate, categories, category_rows, filter_by_category,
    products_chart, top_categories, top_products,
)
from canteen.services.exporter import ReportContext
from canteen.services.fetcher import ReportDataset
from canteen.services.window import period_label, year_options


@dataclass(frozen=True)
class ReportView:
    period: ReportPeriod
    category: str
    tables: AggregateTables
    top_items: List[ItemTotal]
    products: List[ItemTotal]
    top_categories: List[CategoryRow]
    categories: List[str]


def build_view(dataset: ReportDataset, period: ReportPeriod, category: str = ALL_CATEGORIES,
               policy: Optional[str] = None) -> ReportView:
    policy = policy or settings.SERVER_REPORT_POLICY
    tables = aggregate(dataset.reservations, dataset.top_ups, dataset.menu, period)
    products = top_products(tables, dataset.server_report, dataset.menu, dataset.reservations, period, policy)
    return ReportView(
        period=period,
        category=category or ALL_CATEGORIES,
        tables=tables,
        # top-items table ignores the category filter
        top_items=tables.by_revenue[: settings.TOP_ITEMS_LIMIT],
        products=filter_by_category(products, category),
        top_categories=top_categories(tables, dataset.server_report, policy),
        categories=categories(tables, dataset.menu, dataset.server_report),
    )


def summary_out(view: ReportView, dataset: ReportDataset, today: Optional[date] = None) -> ReportSummaryOut:
    t = view.tables
    return ReportSummaryOut(
        period=period_label(view.period),
        years=year_options(dataset.reservations, dataset.top_ups, dataset.server_report, today),
        categories=view.categories,
        kpis=KpiOut(
            revenue=dataset.dashboard.total_sales or t.revenue,
            orders=t.orders,
            pending_reservations=t.pending_reservations,
            pending_topups=t.top_ups.pending,
        ),
        status_counts=t.status_counts,
        revenue_by_category=category_rows(t),
        top_categories=view.top_categories,
        top_items=view.top_items,
        top_products_by_revenue=sorted(view.products, key=lambda it: it.revenue, reverse=True),
        top_products_by_quantity=sorted(view.products, key=lambda it: it.qty, reverse=True),
        chart=products_chart(view.products),
        top_ups=t.top_ups,
        dashboard=dataset.dashboard,
    )


def export_context(view: ReportView, dataset: ReportDataset, generated_at: Optional[datetime] = None) -> ReportContext:
    return ReportContext(
        period=view.period,
        tables=view.tables,
        top_items=view.top_items,
        products=view.products,
        dashboard=dataset.dashboard,
        catalog=dataset.menu,
        generated_at=generated_at or datetime.now(),
    )
