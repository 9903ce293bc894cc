from datetime import date
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional

from canteen.schemas.menu import DEFAULT_CATEGORY
from canteen.services.status import CANONICAL_STATUSES
from canteen.util.money import as_number, non_negative

ALL = "all"


class ReportPeriod(BaseModel):
    """
    Month/year pair with "all" wildcards, or an explicit date range.
    The date range wins only when both bounds are set.
    """
    month: str = ALL
    year: str = ALL
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    model_config = {"frozen": True}

    @field_validator("month", mode="before")
    @classmethod
    def _month(cls, v: Any) -> str:
        s = str(v if v is not None else ALL).strip().lower()
        if s in ("", ALL):
            return ALL
        if not s.isdigit() or not 1 <= int(s) <= 12:
            raise ValueError(f"invalid month: {v}")
        return str(int(s))

    @field_validator("year", mode="before")
    @classmethod
    def _year(cls, v: Any) -> str:
        s = str(v if v is not None else ALL).strip().lower()
        if s in ("", ALL):
            return ALL
        if not s.isdigit():
            raise ValueError(f"invalid year: {v}")
        return str(int(s))

    @property
    def is_date_range(self) -> bool:
        return self.start_date is not None and self.end_date is not None

    @property
    def is_all_time(self) -> bool:
        return not self.is_date_range and self.month == ALL and self.year == ALL


class ItemTotal(BaseModel):
    name: str
    qty: int = 0
    revenue: float = 0.0
    category: str = DEFAULT_CATEGORY
    unit_price: float = 0.0


def _product_row(data: dict) -> dict:
    # server reports send {itemId, name, category, qty, revenue}
    return {
        "name": str(data.get("name") or data.get("itemId") or data.get("label") or ""),
        "qty": int(non_negative(data.get("qty"))),
        "revenue": non_negative(data.get("revenue")),
        "category": str(data.get("category") or DEFAULT_CATEGORY),
        "unit_price": non_negative(data.get("unitPrice", data.get("unit_price"))),
    }


class CategoryRow(BaseModel):
    category: str
    amount: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if isinstance(data, dict) and "amount" not in data:
            return {
                "category": str(data.get("category") or data.get("name") or DEFAULT_CATEGORY),
                "amount": non_negative(data.get("revenue")),
            }
        return data


class TopUpStats(BaseModel):
    approved_count: int = 0
    approved_amount: float = 0.0
    pending: int = 0
    rejected: int = 0


def _empty_counts() -> Dict[str, int]:
    return {s: 0 for s in CANONICAL_STATUSES}


class AggregateTables(BaseModel):
    revenue: float = 0.0
    orders: int = 0
    revenue_by_category: Dict[str, float] = Field(default_factory=dict)
    # keyed by lowercased product name, in discovery order
    item_totals: Dict[str, ItemTotal] = Field(default_factory=dict)
    status_counts: Dict[str, int] = Field(default_factory=_empty_counts)
    top_ups: TopUpStats = Field(default_factory=TopUpStats)
    by_revenue: List[ItemTotal] = Field(default_factory=list)
    by_quantity: List[ItemTotal] = Field(default_factory=list)

    @property
    def pending_reservations(self) -> int:
        return self.status_counts.get("Pending", 0)


class DashboardSummary(BaseModel):
    total_sales: float = 0.0
    orders_today: int = 0
    new_users: int = 0
    pending: int = 0
    recent_orders: List[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        recent = data.get("recentOrders", data.get("recent_orders"))
        if recent is None:
            recent = []
        elif not isinstance(recent, list):
            recent = [recent]
        return {
            "total_sales": as_number(data.get("totalSales", data.get("total_sales"))),
            "orders_today": int(as_number(data.get("ordersToday", data.get("orders_today")))),
            "new_users": int(as_number(data.get("newUsers", data.get("new_users")))),
            "pending": int(as_number(data.get("pending"))),
            "recent_orders": recent,
        }


class ServerReport(BaseModel):
    top_products: List[ItemTotal] = Field(default_factory=list)
    top_categories: List[CategoryRow] = Field(default_factory=list)
    years: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        def rows(key: str, alt: str) -> list:
            v = data.get(key, data.get(alt))
            return [r for r in v if isinstance(r, dict)] if isinstance(v, list) else []

        years = data.get("years")
        return {
            "top_products": [_product_row(r) for r in rows("topProducts", "top_products")],
            "top_categories": rows("topCategories", "top_categories"),
            "years": [str(y) for y in years if y] if isinstance(years, list) else [],
        }


# ---------- API output ----------

class KpiOut(BaseModel):
    revenue: float
    orders: int
    pending_reservations: int
    pending_topups: int


class ReportSummaryOut(BaseModel):
    period: str
    years: List[str]
    categories: List[str]
    kpis: KpiOut
    status_counts: Dict[str, int]
    revenue_by_category: List[CategoryRow]
    top_categories: List[CategoryRow]
    top_items: List[ItemTotal]
    top_products_by_revenue: List[ItemTotal]
    top_products_by_quantity: List[ItemTotal]
    chart: Dict[str, list]
    top_ups: TopUpStats
    dashboard: DashboardSummary


class RefreshOut(BaseModel):
    generation: int
    committed: bool
    period: str
