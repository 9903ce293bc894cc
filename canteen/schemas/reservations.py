from pydantic import BaseModel, model_validator
from typing import Any, List, Optional

from canteen.schemas.common import resolve_timestamp
from canteen.util.money import non_negative


def _first(data: dict, *keys: str) -> Any:
    for k in keys:
        v = data.get(k)
        if v is not None and v != "":
            return v
    return None


class ReservationLineItem(BaseModel):
    product_ref: str = ""
    name: str = ""
    quantity: int = 0
    unit_price: Optional[float] = None
    category: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        ref = _first(data, "id", "productId", "itemId", "_id")
        price = _first(data, "price", "unitPrice")
        category = _first(data, "category", "type")
        return {
            "product_ref": "" if ref is None else str(ref).strip(),
            "name": str(_first(data, "name", "title") or "").strip(),
            "quantity": int(non_negative(_first(data, "qty", "quantity", "count"))),
            # None means "take it from the catalog"
            "unit_price": None if price is None else non_negative(price),
            "category": None if category is None else str(category).strip() or None,
        }


class Reservation(BaseModel):
    id: str = ""
    created_at: Optional[str] = None
    status: str = ""
    items: List[ReservationLineItem] = []
    total: float = 0.0
    user: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        items = data.get("items")
        user = _first(data, "userId", "user", "userEmail")
        return {
            "id": str(_first(data, "id", "_id", "reservationId") or ""),
            "created_at": resolve_timestamp(data),
            "status": str(_first(data, "status", "state") or ""),
            "items": [it for it in items if isinstance(it, dict)] if isinstance(items, list) else [],
            "total": non_negative(_first(data, "total", "amount", "totalAmount")),
            "user": None if user is None or isinstance(user, dict) else str(user),
        }
