from pydantic import BaseModel, model_validator
from typing import Any, Optional

from canteen.schemas.common import timestamp_text
from canteen.util.money import non_negative

DEFAULT_CATEGORY = "Uncategorized"


def _first(data: dict, *keys: str) -> Any:
    for k in keys:
        v = data.get(k)
        if v is not None and v != "":
            return v
    return None

def _optional_text(val: Any) -> Optional[str]:
    return None if val is None else str(val)

def _text(val: Any) -> str:
    return "" if val is None else str(val).strip()


class MenuItem(BaseModel):
    """
    Catalog entry as the reports pipeline sees it.
    Accepts the backend's loose shape (`_id`, camelCase timestamps,
    category as string or {name, iconID}) and clamps numbers to >= 0.
    """
    id: str = ""
    name: str = ""
    category: str = DEFAULT_CATEGORY
    price: float = 0.0
    stock: int = 0
    visible: bool = True
    description: Optional[str] = None
    image: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    deleted: bool = False

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cat = data.get("category")
        if isinstance(cat, dict):
            # category object without a usable name
            category = _text(cat.get("name")) or "Others"
        else:
            category = _text(cat) or DEFAULT_CATEGORY
        visible = data.get("visible")
        return {
            "id": _text(_first(data, "id", "_id")),
            "name": _text(data.get("name")),
            "category": category,
            "price": non_negative(data.get("price")),
            "stock": int(non_negative(data.get("stock"))),
            "visible": True if visible is None else bool(visible),
            "description": _optional_text(_first(data, "desc", "description")),
            "image": _optional_text(_first(data, "img", "image")),
            "created_at": timestamp_text(_first(data, "createdAt", "created_at", "created")),
            "updated_at": timestamp_text(_first(data, "updatedAt", "updated_at", "updated")),
            "deleted": bool(data.get("deleted") or data.get("deletedAt") or data.get("deleted_at")),
        }

    @property
    def catalog_timestamp(self) -> Optional[str]:
        return self.created_at or self.updated_at


def stock_status(item: MenuItem, low_threshold: int) -> str:
    if item.stock == 0:
        return "Out of Stock"
    if item.stock <= low_threshold:
        return "Low Stock"
    return "In Stock"
