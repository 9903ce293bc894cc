from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from canteen.schemas.menu import DEFAULT_CATEGORY, MenuItem
from canteen.schemas.reservations import ReservationLineItem

SEPARATOR = "-"


def id_suffix(ref: str) -> str:
    return ref.rsplit(SEPARATOR, 1)[-1]


class CatalogIndex:
    """Lookup tables over one catalog snapshot. First occurrence wins on duplicates."""

    def __init__(self, catalog: Iterable[MenuItem]):
        self.items: list[MenuItem] = list(catalog)
        self.by_id: Dict[str, MenuItem] = {}
        self.by_suffix: Dict[str, MenuItem] = {}
        self.by_name: Dict[str, MenuItem] = {}
        for m in self.items:
            if m.id:
                self.by_id.setdefault(m.id, m)
                self.by_suffix.setdefault(id_suffix(m.id), m)
            if m.name:
                self.by_name.setdefault(m.name.lower(), m)


def resolve_product(line: ReservationLineItem, index: CatalogIndex) -> Optional[MenuItem]:
    ref = line.product_ref
    if ref:
        hit = index.by_id.get(ref)
        if hit is not None:
            return hit
        if SEPARATOR in ref:
            hit = index.by_suffix.get(id_suffix(ref))
            if hit is not None:
                return hit
    if line.name:
        return index.by_name.get(line.name.lower())
    return None


@dataclass(frozen=True)
class ResolvedLine:
    name: str
    category: str
    unit_price: float
    quantity: int
    product: Optional[MenuItem] = None

    @property
    def key(self) -> str:
        return self.name.lower()


def resolve_line(line: ReservationLineItem, index: CatalogIndex) -> ResolvedLine:
    m = resolve_product(line, index)
    if m is not None:
        name = m.name or line.name
        category = m.category or line.category or DEFAULT_CATEGORY
    else:
        # unresolved lines keep whatever they carry
        name = line.name
        category = line.category or DEFAULT_CATEGORY
    if not name:
        name = f"#{line.product_ref or 'unknown'}"
    if line.unit_price is not None:
        price = line.unit_price
    else:
        price = m.price if m is not None else 0.0
    return ResolvedLine(name=name, category=category, unit_price=price, quantity=line.quantity, product=m)
