from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

def _money(x) -> float:
    return float(Decimal(str(x)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))

def as_number(val, default: float = 0.0) -> float:
    """Coerce loosely typed numeric input; anything unusable becomes `default`."""
    if val is None or isinstance(val, bool):
        return default
    try:
        num = Decimal(str(val).strip())
    except (InvalidOperation, ValueError):
        return default
    if not num.is_finite():
        return default
    return float(num)

def non_negative(val) -> float:
    num = as_number(val)
    return num if num > 0 else 0.0
