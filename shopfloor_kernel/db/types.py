"""
Module: shopfloor_kernel.db.types
Responsibility: Quantity helpers shared by every module.  Decimal columns
    map to Numeric(38, 9) through Base.type_annotation_map; this module
    makes sure values arriving from callers become Decimal before they
    reach a column or a comparison.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or modules.

Failure modes:
    - ValueError from to_decimal() on values that are not numeric.
"""

from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")


def to_decimal(value: object, field: str = "qty") -> Decimal:
    """
    Coerce an int/str/Decimal to Decimal.

    Floats are routed through str() so 0.1 stays 0.1.  Booleans and None are
    rejected.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be numeric, got {value!r}")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{field} must be numeric, got {value!r}") from exc


def to_optional_decimal(value: object, field: str = "qty") -> Decimal | None:
    if value is None:
        return None
    return to_decimal(value, field)
