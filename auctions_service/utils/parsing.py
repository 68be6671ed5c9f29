from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from auctions_service.errors import ValidationError

CENT = Decimal("0.01")


def parse_decimal(value, field: str, minimum: Decimal | None = None, strict_min: bool = False) -> Decimal:
    """Money value with at most two decimal places."""
    if value is None or isinstance(value, bool) or value == "":
        raise ValidationError(f"{field} is required", fields=[field])
    try:
        d = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", fields=[field])
    if not d.is_finite() or d != d.quantize(CENT):
        raise ValidationError(f"{field} must be a number with at most 2 decimals", fields=[field])
    if minimum is not None:
        if (strict_min and d <= minimum) or (not strict_min and d < minimum):
            op = ">" if strict_min else ">="
            raise ValidationError(f"{field} must be {op} {minimum}", fields=[field])
    return d


def parse_dt(value) -> datetime | None:
    """ISO-8601 string to naive UTC datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_details(value, field: str = "details") -> dict[str, str]:
    """Free-form item specifics: a flat mapping of string keys to string values."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", fields=[field])
    out = {}
    for k, v in value.items():
        if not isinstance(k, str) or not k.strip():
            raise ValidationError(f"{field} keys must be non-empty strings", fields=[field])
        if isinstance(v, (dict, list)) or v is None:
            raise ValidationError(f"{field}.{k} must be a plain value", fields=[field])
        out[k.strip()] = str(v)
    return out


def iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def money(value) -> float | None:
    return float(value) if value is not None else None
