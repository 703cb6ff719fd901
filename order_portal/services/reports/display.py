"""
Display-name resolution for products and customers.

Stored data carries names in several shapes: catalog products use
``name: {en, ar}``, older records use ``nameEn``/``nameAr``, and order
lines hold a ``productName`` snapshot that may be a dict or a plain
string. Every lookup goes through the functions below, which try the
shapes in a fixed priority order.
"""

from typing import Any, Literal, Mapping, Optional

from order_portal.schemas.orders import LocalizedName

UNKNOWN = "Unknown"

Language = Literal["en", "ar"]


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _localized(value: Any) -> Optional[LocalizedName]:
    """Read a ``{en, ar}`` dict or a plain string; None when both are empty."""
    if isinstance(value, Mapping):
        name = LocalizedName(en=_text(value.get("en")), ar=_text(value.get("ar")))
    elif isinstance(value, str):
        name = LocalizedName(en=_text(value), ar=_text(value))
    else:
        return None
    if not name.en and not name.ar:
        return None
    return name


def resolve_product_name(
    product: Optional[Mapping[str, Any]] = None,
    snapshot: Any = None,
) -> LocalizedName:
    """
    Bilingual product name from the best available source.

    Priority:
        1. ``product["name"]`` as ``{en, ar}`` or a string
        2. ``product["nameEn"]`` / ``product["nameAr"]``
        3. ``snapshot`` (an order line's ``productName``), dict or string

    Missing languages are filled from the other one; when nothing is
    known both languages read ``Unknown``.
    """
    candidates: list[Optional[LocalizedName]] = []
    if product:
        candidates.append(_localized(product.get("name")))
        flat = LocalizedName(
            en=_text(product.get("nameEn")), ar=_text(product.get("nameAr"))
        )
        candidates.append(flat if flat.en or flat.ar else None)
    candidates.append(_localized(snapshot))

    for name in candidates:
        if name is not None:
            return LocalizedName(en=name.en or name.ar, ar=name.ar or name.en)
    return LocalizedName(en=UNKNOWN, ar=UNKNOWN)


def pick_language(name: LocalizedName, language: Language = "en") -> str:
    if language == "ar":
        return name.ar or name.en or UNKNOWN
    return name.en or name.ar or UNKNOWN


def resolve_customer_name(
    customer: Optional[Mapping[str, Any]] = None,
    snapshot: Optional[str] = None,
) -> str:
    """Company name, then personal name, then the order's snapshot, then ``Unknown``."""
    if customer:
        for field in ("companyName", "name"):
            value = _text(customer.get(field))
            if value:
                return value
    return _text(snapshot) or UNKNOWN
