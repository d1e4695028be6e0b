"""Display helpers shared by listing cards and map popups."""

from __future__ import annotations

PROPERTY_TYPE_MAP = {
    "apartment": "Chung cư",
    "house": "Nhà riêng",
    "villa": "Biệt thự",
    "townhouse": "Nhà phố",
    "office": "Văn phòng",
}

PROPERTY_STATUS_MAP = {
    "available": "Còn trống",
    "sold": "Đã bán",
    "rented": "Đã cho thuê",
}


def translate_property_type(property_type: str) -> str:
    """Return the Vietnamese label for ``property_type`` or the raw value."""

    return PROPERTY_TYPE_MAP.get(property_type, property_type)


def translate_status(status: str) -> str:
    return PROPERTY_STATUS_MAP.get(status, status)


def format_price(price: int | float | None) -> str:
    """Format ``price`` in dong the way vi-VN locales print currency.

    Thousands are grouped with dots and the symbol trails after a
    non-breaking space, e.g. ``1.500.000.000 ₫``.
    """

    if price is None:
        return "N/A"
    grouped = f"{int(round(price)):,}".replace(",", ".")
    return f"{grouped}\u00a0₫"


def format_area(area: float | int) -> str:
    if float(area).is_integer():
        return f"{int(area)}m²"
    return f"{area}m²"
