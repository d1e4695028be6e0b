from estate_map.property_helpers import (
    format_area,
    format_price,
    translate_property_type,
    translate_status,
)


def test_price_is_grouped_with_dots_and_dong_symbol():
    assert format_price(1_500_000_000) == "1.500.000.000\u00a0₫"
    assert format_price(950_000) == "950.000\u00a0₫"
    assert format_price(0) == "0\u00a0₫"


def test_missing_price_renders_placeholder():
    assert format_price(None) == "N/A"


def test_area_drops_trailing_zero():
    assert format_area(75.0) == "75m²"
    assert format_area(62.5) == "62.5m²"


def test_labels_fall_back_to_raw_value():
    assert translate_property_type("villa") == "Biệt thự"
    assert translate_property_type("castle") == "castle"
    assert translate_status("rented") == "Đã cho thuê"
