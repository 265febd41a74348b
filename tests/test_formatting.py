from models import CartLine, Direction, LocationMode, RankedRestaurant, ReferencePoint

from bot.formatting import (
    format_cart,
    format_distance,
    format_orders,
    format_restaurant_header,
    format_results,
)
from bot.keyboards import get_cart_keyboard, get_results_keyboard
from utils.text_utils import escape_markdown, format_price

from conftest import HISAR, make_order, make_restaurant, north_of


def test_format_distance():
    assert format_distance(None) == ""
    assert format_distance(0.42) == "420 m"
    assert format_distance(3.14159, Direction.NE) == "3.1 km NE"


def test_results_show_distance_and_escape_names():
    reference = ReferencePoint(mode=LocationMode.DEVICE, coordinate=HISAR)
    results = [
        RankedRestaurant(
            restaurant=make_restaurant("a", name="Sher_e_Punjab"),
            distance_km=1.2,
            direction=Direction.N,
        )
    ]

    text = format_results(results, reference)

    assert "Nearest to your location" in text
    assert "Sher\\_e\\_Punjab" in text
    assert "1.2 km N" in text


def test_results_are_truncated():
    results = [RankedRestaurant(restaurant=make_restaurant(str(i))) for i in range(12)]

    text = format_results(results, limit=10)

    assert "All restaurants" in text
    assert "and 2 more" in text


def test_empty_results():
    assert "No restaurants found" in format_results([], None)


def test_restaurant_header_includes_bearing():
    reference = ReferencePoint(mode=LocationMode.MANUAL_MAP, coordinate=HISAR)

    text = format_restaurant_header(make_restaurant("a", north_of(HISAR, 2)), reference)

    assert "2.0 km N from the picked point" in text


def test_cart_text_and_keyboard(thali):
    lines = [CartLine(menu_item=thali, quantity=3)]

    text = format_cart(lines, 15.0)
    keyboard = get_cart_keyboard(lines)

    assert "Thali × 3" in text
    assert "$15.00" in text
    assert format_cart([], 0.0) == "Your cart is empty."
    callbacks = [b.callback_data for row in keyboard.inline_keyboard for b in row]
    assert callbacks == ["noop", "dec:m1", "inc:m1", "rm:m1", "checkout"]


def test_orders_show_status_presentation():
    text = format_orders([make_order("order-000001", status="delivered"), make_order("x2", status="lost")])

    assert "✅" in text and "Delivered" in text
    assert "❔" in text and "Unknown" in text
    assert format_orders([]) == "You have no orders yet."


def test_results_keyboard_marks_selected_filters():
    results = [RankedRestaurant(restaurant=make_restaurant("a"))]

    keyboard = get_results_keyboard(results, category="popular", radius="5")
    labels = {b.callback_data: b.text for row in keyboard.inline_keyboard for b in row}

    assert labels["r:a"].endswith("Restaurant a")
    assert labels["cat:popular"].startswith("•")
    assert labels["rad:5"].startswith("•")
    assert not labels["cat:all"].startswith("•")


def test_text_helpers():
    assert escape_markdown("*bold* [x]") == "\\*bold\\* \\[x]"
    assert format_price(15, "usd") == "$15.00"
