"""
Message text builders for the bot views.
"""
from typing import List, Optional

from models import CartLine, LocationMode, Order, RankedRestaurant, ReferencePoint, Restaurant
from services.geometry import bearing_octant, distance_km
from services.orders import present_status
from utils.text_utils import escape_markdown, format_price

MODE_LABELS = {
    LocationMode.DEVICE: "your location",
    LocationMode.MANUAL_MAP: "the picked point",
}


def format_distance(distance: Optional[float], direction=None) -> str:
    if distance is None:
        return ""
    text = f"{distance * 1000:.0f} m" if distance < 1 else f"{distance:.1f} km"
    if direction is not None:
        text += f" {direction.value}"
    return text


def format_reference(reference: Optional[ReferencePoint]) -> str:
    """One line describing what the results are relative to."""
    if reference is None:
        return "All restaurants"
    if reference.mode == LocationMode.TEXT_QUERY:
        return f"Results for \"{escape_markdown(reference.query)}\""
    return f"Nearest to {MODE_LABELS[reference.mode]}"


def format_results(
    results: List[RankedRestaurant],
    reference: Optional[ReferencePoint] = None,
    limit: int = 10,
) -> str:
    """Format ranked restaurants for a Telegram message."""
    lines = [f"*{format_reference(reference)}*\n"]

    if not results:
        lines.append("No restaurants found. Try another category, radius or search.")
        return "\n".join(lines)

    shown = results[:limit]
    for i, result in enumerate(shown, 1):
        restaurant = result.restaurant
        lines.append(f"*{i}. {escape_markdown(restaurant.name)}*  ⭐ {restaurant.rating:.1f}")

        details = [escape_markdown(restaurant.cuisine), escape_markdown(restaurant.price_range)]
        distance = format_distance(result.distance_km, result.direction)
        if distance:
            details.append(f"📍 {distance}")
        lines.append("   " + " · ".join(d for d in details if d))

        if restaurant.address:
            lines.append(f"   {escape_markdown(restaurant.address)}")

    if len(results) > len(shown):
        lines.append(f"\n…and {len(results) - len(shown)} more")

    return "\n".join(lines)


def format_top_rated(restaurants: List[Restaurant]) -> str:
    if not restaurants:
        return ""
    lines = ["*Top rated*"]
    for restaurant in restaurants:
        lines.append(f"⭐ {restaurant.rating:.1f}  {escape_markdown(restaurant.name)}")
    return "\n".join(lines)


def format_restaurant_header(restaurant: Restaurant, reference: Optional[ReferencePoint] = None) -> str:
    """Header of the menu view, with distance when a coordinate reference is active."""
    lines = [f"*{escape_markdown(restaurant.name)}*  ⭐ {restaurant.rating:.1f}"]
    if restaurant.cuisine:
        lines.append(escape_markdown(restaurant.cuisine))
    if restaurant.address:
        lines.append(f"📍 {escape_markdown(restaurant.address)}")

    if reference is not None and reference.has_coordinates:
        distance = distance_km(reference.coordinate, restaurant.coordinate)
        direction = bearing_octant(reference.coordinate, restaurant.coordinate)
        lines.append(f"🧭 {format_distance(distance, direction)} from {MODE_LABELS[reference.mode]}")

    lines.append("\nTap an item to add it to your cart.")
    return "\n".join(lines)


def format_cart(lines: List[CartLine], total: float, currency: str = "USD") -> str:
    if not lines:
        return "Your cart is empty."

    text = ["*Your cart*\n"]
    for line in lines:
        text.append(
            f"{escape_markdown(line.menu_item.name)} × {line.quantity} = "
            f"{format_price(line.subtotal, currency)}"
        )
    text.append(f"\n*Total: {format_price(total, currency)}*")
    return "\n".join(text)


def format_order_confirmation(order: Order, currency: str = "USD") -> str:
    presentation = present_status(order.status)
    lines = [
        "✅ *Order placed*",
        f"Order #{order.id[-6:]}",
        f"Status: {presentation.icon} {presentation.label}",
        "",
    ]
    for item in order.items:
        lines.append(f"{escape_markdown(item.name)} × {item.quantity}")
    lines.append(f"\n*Paid: {format_price(order.amount, currency)}*")
    lines.append("Use /orders to track it.")
    return "\n".join(lines)


def format_orders(orders: List[Order], currency: str = "USD") -> str:
    """Order history, newest first, each with its status presentation."""
    if not orders:
        return "You have no orders yet."

    lines = ["*My orders*\n"]
    for order in orders:
        presentation = present_status(order.status)
        lines.append(
            f"{presentation.icon} *#{order.id[-6:]}* · {order.date:%d %b %Y %H:%M} · {presentation.label}"
        )
        items = ", ".join(f"{escape_markdown(i.name)} × {i.quantity}" for i in order.items)
        lines.append(f"   {items}")
        lines.append(f"   {format_price(order.amount, currency)}")
        if presentation.affordance == "reorder":
            lines.append("   Delivered. Find it again via /restaurants")
        lines.append("")

    return "\n".join(lines).rstrip()
