"""
Telegram inline and reply keyboards.
"""
from typing import List, Optional

from aiogram.types import (
    ReplyKeyboardMarkup,
    KeyboardButton,
    InlineKeyboardMarkup,
    InlineKeyboardButton,
)

from models import CartLine, MenuItem, RankedRestaurant
from utils.text_utils import format_price

BUTTON_FIND = "Find restaurants"
BUTTON_CART = "Cart"
BUTTON_ORDERS = "My orders"
BUTTON_HELP = "Help"
BUTTON_CANCEL = "Cancel"
BUTTON_DEVICE_LOCATION = "Send my location"
BUTTON_MAP_PICK = "Pick on map"
BUTTON_TEXT_SEARCH = "Search by text"
BUTTON_NO_LOCATION = "Show all"

CATEGORY_BUTTONS = [
    ("All", "all"),
    ("Popular", "popular"),
    ("New", "new"),
    ("Fast Food", "fast food"),
    ("BBQ", "bbq"),
    ("Healthy", "healthy"),
    ("North Indian", "north indian"),
    ("Multi-Cuisine", "multi-cuisine"),
]

RADIUS_BUTTONS = [
    ("Any distance", "all"),
    ("1 km", "1"),
    ("3 km", "3"),
    ("5 km", "5"),
    ("10 km", "10"),
]

MENU_SORT_BUTTONS = [
    ("Default", "none"),
    ("Price ↑", "low_to_high"),
    ("Price ↓", "high_to_low"),
]


def get_cancel_keyboard() -> ReplyKeyboardMarkup:
    """Get keyboard with cancel button."""
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=BUTTON_CANCEL)]
        ],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def get_start_keyboard() -> ReplyKeyboardMarkup:
    """Get main menu keyboard."""
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=BUTTON_FIND)],
            [KeyboardButton(text=BUTTON_CART), KeyboardButton(text=BUTTON_ORDERS)],
            [KeyboardButton(text=BUTTON_HELP)],
        ],
        resize_keyboard=True,
    )


def get_location_keyboard() -> ReplyKeyboardMarkup:
    """Get keyboard for choosing how to give a location."""
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=BUTTON_DEVICE_LOCATION, request_location=True)],
            [KeyboardButton(text=BUTTON_MAP_PICK), KeyboardButton(text=BUTTON_TEXT_SEARCH)],
            [KeyboardButton(text=BUTTON_NO_LOCATION), KeyboardButton(text=BUTTON_CANCEL)],
        ],
        resize_keyboard=True,
        one_time_keyboard=True,
    )


def _mark(label: str, selected: bool) -> str:
    return f"• {label}" if selected else label


def get_results_keyboard(
    results: List[RankedRestaurant],
    category: str = "all",
    radius: str = "all",
) -> InlineKeyboardMarkup:
    """Get inline keyboard for search results with category and radius filters."""
    buttons = []

    for result in results:
        buttons.append([
            InlineKeyboardButton(
                text=f"🍽 {result.restaurant.name}",
                callback_data=f"r:{result.restaurant.id}",
            )
        ])

    categories = [
        InlineKeyboardButton(text=_mark(label, value == category), callback_data=f"cat:{value}")
        for label, value in CATEGORY_BUTTONS
    ]
    buttons.extend(categories[i:i + 4] for i in range(0, len(categories), 4))

    buttons.append([
        InlineKeyboardButton(text=_mark(label, value == radius), callback_data=f"rad:{value}")
        for label, value in RADIUS_BUTTONS
    ])

    buttons.append([
        InlineKeyboardButton(text="Change location", callback_data="new_search")
    ])

    return InlineKeyboardMarkup(inline_keyboard=buttons)


def get_menu_keyboard(items: List[MenuItem], sort_order: str = "none", currency: str = "USD") -> InlineKeyboardMarkup:
    """Get inline keyboard with one add button per menu item."""
    buttons = [
        [InlineKeyboardButton(
            text=f"➕ {item.name} — {format_price(item.price, currency)}",
            callback_data=f"add:{item.id}",
        )]
        for item in items
    ]

    buttons.append([
        InlineKeyboardButton(text=_mark(label, value == sort_order), callback_data=f"sort:{value}")
        for label, value in MENU_SORT_BUTTONS
    ])

    buttons.append([
        InlineKeyboardButton(text="🛒 Cart", callback_data="cart"),
        InlineKeyboardButton(text="⬅️ Back", callback_data="results"),
    ])

    return InlineKeyboardMarkup(inline_keyboard=buttons)


def get_cart_keyboard(lines: List[CartLine]) -> InlineKeyboardMarkup:
    """Get inline keyboard with quantity controls per cart line."""
    buttons = []

    for line in lines:
        item_id = line.menu_item.id
        buttons.append([
            InlineKeyboardButton(text=f"{line.menu_item.name} × {line.quantity}", callback_data="noop"),
        ])
        buttons.append([
            InlineKeyboardButton(text="➖", callback_data=f"dec:{item_id}"),
            InlineKeyboardButton(text="➕", callback_data=f"inc:{item_id}"),
            InlineKeyboardButton(text="🗑", callback_data=f"rm:{item_id}"),
        ])

    if lines:
        buttons.append([
            InlineKeyboardButton(text="💳 Checkout", callback_data="checkout")
        ])

    return InlineKeyboardMarkup(inline_keyboard=buttons)


def get_tracking_keyboard(tracking: bool = True) -> Optional[InlineKeyboardMarkup]:
    """Get inline keyboard for the order tracking view."""
    if not tracking:
        return None

    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(text="🔄 Refresh", callback_data="orders_refresh"),
            InlineKeyboardButton(text="⏹ Stop tracking", callback_data="orders_stop"),
        ]
    ])
