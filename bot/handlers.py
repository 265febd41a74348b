"""
Telegram bot message handlers.
"""
import logging
from typing import List, Optional

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.types import Message, CallbackQuery, ErrorEvent, Location
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext

from bot.states import DiscoveryState, CheckoutState, TrackingState
from bot.keyboards import (
    BUTTON_FIND,
    BUTTON_CART,
    BUTTON_ORDERS,
    BUTTON_HELP,
    BUTTON_CANCEL,
    BUTTON_MAP_PICK,
    BUTTON_TEXT_SEARCH,
    BUTTON_NO_LOCATION,
    get_start_keyboard,
    get_cancel_keyboard,
    get_location_keyboard,
    get_results_keyboard,
    get_menu_keyboard,
    get_cart_keyboard,
    get_tracking_keyboard,
)
from bot.formatting import (
    format_cart,
    format_order_confirmation,
    format_orders,
    format_restaurant_header,
    format_results,
    format_top_rated,
)
from models import Coordinate, Order
from services import (
    sessions,
    order_manager,
    payment_gateway,
    restaurant_store,
    FetchFailed,
    LocationUnavailable,
    PaymentNotConfirmed,
    PersistenceError,
    ValidationError,
)
from services.location import Geolocator
from services.ranking import parse_radius, sort_menu, top_rated
from services.sessions import ActorSession
from utils.text_utils import escape_markdown
from config import settings

logger = logging.getLogger(__name__)

router = Router()

LOCATION_ERRORS = {
    LocationUnavailable.DENIED: "Location access was denied. Pick a point on the map or search by text.",
    LocationUnavailable.TIMEOUT: "Couldn't get your location in time. Try again or search by text.",
    LocationUnavailable.UNSUPPORTED: "Your device can't share a location here. Search by text instead.",
    LocationUnavailable.BUSY: "Still waiting for your location...",
}


class SharedLocationGeolocator(Geolocator):
    """Position taken from a location the user shared from their device."""

    def __init__(self, location: Optional[Location]):
        self._location = location

    async def get_current_position(self) -> Coordinate:
        if self._location is None:
            raise NotImplementedError("Message carries no location")
        return Coordinate(latitude=self._location.latitude, longitude=self._location.longitude)


def _coordinate_of(message: Message) -> Optional[Coordinate]:
    location = message.location or (message.venue.location if message.venue else None)
    if location is None:
        return None
    return Coordinate(latitude=location.latitude, longitude=location.longitude)


def _radius_value(session: ActorSession) -> str:
    radius = session.filters.radius_km
    return "all" if radius is None else f"{radius:g}"


# --- Command handlers ---

@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext):
    """Handle /start command."""
    logger.info(f"/start from user {message.from_user.id}")
    await state.clear()
    await sessions.get(message.chat.id).stop_tracking()

    text = (
        "Hi! I help you find restaurants nearby, order food and track your orders.\n\n"
        "Tap *Find restaurants* to start."
    )

    try:
        restaurants = await restaurant_store.search()
    except FetchFailed as e:
        logger.warning(f"Top rated unavailable: {e}")
    else:
        highlights = format_top_rated(top_rated(restaurants))
        if highlights:
            text += f"\n\n{highlights}\n\n{len(restaurants)} restaurants available."

    await message.answer(text, reply_markup=get_start_keyboard())


@router.message(Command("help"))
@router.message(F.text == BUTTON_HELP)
async def cmd_help(message: Message):
    """Handle /help command."""
    await message.answer(
        "How to use the bot:\n\n"
        "1. Tap *Find restaurants* and share your location, pick a point on the map "
        "or search by text\n"
        "2. Narrow results by category and distance\n"
        "3. Open a restaurant and add dishes to your cart\n"
        "4. Check out and track your order\n\n"
        "Commands:\n"
        "/start - Main menu\n"
        "/restaurants - Find restaurants\n"
        "/cart - Show cart\n"
        "/orders - Track orders\n"
        "/cancel - Close the current view\n"
        "/help - Show this help",
    )


@router.message(Command("cancel"))
@router.message(F.text == BUTTON_CANCEL)
async def cmd_cancel(message: Message, state: FSMContext):
    """Handle /cancel command: close open views and stop tracking."""
    session = sessions.get(message.chat.id)
    session.location.disarm_map_pick()
    await session.close()
    await state.clear()

    await message.answer(
        "Closed. Tap *Find restaurants* to start again.",
        reply_markup=get_start_keyboard(),
    )


# --- Discovery handlers ---

@router.message(Command("restaurants"))
@router.message(F.text == BUTTON_FIND)
async def start_discovery(message: Message, state: FSMContext):
    """Open discovery; a restored reference point is used right away."""
    session = sessions.get(message.chat.id)
    await session.stop_tracking()
    session.discovery.reopen()

    if session.location.active is not None:
        await state.set_state(DiscoveryState.browsing)
        await show_results(message, session)
        return

    await state.set_state(DiscoveryState.choosing_location)
    await message.answer(
        "Where should I look?",
        reply_markup=get_location_keyboard(),
    )


@router.message(F.text == BUTTON_MAP_PICK)
async def arm_map_pick(message: Message, state: FSMContext):
    session = sessions.get(message.chat.id)
    session.location.arm_map_pick()
    await state.set_state(DiscoveryState.waiting_for_map_pick)

    await message.answer(
        "Open 📎 → Location, move the pin and send it.",
        reply_markup=get_cancel_keyboard(),
    )


@router.message(DiscoveryState.waiting_for_map_pick, F.location | F.venue)
async def process_map_pick(message: Message, state: FSMContext):
    """The first map interaction after arming sets the point."""
    session = sessions.get(message.chat.id)
    coordinate = _coordinate_of(message)

    point = session.location.handle_map_interaction(coordinate)
    if point is None:
        # Pick was disarmed meanwhile; treat as an ordinary shared location
        await process_device_location(message, state)
        return

    session.discovery.reopen()
    await state.set_state(DiscoveryState.browsing)
    await show_results(message, session)


@router.message(F.location)
async def process_device_location(message: Message, state: FSMContext):
    session = sessions.get(message.chat.id)

    try:
        point = await session.location.acquire_from_device(SharedLocationGeolocator(message.location))
    except LocationUnavailable as e:
        await message.answer(LOCATION_ERRORS.get(e.reason, str(e)), reply_markup=get_location_keyboard())
        return
    except PersistenceError as e:
        logger.warning(f"Reference point not saved for {session.actor_id}: {e}")
        await message.answer("Couldn't save your location. Please try again.")
        return

    if point is None:
        # A newer pick or search replaced this request
        return

    session.discovery.reopen()
    await state.set_state(DiscoveryState.browsing)
    await show_results(message, session)


@router.message(F.text == BUTTON_TEXT_SEARCH)
async def ask_query(message: Message, state: FSMContext):
    await state.set_state(DiscoveryState.waiting_for_query)
    await message.answer(
        "Type a restaurant name, cuisine or address:",
        reply_markup=get_cancel_keyboard(),
    )


@router.message(DiscoveryState.waiting_for_query, F.text)
async def process_query(message: Message, state: FSMContext):
    session = sessions.get(message.chat.id)

    try:
        session.location.acquire_from_text_query(message.text)
    except ValueError:
        await message.answer("Please type something to search for.")
        return

    session.discovery.reopen()
    await state.set_state(DiscoveryState.browsing)
    await show_results(message, session)


@router.message(F.text == BUTTON_NO_LOCATION)
async def show_all(message: Message, state: FSMContext):
    """Browse without a reference point."""
    session = sessions.get(message.chat.id)
    session.location.clear()
    session.discovery.reopen()
    await state.set_state(DiscoveryState.browsing)
    await show_results(message, session)


async def show_results(message: Message, session: ActorSession, edit: bool = False):
    """Run a search with the session filters and render it."""
    try:
        results = await session.discovery.search(
            reference=session.location.active,
            category=session.filters.category,
            radius=session.filters.radius_km,
        )
    except FetchFailed as e:
        logger.warning(f"Search failed for {session.actor_id}: {e}")
        await message.answer("Couldn't load restaurants. Please try again later.")
        if not session.discovery.results:
            return
        results = session.discovery.results

    if results is None:
        # Superseded or the view was closed
        return

    text = format_results(results, session.location.active, limit=settings.max_results_shown)
    keyboard = get_results_keyboard(
        results[:settings.max_results_shown],
        category=session.filters.category,
        radius=_radius_value(session),
    )

    if edit:
        await _edit(message, text, keyboard)
    else:
        await message.answer(text, reply_markup=keyboard)


async def _edit(message: Message, text: str, reply_markup=None):
    try:
        await message.edit_text(text, reply_markup=reply_markup)
    except TelegramBadRequest as e:
        if "message is not modified" not in str(e):
            raise


# --- Callback handlers ---

@router.callback_query(F.data.startswith("cat:"))
async def callback_category(callback: CallbackQuery):
    await callback.answer()
    session = sessions.get(callback.message.chat.id)
    session.filters = session.filters.model_copy(update={"category": callback.data.split(":", 1)[1]})
    await show_results(callback.message, session, edit=True)


@router.callback_query(F.data.startswith("rad:"))
async def callback_radius(callback: CallbackQuery):
    session = sessions.get(callback.message.chat.id)

    try:
        radius_km = parse_radius(callback.data.split(":", 1)[1])
    except ValueError:
        await callback.answer("Unknown radius")
        return

    await callback.answer()
    session.filters = session.filters.model_copy(update={"radius_km": radius_km})
    await show_results(callback.message, session, edit=True)


@router.callback_query(F.data == "new_search")
async def callback_new_search(callback: CallbackQuery, state: FSMContext):
    """Handle change location button press."""
    await callback.answer()
    await state.set_state(DiscoveryState.choosing_location)

    await callback.message.answer(
        "Where should I look?",
        reply_markup=get_location_keyboard(),
    )


@router.callback_query(F.data == "results")
async def callback_back_to_results(callback: CallbackQuery):
    await callback.answer()
    session = sessions.get(callback.message.chat.id)
    session.discovery.reopen()
    await show_results(callback.message, session, edit=True)


@router.callback_query(F.data.startswith("r:"))
async def callback_open_restaurant(callback: CallbackQuery):
    """Open a restaurant menu."""
    await callback.answer()
    session = sessions.get(callback.message.chat.id)
    restaurant_id = callback.data.split(":", 1)[1]

    try:
        restaurant = await restaurant_store.get_restaurant(restaurant_id)
        items = await restaurant_store.get_menu(restaurant_id)
    except FetchFailed as e:
        logger.warning(f"Failed to open restaurant {restaurant_id}: {e}")
        await callback.message.answer("Couldn't load this restaurant. Please try again later.")
        return

    session.open_menu(restaurant, items)
    await render_menu(callback.message, session, edit=True)


async def render_menu(message: Message, session: ActorSession, edit: bool = False):
    if session.restaurant is None:
        return

    text = format_restaurant_header(session.restaurant, session.location.active)
    if not session.menu:
        text += "\n\nThe menu is empty."

    keyboard = get_menu_keyboard(
        sort_menu(session.menu.values(), session.menu_sort),
        sort_order=session.menu_sort,
        currency=settings.currency,
    )

    if edit:
        await _edit(message, text, keyboard)
    else:
        await message.answer(text, reply_markup=keyboard)


@router.callback_query(F.data.startswith("sort:"))
async def callback_sort_menu(callback: CallbackQuery):
    await callback.answer()
    session = sessions.get(callback.message.chat.id)
    session.menu_sort = callback.data.split(":", 1)[1]
    await render_menu(callback.message, session, edit=True)


@router.callback_query(F.data.startswith("add:"))
async def callback_add_to_cart(callback: CallbackQuery):
    session = sessions.get(callback.message.chat.id)
    item = session.menu.get(callback.data.split(":", 1)[1])

    if item is None:
        await callback.answer("This item is no longer on the menu")
        return

    try:
        line = session.cart.add(item)
    except PersistenceError as e:
        logger.warning(f"Cart not saved for {session.actor_id}: {e}")
        await callback.answer("Couldn't update your cart")
        return

    await callback.answer(f"{item.name} × {line.quantity} in cart")


@router.message(Command("cart"))
@router.message(F.text == BUTTON_CART)
async def cmd_cart(message: Message):
    session = sessions.get(message.chat.id)
    await session.stop_tracking()
    await render_cart(message, session)


@router.callback_query(F.data == "cart")
async def callback_cart(callback: CallbackQuery):
    await callback.answer()
    session = sessions.get(callback.message.chat.id)
    await render_cart(callback.message, session)


async def render_cart(message: Message, session: ActorSession, edit: bool = False):
    cart = session.cart
    text = format_cart(cart.lines, cart.total(), settings.currency)
    keyboard = get_cart_keyboard(cart.lines)

    if edit:
        await _edit(message, text, keyboard)
    else:
        await message.answer(text, reply_markup=keyboard)


@router.callback_query(F.data.regexp(r"^(inc|dec|rm):"))
async def callback_cart_line(callback: CallbackQuery):
    """Quantity controls of one cart line."""
    await callback.answer()
    session = sessions.get(callback.message.chat.id)
    action, item_id = callback.data.split(":", 1)

    try:
        if action == "inc":
            session.cart.increase(item_id)
        elif action == "dec":
            session.cart.decrease(item_id)
        else:
            session.cart.remove(item_id)
    except PersistenceError as e:
        logger.warning(f"Cart not saved for {session.actor_id}: {e}")
        await callback.message.answer("Couldn't update your cart. Please try again.")
        return

    await render_cart(callback.message, session, edit=True)


@router.callback_query(F.data == "noop")
async def callback_noop(callback: CallbackQuery):
    await callback.answer()


# --- Checkout handlers ---

@router.callback_query(F.data == "checkout")
async def callback_checkout(callback: CallbackQuery, state: FSMContext):
    await callback.answer()
    session = sessions.get(callback.message.chat.id)

    if session.cart.is_empty:
        await callback.message.answer("Your cart is empty.")
        return

    await state.set_state(CheckoutState.waiting_for_cardholder)
    await callback.message.answer(
        "Enter the card holder name to pay:",
        reply_markup=get_cancel_keyboard(),
    )


@router.message(CheckoutState.waiting_for_cardholder, F.text)
async def process_payment(message: Message, state: FSMContext):
    """Pay for the cart, then persist the order."""
    session = sessions.get(message.chat.id)
    cart = session.cart

    if cart.is_empty:
        await state.clear()
        await message.answer("Your cart is empty.", reply_markup=get_start_keyboard())
        return

    processing_msg = await message.answer("Processing payment...")
    payment_details = {
        "billing_details": {"name": message.text.strip()},
        "actorId": session.actor_id,
    }

    try:
        confirmation = await payment_gateway.pay(cart.total(), payment_details)
        order = await order_manager.checkout(cart, confirmation)

    except ValidationError as e:
        logger.warning(f"Checkout rejected for {session.actor_id}: {e}")
        await processing_msg.edit_text(f"Can't place this order: {escape_markdown(str(e))}")

    except PaymentNotConfirmed as e:
        logger.warning(f"Payment not confirmed for {session.actor_id}: {e}")
        await processing_msg.edit_text("Payment failed. Your cart is unchanged, please try again.")

    except PersistenceError as e:
        logger.warning(f"Order not saved for {session.actor_id}: {e}")
        await processing_msg.edit_text(
            "Payment went through but the order couldn't be saved. "
            "Your cart is kept; please contact support."
        )

    else:
        await processing_msg.edit_text(format_order_confirmation(order, settings.currency))

    finally:
        await state.clear()
        await message.answer("What next?", reply_markup=get_start_keyboard())


# --- Tracking handlers ---

@router.message(Command("orders"))
@router.message(F.text == BUTTON_ORDERS)
async def cmd_orders(message: Message, state: FSMContext):
    """Open the tracking view: orders are refreshed until it is closed."""
    session = sessions.get(message.chat.id)
    view = await message.answer("Loading your orders...", reply_markup=get_tracking_keyboard())
    last_text = {"value": view.text}

    async def on_update(orders: List[Order]):
        text = format_orders(orders, settings.currency)
        if text == last_text["value"]:
            return
        try:
            await view.edit_text(text, reply_markup=get_tracking_keyboard())
        except TelegramBadRequest as e:
            if "message is not modified" in str(e):
                return
            logger.warning(f"Tracking view gone for {session.actor_id}: {e}")
            await session.stop_tracking()
            return
        last_text["value"] = text

    await session.start_tracking(order_manager, on_update)
    await state.set_state(TrackingState.tracking)


@router.callback_query(F.data == "orders_refresh")
async def callback_orders_refresh(callback: CallbackQuery):
    session = sessions.get(callback.message.chat.id)

    if session.poller is None:
        await callback.answer("Tracking stopped. Use /orders to start again.")
        return

    await callback.answer("Refreshing...")
    await session.poller.poll_once()


@router.callback_query(F.data == "orders_stop")
async def callback_orders_stop(callback: CallbackQuery, state: FSMContext):
    await callback.answer("Tracking stopped")
    session = sessions.get(callback.message.chat.id)
    await session.stop_tracking()
    await state.clear()

    await callback.message.edit_reply_markup(reply_markup=get_tracking_keyboard(tracking=False))


# --- Error handler ---

@router.errors()
async def on_error(event: ErrorEvent):
    """Log unexpected failures and tell the user something went wrong."""
    logger.error(f"Unhandled error: {event.exception}", exc_info=event.exception)

    update = event.update
    message = update.message or (update.callback_query.message if update.callback_query else None)
    if message is not None:
        await message.answer("Something went wrong. Please try again.")
    return True


# --- Fallback handler (must be last) ---

@router.message()
async def fallback(message: Message, state: FSMContext):
    """Catch-all for messages no other handler took."""
    current_state = await state.get_state()
    logger.debug(
        f"Unhandled message from {message.from_user.id}: {message.text!r}, state={current_state}"
    )
    await message.answer(
        "I didn't get that. Use the buttons below or /help.",
        reply_markup=get_start_keyboard(),
    )
