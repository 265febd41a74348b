"""
FSM states for the bot conversation flow.
"""
from aiogram.fsm.state import State, StatesGroup


class DiscoveryState(StatesGroup):
    """States for restaurant discovery flow."""

    # Choosing how to give a location (device, map pick, text)
    choosing_location = State()

    # Manual pick armed: the next shared location is the pick
    waiting_for_map_pick = State()

    # Waiting for free-text search
    waiting_for_query = State()

    # Results shown, filters and menus available
    browsing = State()


class CheckoutState(StatesGroup):
    """States for payment and order placement."""

    # Waiting for the card holder name to confirm payment
    waiting_for_cardholder = State()


class TrackingState(StatesGroup):
    """Order tracking view is open and polling."""

    tracking = State()
