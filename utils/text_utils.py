"""
Text processing utilities for restaurant matching and price display.
"""
import re
import unicodedata


def normalize_text(text: str) -> str:
    """
    Normalize text for comparison.

    - Convert to lowercase
    - Remove extra whitespace
    - Normalize unicode characters
    """
    if not text:
        return ""

    # Normalize unicode
    text = unicodedata.normalize("NFKC", text)

    # Lowercase
    text = text.casefold()

    # Replace multiple whitespace with single space
    text = re.sub(r"\s+", " ", text)

    # Remove leading/trailing whitespace
    text = text.strip()

    return text


def contains_text(haystack: str, needle: str) -> bool:
    """Case-insensitive substring match. An empty needle matches everything."""
    needle = normalize_text(needle)
    if not needle:
        return True
    return needle in normalize_text(haystack)


def format_price(amount: float, currency: str = "USD") -> str:
    """Format an amount for display, e.g. 15.0 -> '$15.00'."""
    symbols = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹"}
    symbol = symbols.get(currency.upper())
    if symbol:
        return f"{symbol}{amount:.2f}"
    return f"{amount:.2f} {currency.upper()}"


def escape_markdown(text: str) -> str:
    """Escape Telegram legacy Markdown control characters."""
    if not text:
        return ""
    return re.sub(r"([_*`\[])", r"\\\1", text)
