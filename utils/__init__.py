from .http_client import HttpClient, http_client
from .text_utils import (
    normalize_text,
    contains_text,
    format_price,
    escape_markdown,
)

__all__ = [
    "HttpClient",
    "http_client",
    "normalize_text",
    "contains_text",
    "format_price",
    "escape_markdown",
]
