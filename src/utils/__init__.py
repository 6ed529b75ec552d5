"""MooncrestBot - Utils Package."""

from src.utils.http import http_session, DEFAULT_TIMEOUT
from src.utils.footer import FOOTER_TEXT, init_footer, set_footer

__all__ = [
    "http_session",
    "DEFAULT_TIMEOUT",
    "FOOTER_TEXT",
    "init_footer",
    "set_footer",
]
