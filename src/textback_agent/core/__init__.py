"""Cross-cutting utilities: errors, logging, retries, locks and phone numbers."""

from textback_agent.core.exceptions import TextbackError
from textback_agent.core.locks import KeyedLock
from textback_agent.core.log import get_logger, setup_logging
from textback_agent.core.phone import normalize_phone, phones_match, to_e164

__all__ = [
    "KeyedLock",
    "TextbackError",
    "get_logger",
    "normalize_phone",
    "phones_match",
    "setup_logging",
    "to_e164",
]
