"""Textback Agent - missed-call text-back with AI replies and slot booking."""

__version__ = "0.1.0"
