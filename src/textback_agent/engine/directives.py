"""Directive parsing for AI replies.

The model signals side effects by appending bracketed tags to its reply::

    [BOOK: name="Sarah Lee", service="Cleaning", datetime="2024-01-18 14:00", notes=""]
    [NAME_CAPTURED: name="Sarah"]
    [ESCALATE: reason="Customer is upset"]

``extract`` turns those tags into typed directives and returns the reply
with every tag removed. Nothing downstream ever looks at raw tag text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

# [NAME] or [NAME: key="value", ...]; quoted values may contain ']' and '\"'
_TAG_RE = re.compile(
    r"""[ \t]*\[
        (?P<kind>[A-Z][A-Z_]*)
        (?:\s*:(?P<body>(?:[^\]"]|"(?:[^"\\]|\\.)*")*))?
    \]""",
    re.VERBOSE | re.DOTALL,
)
# Leftover tag with a broken body, e.g. an unterminated quote
_BROKEN_TAG_RE = re.compile(r"[ \t]*\[[A-Z][A-Z_]*\s*:[^\]]*\]")
_ATTR_RE = re.compile(r'\s*(?P<key>[A-Za-z_]+)\s*=\s*"(?P<value>(?:[^"\\]|\\.)*)"\s*(?:,|$)', re.DOTALL)
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)

_ALIASES = {
    "APPOINTMENT_BOOKED": "BOOK",
    "HUMAN_NEEDED": "ESCALATE",
}


@dataclass(frozen=True)
class BookDirective:
    name: str
    service: str
    datetime: str
    notes: str = ""


@dataclass(frozen=True)
class NameCapturedDirective:
    name: str


@dataclass(frozen=True)
class EscalateDirective:
    reason: str | None = None


Directive = Union[BookDirective, NameCapturedDirective, EscalateDirective]


def _unescape(value: str) -> str:
    return _ESCAPE_RE.sub(r"\1", value)


def _parse_attributes(body: str | None) -> dict[str, str] | None:
    """Parse ``key="value", ...``; None when the body is not well formed."""
    if body is None or not body.strip():
        return {}

    attributes: dict[str, str] = {}
    position = 0
    while position < len(body):
        match = _ATTR_RE.match(body, position)
        if match is None or match.end() == position:
            return None
        attributes[match.group("key").lower()] = _unescape(match.group("value")).strip()
        position = match.end()
    return attributes


def _build(kind: str, attributes: dict[str, str]) -> Directive | None:
    kind = _ALIASES.get(kind, kind)

    if kind == "BOOK":
        name = attributes.get("name", "")
        service = attributes.get("service", "")
        when = attributes.get("datetime", "")
        if not (name and service and when):
            return None
        return BookDirective(name=name, service=service, datetime=when, notes=attributes.get("notes", ""))

    if kind == "NAME_CAPTURED":
        name = attributes.get("name", "")
        return NameCapturedDirective(name=name) if name else None

    if kind == "ESCALATE":
        return EscalateDirective(reason=attributes.get("reason") or None)

    return None


def extract(text: str) -> tuple[str, list[Directive]]:
    """Split an AI reply into deliverable text and directives.

    Unknown or malformed tags are removed from the text and produce no
    directive.

    Args:
        text: Raw completion text

    Returns:
        Cleaned text and directives in the order they appear
    """
    directives: list[Directive] = []

    def _collect(match: re.Match[str]) -> str:
        attributes = _parse_attributes(match.group("body"))
        if attributes is not None:
            directive = _build(match.group("kind"), attributes)
            if directive is not None:
                directives.append(directive)
        return ""

    cleaned = _BROKEN_TAG_RE.sub("", _TAG_RE.sub(_collect, text))
    if not directives and cleaned == text:
        return text, []
    return cleaned.strip(), directives
