"""System prompt and history assembly for the SMS assistant."""

from __future__ import annotations

from datetime import datetime

from textback_agent.domain import Business, Message, MessageDirection
from textback_agent.engine.scheduler import Slot

DEFAULT_GREETING = (
    "Hi! Sorry we missed your call at {name}. I'm an automated assistant - "
    "how can I help you today?"
)

_DIRECTIVE_RULES = """\
TAGS (add at the very end of your message, never explain them):
- When a booking is confirmed (you have name + service + date/time):
  [BOOK: name="John Smith", service="Teeth Cleaning", datetime="2024-01-15 14:00", notes="First time patient"]
- When the customer tells you their name:
  [NAME_CAPTURED: name="John Smith"]
- If someone seems upset or you can't help:
  [ESCALATE: reason="brief reason"]
Use \\" for a double quote inside a value. datetime is local time as YYYY-MM-DD HH:MM."""


def greeting_for(business: Business) -> str:
    """Business greeting with ``{name}`` filled in."""
    template = business.ai_greeting or DEFAULT_GREETING
    return template.replace("{name}", business.name)


def build_system_prompt(
    business: Business,
    now: datetime,
    slots: list[Slot] | None = None,
) -> str:
    """Persona, business facts, booking context and tag rules."""
    local_now = now.astimezone(business.tz)
    services = ", ".join(business.service_names()) or "General services"

    lines = [
        f"You are a friendly SMS assistant for {business.name}. "
        "You're helping someone who tried to call.",
        "",
        "GOALS:",
        "1. Be helpful, friendly, and brief (SMS should be under 160 chars when possible)",
        "2. Understand what they need",
        "3. If they want an appointment: get their name, service needed, and preferred date/time",
        "4. Answer questions about the business",
        "5. If you can't help or they're upset, flag for human follow-up",
        "",
        "BUSINESS INFO:",
        f"- Name: {business.name}",
        f"- Services: {services}",
    ]
    if business.ai_context:
        lines.append(f"- About: {business.ai_context}")
    if business.ai_instructions:
        lines.append(f"- Instructions: {business.ai_instructions}")

    lines += [
        f"- Current local time: {local_now.strftime('%A %Y-%m-%d %H:%M')} ({business.timezone})",
        "",
    ]

    if slots:
        lines.append("OPEN SLOTS (only book one of these):")
        lines += [f"- {slot.start.strftime('%a %Y-%m-%d %H:%M')}" for slot in slots]
        lines.append("")
    elif slots is not None:
        lines += ["OPEN SLOTS: none in the next few days; offer to have someone call back.", ""]

    lines += [
        "RULES:",
        "- Keep responses SHORT (1-2 sentences ideal)",
        "- Be warm and natural, not robotic",
        "- Don't make up information",
        "",
        _DIRECTIVE_RULES,
    ]
    return "\n".join(lines)


def build_history(messages: list[Message]) -> list[dict[str, str]]:
    """Chat history in completion-provider format, oldest first."""
    return [
        {
            "role": "user" if message.direction == MessageDirection.INBOUND else "assistant",
            "content": message.content,
        }
        for message in messages
    ]
