#!/usr/bin/env python3
"""CLI tools for running and exercising the Textback Agent.

Usage:
    textback-agent init-db                      # Create database tables
    textback-agent add-business business.json   # Load a business profile
    textback-agent serve                        # Run the API server
    textback-agent slots my-shop --days 3       # List open slots
    textback-agent chat                         # Simulate a missed call locally
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

from textback_agent.config import get_settings
from textback_agent.core.log import get_logger, setup_logging

log = get_logger(__name__)

DEMO_BUSINESS_PHONE = "+15550001000"
DEMO_CALLER_PHONE = "+15550002000"


def init_database(args: argparse.Namespace) -> int:
    """Create all tables."""
    from textback_agent.db.session import close_db, init_db

    async def run() -> None:
        await init_db()
        await close_db()

    asyncio.run(run())
    print(f"Database ready: {get_settings().database.url}")
    return 0


def add_business(args: argparse.Namespace) -> int:
    """Insert a business profile from a JSON file."""
    from textback_agent.db.models import BusinessModel
    from textback_agent.db.repositories import BusinessRepository
    from textback_agent.db.session import close_db, get_db_context, init_db

    data = json.loads(Path(args.file).read_text())
    if not isinstance(data, dict):
        print("Business file must contain a mapping", file=sys.stderr)
        return 1

    async def run() -> str:
        await init_db()
        async with get_db_context() as session:
            business = await BusinessRepository(session).create(BusinessModel(**data))
            business_id = str(business.id)
        await close_db()
        return business_id

    business_id = asyncio.run(run())
    print(f"Business created: {business_id}")
    return 0


def serve(args: argparse.Namespace) -> int:
    """Run the API server with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "textback_agent.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
    )
    return 0


def list_slots(args: argparse.Namespace) -> int:
    """Print open slots for a business."""
    from textback_agent.db.session import close_db
    from textback_agent.dependencies import get_services

    async def run() -> int:
        services = get_services()
        business = await services.stores.businesses.get_by_slug(args.slug)
        if business is None:
            print(f"Unknown business: {args.slug}", file=sys.stderr)
            return 1

        now = services.clock()
        start = now.astimezone(business.tz).date()
        availability = await services.scheduler.list_available_slots(
            business, start, start + timedelta(days=args.days), now
        )
        await close_db()

        print(f"\n=== Open slots for {business.name} ({business.timezone}) ===\n")
        for slot in availability.slots:
            print(f"  {slot.start.isoformat()}  {slot.display}")
        if not availability.slots:
            print("  (none)")
        if availability.all_consumed_today:
            print("\nAll of today's slots are taken.")
        return 0

    return asyncio.run(run())


def interactive_chat(args: argparse.Namespace) -> int:
    """Simulate a missed call and text with the assistant.

    Runs entirely in memory against a demo business. Uses Groq when an
    API key is configured, otherwise the mock provider.
    """
    from textback_agent.ai import get_completion_provider
    from textback_agent.domain import Business
    from textback_agent.engine import InboundEvent, MissedCallEvent
    from textback_agent.integrations.sms import MockSMSGateway
    from textback_agent.services import Stores, build_services

    print("\n=== Missed-Call Chat Simulation ===")
    print("Type 'quit' or 'exit' to end.\n")

    stores = Stores.memory()
    business = Business(
        id=uuid4(),
        name=args.business_name,
        slug="demo",
        phone_number=DEMO_BUSINESS_PHONE,
        timezone=args.timezone,
        business_hours={
            day: {"open": "09:00", "close": "17:00"}
            for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
        },
        services=["Consultation", "Repair"],
    )
    stores.businesses.add(business)

    sms = MockSMSGateway()
    services = build_services(get_settings(), stores, sms=sms, ai=get_completion_provider())

    async def run_chat() -> None:
        result = await services.missed_calls.handle(
            MissedCallEvent(
                to_phone=DEMO_BUSINESS_PHONE,
                caller_phone=DEMO_CALLER_PHONE,
                dial_status="no-answer",
            )
        )
        print(f"[missed call: {result.action}]")
        for sent in sms.get_sent_messages():
            print(f"Assistant: {sent['body']}\n")

        while True:
            try:
                user_input = input("You: ").strip()
            except (EOFError, KeyboardInterrupt):
                print("\nGoodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() in ("quit", "exit", "q"):
                print("Goodbye!")
                break

            turn = await services.orchestrator.handle_inbound(
                InboundEvent(
                    from_phone=DEMO_CALLER_PHONE,
                    to_phone=DEMO_BUSINESS_PHONE,
                    body=user_input,
                )
            )
            if turn.reply:
                print(f"Assistant: {turn.reply}\n")
            else:
                print(f"[{turn.action}]\n")
            if turn.appointment is not None:
                print(f"[booked {turn.appointment.scheduled_at.isoformat()}]\n")

    asyncio.run(run_chat())
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Textback Agent CLI Tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-db", help="Create database tables")

    business_parser = subparsers.add_parser("add-business", help="Load a business profile")
    business_parser.add_argument("file", type=str, help="JSON file with business fields")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", type=str, default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    slots_parser = subparsers.add_parser("slots", help="List open slots for a business")
    slots_parser.add_argument("slug", type=str, help="Business slug")
    slots_parser.add_argument("--days", type=int, default=3, help="Days to look ahead")

    chat_parser = subparsers.add_parser("chat", help="Simulate a missed call in the terminal")
    chat_parser.add_argument("--business-name", type=str, default="Demo Plumbing")
    chat_parser.add_argument("--timezone", type=str, default="America/New_York")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    setup_logging(level=settings.log_level, json_output=settings.log_json)

    commands = {
        "init-db": init_database,
        "add-business": add_business,
        "serve": serve,
        "slots": list_slots,
        "chat": interactive_chat,
    }

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
