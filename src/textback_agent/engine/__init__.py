"""Conversational safeguard and booking engine."""

from textback_agent.engine.directives import (
    BookDirective,
    Directive,
    EscalateDirective,
    NameCapturedDirective,
    extract,
)
from textback_agent.engine.missed_call import MissedCallEvent, MissedCallHandler, MissedCallResult
from textback_agent.engine.orchestrator import (
    InboundEvent,
    Messenger,
    ResponseOrchestrator,
    TurnResult,
)
from textback_agent.engine.scheduler import Slot, SlotAvailability, SlotScheduler
from textback_agent.engine.sessions import (
    InboundAction,
    InboundOutcome,
    SessionConfig,
    SessionManager,
)
from textback_agent.engine.suppression import SuppressionDecision, SuppressionEngine

__all__ = [
    "BookDirective",
    "Directive",
    "EscalateDirective",
    "InboundAction",
    "InboundEvent",
    "InboundOutcome",
    "Messenger",
    "MissedCallEvent",
    "MissedCallHandler",
    "MissedCallResult",
    "NameCapturedDirective",
    "ResponseOrchestrator",
    "SessionConfig",
    "SessionManager",
    "Slot",
    "SlotAvailability",
    "SlotScheduler",
    "SuppressionDecision",
    "SuppressionEngine",
    "TurnResult",
    "extract",
]
