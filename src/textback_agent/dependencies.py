"""Dependency Injection for Textback Agent.

Provides FastAPI dependency functions for the engine services.
Tests replace ``get_services`` through ``app.dependency_overrides``.

Usage:
    from textback_agent.dependencies import ServicesDep

    @router.get("/endpoint")
    async def handler(services: ServicesDep):
        ...
"""

from __future__ import annotations

import threading
from typing import Annotated

from fastapi import Depends

from textback_agent.config import Settings, get_settings
from textback_agent.services import Services

_services_lock = threading.Lock()
_services_instance: Services | None = None


def get_app_settings() -> Settings:
    """Get application settings.

    Returns cached settings instance.
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_services() -> Services:
    """Get the engine services singleton.

    Thread-safe via double-checked locking pattern.
    """
    global _services_instance

    if _services_instance is None:
        with _services_lock:
            if _services_instance is None:
                from textback_agent.ai import get_completion_provider
                from textback_agent.db.session import get_session_factory
                from textback_agent.integrations.calendar import get_calendar_integration
                from textback_agent.integrations.sms import get_sms_gateway
                from textback_agent.services import Stores, build_services

                _services_instance = build_services(
                    get_settings(),
                    Stores.sql(get_session_factory()),
                    sms=get_sms_gateway(),
                    ai=get_completion_provider(),
                    calendar=get_calendar_integration(),
                )

    return _services_instance


ServicesDep = Annotated[Services, Depends(get_services)]


def reset_services() -> None:
    """Reset the services singleton (for testing)."""
    global _services_instance
    with _services_lock:
        _services_instance = None
