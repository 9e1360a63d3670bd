"""Health check endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from personality_engine.config import settings
from personality_engine.personality.profiles import get_profile_store

router = APIRouter()


def _llm_configured() -> bool:
    """True if the configured LLM provider has an API key set (OpenRouter)."""
    return settings.llm_provider == "openrouter" and bool(settings.openrouter_api_key)


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check."""
    return {
        "status": "ok",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/health/full")
async def full_health_check() -> dict[str, Any]:
    """
    Health check including dependencies.

    Reports:
    - LLM: configured (OpenRouter API key present)
    - Profiles: number of personality profiles loaded
    """
    llm_ok = _llm_configured()
    try:
        profile_count = len(get_profile_store())
        profiles = {"status": "ok", "count": profile_count}
    except Exception as e:
        profile_count = 0
        profiles = {"status": "error", "error": str(e)}

    all_ok = llm_ok and profile_count > 0
    return {
        "status": "ok" if all_ok else "degraded",
        "service": settings.app_name,
        "version": settings.app_version,
        "dependencies": {
            "llm": {
                "status": "ok" if llm_ok else "unconfigured",
                "provider": settings.llm_provider,
            },
            "profiles": profiles,
        },
    }
