"""API route modules."""
from __future__ import annotations

from personality_engine.api.routes import agents, health, personality

__all__ = ["agents", "health", "personality"]
