"""Style profiles for personality-driven response rewriting.

Each profile scores five personality dimensions on an integer scale from
-2 (the opposite of the trait is strongly present) to +2 (the trait is
strongly present).  Profiles are loaded once from ``personalities.json``
and are read-only afterwards, so concurrent sessions can share one store.

Out-of-range intensities are rejected when the file is loaded: the bad
profile is skipped and logged, and lookups for its id fail with
``ProfileNotFoundError`` like any other unknown id.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator

from personality_engine.config import settings

logger = logging.getLogger(__name__)

TRAIT_MIN = -2
TRAIT_MAX = 2

# Order matters: it is the order traits appear in the composed prompt.
TRAIT_NAMES: tuple[str, ...] = (
    "vibrancy",
    "conscientiousness",
    "civility",
    "artificiality",
    "neuroticism",
)


class ProfileNotFoundError(LookupError):
    """Raised when a personality id is not present in the store."""

    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"Personality profile '{profile_id}' not found")


class ProfileLoadError(Exception):
    """Raised when the personalities file cannot be read or parsed."""


@dataclass(frozen=True)
class StyleProfile:
    """One named personality configuration."""

    id: str
    name: str
    description: str
    vibrancy: int
    conscientiousness: int
    civility: int
    artificiality: int
    neuroticism: int

    def __post_init__(self) -> None:
        for trait in TRAIT_NAMES:
            value = getattr(self, trait)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{self.id}: {trait} must be an integer, got {value!r}")
            if not TRAIT_MIN <= value <= TRAIT_MAX:
                raise ValueError(
                    f"{self.id}: {trait}={value} outside [{TRAIT_MIN}, {TRAIT_MAX}]"
                )

    def intensities(self) -> dict[str, int]:
        return {trait: getattr(self, trait) for trait in TRAIT_NAMES}

    def summary(self) -> dict[str, str]:
        """Public listing shape: id, name, description."""
        return {"id": self.id, "name": self.name, "description": self.description}


def _build_profile(profile_id: str, data: dict[str, Any]) -> StyleProfile:
    """Construct a StyleProfile from one raw JSON entry."""
    return StyleProfile(
        id=profile_id,
        name=str(data.get("name", profile_id)),
        description=str(data.get("description", "")),
        **{trait: data.get(trait, 0) for trait in TRAIT_NAMES},
    )


class StyleProfileStore:
    """Read-only, insertion-ordered collection of style profiles."""

    def __init__(self, profiles: dict[str, StyleProfile] | None = None) -> None:
        self._profiles: dict[str, StyleProfile] = dict(profiles or {})

    @classmethod
    def from_file(cls, path: Path) -> StyleProfileStore:
        """Load profiles from a JSON object keyed by profile id.

        Raises ``ProfileLoadError`` when the file is missing or malformed.
        Individual invalid profiles are skipped.
        """
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ProfileLoadError(f"Personalities file not found: {path}") from exc
        except json.JSONDecodeError as exc:
            raise ProfileLoadError(f"Invalid JSON in personalities file {path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ProfileLoadError(f"Personalities file {path} must contain a JSON object")

        profiles: dict[str, StyleProfile] = {}
        for profile_id, data in raw.items():
            if not isinstance(data, dict):
                logger.error("Skipping personality '%s': entry is not an object", profile_id)
                continue
            try:
                profiles[profile_id] = _build_profile(profile_id, data)
            except (TypeError, ValueError) as exc:
                logger.error("Skipping personality '%s': %s", profile_id, exc)

        logger.info(
            "Loaded %d personality profiles (%s) from %s",
            len(profiles),
            ", ".join(profiles),
            Path(path).name,
        )
        return cls(profiles)

    def get(self, profile_id: str) -> StyleProfile:
        """Return the profile for ``profile_id`` or raise ``ProfileNotFoundError``."""
        try:
            return self._profiles[profile_id]
        except KeyError:
            raise ProfileNotFoundError(profile_id) from None

    def list(self) -> list[StyleProfile]:
        """All profiles in load order."""
        return list(self._profiles.values())

    def __contains__(self, profile_id: object) -> bool:
        return profile_id in self._profiles

    def __iter__(self) -> Iterator[StyleProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)


@lru_cache(maxsize=1)
def get_profile_store() -> StyleProfileStore:
    """Process-wide store loaded from ``settings.personalities_path``."""
    return StyleProfileStore.from_file(settings.personalities_path)
