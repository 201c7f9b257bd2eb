"""Preference access for the adaptive engine.

Preferences are created lazily with defaults the first time they are read
through ``get_or_create``. ``find`` is the read-only variant used where a
missing row must not be materialised.
"""

from dataclasses import replace
import logging

from src.modules.adaptive.interface import PreferencesUpdate
from src.modules.store.interface import AdaptivePreferences, IPracticeStore
from src.shared.constants import MAX_ADAPTIVITY_LEVEL, MIN_ADAPTIVITY_LEVEL
from src.shared.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def clamp_adaptivity_level(level: int) -> int:
    return max(MIN_ADAPTIVITY_LEVEL, min(MAX_ADAPTIVITY_LEVEL, level))


class PreferenceAccessor:
    """Reads and writes a user's adaptivity settings."""

    def __init__(self, store: IPracticeStore) -> None:
        self._store = store

    async def find(self, user_id: str) -> AdaptivePreferences | None:
        return await self._store.find_preferences(user_id)

    async def get_or_create(self, user_id: str) -> AdaptivePreferences:
        """Get preferences, inserting defaults (5, balanced, enabled) if absent."""
        prefs = await self._store.find_preferences(user_id)
        if prefs is not None:
            return prefs

        prefs = await self._store.upsert_preferences(AdaptivePreferences(user_id=user_id))
        logger.info(
            f"Created default adaptive preferences for user {user_id} "
            f"({self._store.subject.value})"
        )
        return prefs

    async def save(self, user_id: str, update: PreferencesUpdate) -> AdaptivePreferences:
        """Merge explicitly supplied fields into the stored preferences.

        Args:
            user_id: Owner of the preferences
            update: Fields to change; unset fields keep their stored value

        Returns:
            The preferences as stored after the merge
        """
        current = await self._store.find_preferences(user_id) or AdaptivePreferences(
            user_id=user_id
        )
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        if "adaptivity_level" in changes:
            changes["adaptivity_level"] = clamp_adaptivity_level(changes["adaptivity_level"])

        merged = replace(current, **changes, updated_at=utc_now())
        saved = await self._store.upsert_preferences(merged)
        logger.debug(f"Saved adaptive preferences for user {user_id}: {changes}")
        return saved

    async def toggle_enabled(self, user_id: str) -> bool:
        """Flip the enable flag and return the new value.

        A user without preferences gets the defaults, which are enabled; the
        first toggle therefore reports ``True`` without flipping anything.
        """
        prefs = await self._store.find_preferences(user_id)
        if prefs is None:
            created = await self.get_or_create(user_id)
            return created.enable_adaptive_learning

        toggled = replace(
            prefs,
            enable_adaptive_learning=not prefs.enable_adaptive_learning,
            updated_at=utc_now(),
        )
        saved = await self._store.upsert_preferences(toggled)
        logger.info(
            f"Adaptive learning {'enabled' if saved.enable_adaptive_learning else 'disabled'} "
            f"for user {user_id}"
        )
        return saved.enable_adaptive_learning
