"""Dashboard session preferences.

Preferences live in an explicit :class:`PreferencesStore` owned by the
client rather than in module globals. They are loaded from a JSON file
(defaults when it is missing or unreadable) and written back on every
change. Changing the refresh cadence clears the data cache so the next
read observes the new cadence.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from pairsync._cache import TtlCache
from pairsync.exceptions import PairsyncConfigError

_logger = logging.getLogger(__name__)


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"


class DashboardPreferences(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    sidebar_collapsed: bool = False
    refresh_interval: float = Field(default=30.0, gt=0)
    """Seconds between automatic refreshes."""
    theme: Theme = Theme.LIGHT
    default_timeframe: str = "7d"


PreferencesListener = Callable[[DashboardPreferences], None]


class PreferencesStore:
    """Holds the current preferences and persists every change."""

    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        *,
        cache: TtlCache | None = None,
        preferences: DashboardPreferences | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._cache = cache
        self._preferences = preferences or DashboardPreferences()
        self._listeners: list[PreferencesListener] = []

    @classmethod
    def load(
        cls,
        path: str | os.PathLike[str] | None,
        *,
        cache: TtlCache | None = None,
    ) -> PreferencesStore:
        """Load preferences from *path*, falling back to defaults."""
        return cls(path, cache=cache, preferences=_read_preferences(Path(path)) if path else None)

    @property
    def preferences(self) -> DashboardPreferences:
        return self._preferences

    @property
    def path(self) -> Path | None:
        return self._path

    def add_listener(self, listener: PreferencesListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def update(self, **changes: Any) -> DashboardPreferences:
        """Apply *changes* (field names), persist, and return the new preferences."""
        unknown = set(changes) - set(DashboardPreferences.model_fields)
        if unknown:
            raise PairsyncConfigError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        previous = self._preferences
        try:
            updated = DashboardPreferences.model_validate({**previous.model_dump(), **changes})
        except ValidationError as exc:
            raise PairsyncConfigError(f"Invalid preference value: {exc}") from exc
        if updated == previous:
            return previous

        self._write(updated)
        self._preferences = updated
        if updated.refresh_interval != previous.refresh_interval and self._cache is not None:
            _logger.debug("Refresh interval changed to %.1fs, clearing cache", updated.refresh_interval)
            self._cache.clear_all()
        for listener in list(self._listeners):
            try:
                listener(updated)
            except Exception:
                _logger.exception("Preferences listener failed")
        return updated

    def toggle_sidebar(self) -> DashboardPreferences:
        return self.update(sidebar_collapsed=not self._preferences.sidebar_collapsed)

    def toggle_theme(self) -> DashboardPreferences:
        theme = Theme.DARK if self._preferences.theme is Theme.LIGHT else Theme.LIGHT
        return self.update(theme=theme)

    def save(self) -> None:
        self._write(self._preferences)

    def _write(self, preferences: DashboardPreferences) -> None:
        if self._path is None:
            return
        payload = preferences.model_dump(mode="json", by_alias=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(f"{self._path.name}.tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self._path)


def _read_preferences(path: Path) -> DashboardPreferences:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return DashboardPreferences()
    except (OSError, json.JSONDecodeError) as exc:
        _logger.warning("Could not read preferences from %s: %s", path, exc)
        return DashboardPreferences()
    if not isinstance(data, dict):
        _logger.warning("Ignoring preferences in %s: not a JSON object", path)
        return DashboardPreferences()
    try:
        return DashboardPreferences.model_validate(data)
    except ValidationError as exc:
        _logger.warning("Ignoring invalid preferences in %s: %s", path, exc)
        return DashboardPreferences()
