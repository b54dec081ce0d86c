"""User preference store backed by config/preferences.yaml."""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Mapping

import yaml

from jobfeed.config import PREFERENCES_PATH
from jobfeed.log import get_logger
from jobfeed.models import UserPreference

log = get_logger(__name__)

DEFAULT_PREFERENCES = UserPreference(
    keywords=("Software Engineer", "Product Manager"),
    locations=("Remote",),
    employment_types=("Full-time",),
)


def _load_users(path: Path) -> dict[str, UserPreference]:
    if not path.exists():
        log.info("No preference file at %s — every user gets defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    users = data.get("users") or {}
    if not isinstance(users, dict):
        raise ValueError(f"{path}: 'users' must be a mapping of user id to preferences")
    return {str(uid): UserPreference.from_dict(prefs or {}) for uid, prefs in users.items()}


class PreferenceStore:
    """Read-only view of per-user preferences; unknown users get defaults."""

    def __init__(
        self,
        path: Path | None = None,
        users: Mapping[str, Mapping[str, Any] | UserPreference] | None = None,
    ) -> None:
        self.path = path or PREFERENCES_PATH
        self._lock = threading.Lock()
        self._users: dict[str, UserPreference] | None = None
        if users is not None:
            self._users = {
                uid: p if isinstance(p, UserPreference) else UserPreference.from_dict(dict(p))
                for uid, p in users.items()
            }

    def _all(self) -> dict[str, UserPreference]:
        with self._lock:
            if self._users is None:
                self._users = _load_users(self.path)
                log.debug("Loaded preferences for %d user(s)", len(self._users))
            return self._users

    def reload(self) -> None:
        with self._lock:
            self._users = None

    def user_ids(self) -> list[str]:
        return list(self._all())

    def get(self, user_id: str) -> UserPreference:
        prefs = self._all().get(user_id)
        if prefs is None:
            log.debug("No preferences for user %s — using defaults", user_id)
            return DEFAULT_PREFERENCES
        return prefs

    def all_target_companies(self) -> list[str]:
        """Every user's target companies, case-insensitively unique, first spelling kept."""
        seen: set[str] = set()
        companies: list[str] = []
        for prefs in self._all().values():
            for company in prefs.target_companies:
                key = company.lower()
                if key not in seen:
                    seen.add(key)
                    companies.append(company)
        return companies
