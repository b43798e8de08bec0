"""
SessionContext — single source of truth for all agent state.

Owned by the entry point and passed by reference into every component.
All mutations happen on the asyncio event loop thread. No locks needed.
A fresh context per test gives full isolation.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Set

from .clock import ActivityClock


def today_iso():
    """Host-local calendar day as YYYY-MM-DD."""
    return date.today().isoformat()


@dataclass
class DailyRecord:
    date: str = field(default_factory=today_iso)
    total_time_seconds: float = 0.0
    total_words: int = 0
    total_lines: int = 0
    languages: Set[str] = field(default_factory=set)

    @property
    def total_time_minutes(self) -> float:
        return round(self.total_time_seconds / 60, 2)

    def sorted_languages(self):
        return sorted(self.languages)


@dataclass(frozen=True)
class Credential:
    user_id: str
    email: str
    username: str
    display_name: str
    token: str
    verified_at: float = field(default_factory=time.time)

    def profile(self) -> dict:
        """Identity fields persisted alongside the raw token (never the token)."""
        return {
            "userId": self.user_id,
            "email": self.email,
            "username": self.username,
            "displayName": self.display_name,
        }


@dataclass
class SessionContext:
    # ── Session measurement ───────────────────────────────────
    clock: ActivityClock = field(default_factory=ActivityClock)
    record: DailyRecord = field(default_factory=DailyRecord)
    session_active: bool = False

    # ── Identity (written only by CredentialManager) ──────────
    credential: Optional[Credential] = None

    # ── Delivery guard (set once, never reset) ────────────────
    already_sent_for_today: bool = False
