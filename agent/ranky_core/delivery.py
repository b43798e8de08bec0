"""
DeliveryGuard — sends the day record at most once per process run.

The sent flag is raised BEFORE the request goes out. A crash or failure
mid-call therefore loses the day's stats instead of risking a duplicate;
nothing is queued or retried within the run.
"""

from dataclasses import dataclass, field, replace
from typing import List

from .config import log
from .constants import SESSION_END_REASONS
from .errors import AuthenticationFailed, DeliveryFailed


@dataclass(frozen=True)
class StatsPayload:
    email: str
    subjectId: str
    date: str
    totalTimeMinutes: float
    totalWords: int
    totalLines: int
    languages: List[str] = field(default_factory=list)
    sessionEndReason: str = "shutdown"

    def to_dict(self):
        return {
            "email": self.email,
            "subjectId": self.subjectId,
            "date": self.date,
            "totalTimeMinutes": self.totalTimeMinutes,
            "totalWords": self.totalWords,
            "totalLines": self.totalLines,
            "languages": list(self.languages),
            "sessionEndReason": self.sessionEndReason,
        }


def compose_payload(record, credential, reason):
    if reason not in SESSION_END_REASONS:
        raise ValueError(f"unknown session end reason: {reason!r}")
    return StatsPayload(
        email=credential.email,
        subjectId=credential.user_id,
        date=record.date,
        totalTimeMinutes=record.total_time_minutes,
        totalWords=record.total_words,
        totalLines=record.total_lines,
        languages=record.sorted_languages(),
        sessionEndReason=reason,
    )


class DeliveryGuard:
    """Only component that sends the daily payload."""

    def __init__(self, context, auth, api):
        self._ctx = context
        self._auth = auth
        self._api = api

    async def deliver(self, reason):
        """Returns True if the collector accepted the stats."""
        if self._ctx.already_sent_for_today:
            log.info("Stats already sent for %s — skipping (%s)", self._ctx.record.date, reason)
            return False

        if self._ctx.credential is None:
            log.warning("No verified credential at %s close — stats for %s not sent",
                        reason, self._ctx.record.date)
            return False

        self._ctx.already_sent_for_today = True

        # frozen copy: the executor thread must not read the live record
        record = replace(self._ctx.record, languages=set(self._ctx.record.languages))

        def send(credential):
            payload = compose_payload(record, credential, reason)
            self._api.send_coding_stats(credential.token, payload.to_dict())

        try:
            await self._auth.call_with_renewal(send)
        except DeliveryFailed as e:
            log.error("Stats delivery failed (not retried this run): %s", e)
            return False
        except AuthenticationFailed as e:
            log.error("Stats delivery skipped, authentication failed: %s", e)
            return False
        return True
