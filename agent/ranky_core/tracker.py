"""
MetricsAggregator — folds edit events and session time into the day record.

Word counting is a typing heuristic, not a general word counter:
  - pure insertions only (replacements never count words)
  - single-line, non-blank text only (pastes count lines, not words)
"""

from .config import log
from .state import DailyRecord


class MetricsAggregator:
    """Mutates context.record and context.clock. Loop thread only."""

    def __init__(self, context):
        self._ctx = context

    @property
    def record(self) -> DailyRecord:
        return self._ctx.record

    # ── Edits ────────────────────────────────────────────────

    def apply_edit(self, event):
        """Fold one edit into the record. Returns False if not qualifying."""
        if not event.language:
            return False

        record = self._ctx.record
        record.languages.add(event.language)

        text = event.inserted_text
        new_lines = text.count("\n")
        if new_lines:
            record.total_lines += new_lines

        if text and event.replaced_length == 0:
            if text.strip() and "\n" not in text:
                record.total_words += len(text.split())

        return True

    # ── Session close ────────────────────────────────────────

    def close_session(self):
        """
        Add the clock's elapsed time to the record and stop the clock.
        Returns the seconds added.
        """
        clock = self._ctx.clock
        seconds = clock.elapsed_seconds()

        if clock.is_running:
            clock.stop()
        elif seconds > 0 and clock.ended_at is None:
            # paused: accumulate the held time once, then forget it
            clock.reset()
        else:
            seconds = 0.0  # already stopped, its time was counted at stop

        if seconds:
            self._ctx.record.total_time_seconds += seconds
        self._ctx.session_active = False
        log.info("Session closed: %.0fs (day total %.0fs)",
                 seconds, self._ctx.record.total_time_seconds)
        return seconds

    # ── Reporting ────────────────────────────────────────────

    def snapshot(self):
        """Current totals, including the still-open session's time."""
        record = self._ctx.record
        clock = self._ctx.clock
        current = clock.elapsed_seconds() if self._ctx.session_active else 0.0
        total = record.total_time_seconds + current
        return {
            "date": record.date,
            "totalTimeSeconds": round(total, 2),
            "totalTimeMinutes": round(total / 60, 2),
            "totalWords": record.total_words,
            "totalLines": record.total_lines,
            "languages": record.sorted_languages(),
        }

    def format_stats(self):
        snap = self.snapshot()
        languages = ", ".join(snap["languages"]) or "-"
        return (
            f"Today's Coding Stats ({snap['date']})\n"
            f"Total Time: {round(snap['totalTimeSeconds'])}s "
            f"({snap['totalTimeSeconds'] / 60:.1f}min)\n"
            f"Total Words: {snap['totalWords']}\n"
            f"Total Lines: {snap['totalLines']}\n"
            f"Languages: {languages}"
        )
