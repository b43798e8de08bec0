"""
ActivityClock — stopwatch used to measure coding session length.

All times come from an injectable `now` callable (seconds, monotonic by
default) so elapsed time never jumps with wall-clock adjustments.
"""

import time


class ActivityClock:
    """
    Transitions:
      start()   → running (continues from any paused duration)
      pause()   → not running, elapsed kept in paused_for
      resume()  → start() again if there is paused time to continue from
      stop()    → not running, end time fixed, paused duration forgotten
      reset()   → back to never-started
    """

    def __init__(self, now=time.monotonic):
        self._now = now
        self.started_at = None
        self.ended_at = None
        self.running = False
        self.paused_for = 0.0

    @property
    def is_running(self):
        return self.running

    def start(self):
        if self.running:
            return
        self.started_at = self._now() - self.paused_for
        self.ended_at = None
        self.running = True

    def pause(self):
        if self.running and self.started_at is not None:
            self.paused_for = self._now() - self.started_at
            self.running = False

    def resume(self):
        if not self.running and self.paused_for > 0:
            self.start()

    def stop(self):
        if self.running and self.started_at is not None:
            self.ended_at = self._now()
            self.running = False
            self.paused_for = 0.0

    def reset(self):
        self.started_at = None
        self.ended_at = None
        self.running = False
        self.paused_for = 0.0

    def elapsed(self):
        """Elapsed seconds (float)."""
        if self.started_at is None:
            return 0.0
        if self.running:
            return max(self._now() - self.started_at, 0.0)
        if self.ended_at is not None:
            return max(self.ended_at - self.started_at, 0.0)
        return self.paused_for

    def elapsed_seconds(self):
        return round(self.elapsed(), 2)

    def elapsed_minutes(self):
        return round(self.elapsed_seconds() / 60, 2)
