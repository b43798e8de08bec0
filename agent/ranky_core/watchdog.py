"""
InactivityWatchdog — debounced single-shot timer on the event loop.

Every kick() cancels the pending handle before scheduling a new one,
so at most one timer is ever outstanding. No kick, no timer.
"""

from .config import log


class InactivityWatchdog:

    def __init__(self, loop, timeout_sec, on_expire):
        self._loop = loop
        self._timeout = timeout_sec
        self._on_expire = on_expire
        self._handle = None

    @property
    def timeout(self):
        return self._timeout

    @property
    def pending(self):
        return self._handle is not None

    def kick(self):
        """Restart the inactivity window."""
        self.cancel()
        self._handle = self._loop.call_later(self._timeout, self._fire)

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self):
        self._handle = None
        log.info("No activity for %ss — closing session", self._timeout)
        try:
            self._on_expire()
        except Exception as e:
            log.error("Inactivity handler error: %s", e, exc_info=True)
