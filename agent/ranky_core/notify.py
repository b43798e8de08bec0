"""
User-facing notifications. The host may swap in its own notifier
(anything with info/error); the default writes to the log and stderr.
"""

import sys

from .config import log, safe_print


class ConsoleNotifier:

    def info(self, message):
        log.info("Notify: %s", message.replace("\n", " | "))
        safe_print(message, file=sys.stderr)

    def error(self, message):
        log.warning("Notify (error): %s", message)
        safe_print(f"[ranky] {message}", file=sys.stderr)
