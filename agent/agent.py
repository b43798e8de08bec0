"""
Ranky — Coding Activity Agent
=============================
PRIVACY: Only counts (words, lines, minutes) and language identifiers are
sent. Edited text is inspected in memory and never stored or transmitted.

The host editor pipes one JSON event per line into stdin; closing the pipe
(or SIGINT/SIGTERM) closes the session and sends the day's stats.

Usage:
    python agent.py
"""

import sys

from ranky_core.runner import main


if __name__ == "__main__":
    sys.exit(main())
