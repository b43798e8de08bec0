"""
Entry point: load config, wire collaborators, run the agent until shutdown.
"""

import asyncio
import sys

from .constants import AGENT_VERSION
from .config import (
    log, safe_print, setup_logging, load_config, save_config, with_defaults, vault_file,
)
from .api import CollectorApi
from .app import AgentApp
from .auth import CredentialManager
from .delivery import DeliveryGuard
from .events import StdinEventSource
from .notify import ConsoleNotifier
from .state import SessionContext
from .token_dialog import gui_token_prompt
from .vault import FileVault


def build_app(config, vault=None, collector=None, notifier=None, http=None):
    """Assemble one SessionContext and every component that shares it."""
    context = SessionContext()
    notifier = notifier or ConsoleNotifier()
    api = CollectorApi(config, http=http)
    auth = CredentialManager(
        context,
        api,
        vault if vault is not None else FileVault(vault_file()),
        collector or gui_token_prompt,
        config,
        notifier,
    )
    delivery = DeliveryGuard(context, auth, api)
    return AgentApp(context, auth, delivery, notifier, config["inactivityTimeoutSec"])


def _stdin_source(loop, dispatch):
    StdinEventSource(sys.stdin, loop, dispatch).start()


def main():
    """Primary agent entry point."""
    setup_logging()
    safe_print("Ranky coding stats agent v" + AGENT_VERSION, file=sys.stderr)

    stored = load_config()
    config = with_defaults(stored)
    if stored is None:
        save_config(config)
        log.info("First run — default config written")
    if not config["verificationKey"]:
        log.warning("No verificationKey configured — every token will be rejected")

    app = build_app(config)
    try:
        asyncio.run(app.run(start_source=_stdin_source))
    except KeyboardInterrupt:
        safe_print("\nAgent stopped by user.", file=sys.stderr)
    return 0
