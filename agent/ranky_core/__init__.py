"""
ranky_core — Coding activity agent v0.3
=======================================
Architecture: one asyncio event loop owns all state. Blocking I/O in the executor.

  constants.py    → Version, thresholds, endpoints, vault keys, theme
  config.py       → Paths, logging, config load/save, helpers
  errors.py       → Auth / delivery error taxonomy
  clock.py        → ActivityClock (session stopwatch)
  state.py        → SessionContext, DailyRecord, Credential (single source of truth)
  tracker.py      → MetricsAggregator (words / lines / languages / time)
  watchdog.py     → InactivityWatchdog (debounced session close)
  events.py       → Event records + stdin JSON-lines source
  http_client.py  → HTTP session with pooling + bounded retry
  api.py          → Collector calls (verify-auth, create-account, coding-stats)
  vault.py        → FileVault (get / set / delete)
  auth.py         → CredentialManager (acquire, verify, provision, renew, clear)
  delivery.py     → DeliveryGuard (at-most-once stats send)
  commands.py     → Host palette commands
  notify.py       → User notifications
  token_dialog.py → Tk token entry dialog
  app.py          → AgentApp (event routing, session close, shutdown drain)
  runner.py       → main()
"""
