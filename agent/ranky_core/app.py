"""
AgentApp — owns the event loop side of the agent.

Everything that mutates the SessionContext runs on the asyncio loop:
  dispatch()        — routes one editor event (edit / focus / command / shutdown)
  _on_inactive()    — watchdog expiry: close session, deliver ("inactivity")
  shutdown()        — close session, await delivery ("shutdown")

Background threads (stdin reader, executor jobs) never touch state directly;
they hand results back through call_soon_threadsafe / await.
"""

import asyncio
import signal

from .constants import AGENT_VERSION, REASON_INACTIVITY, REASON_SHUTDOWN
from .config import log
from .commands import build_commands
from .events import CommandEvent, EditEvent, FocusEvent, ShutdownEvent
from .state import today_iso
from .tracker import MetricsAggregator
from .watchdog import InactivityWatchdog


class AgentApp:

    def __init__(self, context, auth, delivery, notifier, inactivity_timeout_sec, scheduler=None):
        self.ctx = context
        self.auth = auth
        self._delivery = delivery
        self._notifier = notifier
        self._timeout = inactivity_timeout_sec
        self._scheduler = scheduler
        self.aggregator = MetricsAggregator(context)
        self.commands = build_commands(self.aggregator, auth, notifier)
        self.watchdog = None
        self._tasks = set()
        self._delivery_tasks = set()
        self._stop = None
        self._shut_down = False
        self._rollover_logged = False

    # ─── Lifecycle ───────────────────────────────────────────

    def attach(self):
        """Bind to the running loop. Called by run(); tests call it directly."""
        loop = asyncio.get_running_loop()
        self.watchdog = InactivityWatchdog(self._scheduler or loop, self._timeout, self._on_inactive)
        self._stop = asyncio.Event()

    async def run(self, start_source=None):
        """
        Activate auth, start the event source, then wait for shutdown.
        start_source(loop, dispatch) wires the host's event stream in.
        """
        loop = asyncio.get_running_loop()
        self.attach()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                pass  # not supported on this platform / thread

        self._spawn(self.auth.activate(), "activation")
        if start_source is not None:
            start_source(loop, self.dispatch)

        log.info("v%s started (inactivity=%ss, day=%s)",
                 AGENT_VERSION, self._timeout, self.ctx.record.date)

        await self._stop.wait()
        await self.shutdown()

    @property
    def stopping(self):
        return self._shut_down or (self._stop is not None and self._stop.is_set())

    def request_shutdown(self):
        if self._stop is not None:
            self._stop.set()

    async def shutdown(self):
        """Close the session and send the day's stats. Safe to call twice."""
        if self._shut_down:
            return
        self._shut_down = True
        log.info("Shutting down")

        if self.watchdog is not None:
            self.watchdog.cancel()
        self._close_session()

        if self._delivery_tasks:
            await asyncio.gather(*self._delivery_tasks, return_exceptions=True)

        try:
            await self._delivery.deliver(REASON_SHUTDOWN)
        except Exception as e:
            log.error("Shutdown delivery error: %s", e, exc_info=True)

        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        log.info("Agent shut down.")

    # ─── Event routing ───────────────────────────────────────

    def dispatch(self, event):
        """Handle one event on the loop thread. Never raises."""
        try:
            if isinstance(event, EditEvent):
                self._on_edit(event)
            elif isinstance(event, FocusEvent):
                self._on_focus(event)
            elif isinstance(event, CommandEvent):
                self._on_command(event)
            elif isinstance(event, ShutdownEvent):
                self.request_shutdown()
            else:
                log.warning("Unknown event ignored: %r", event)
        except Exception as e:
            log.error("dispatch error: %s", e, exc_info=True)

    def _on_edit(self, event):
        if self.stopping:
            return
        if not self.aggregator.apply_edit(event):
            return

        clock = self.ctx.clock
        if not clock.is_running:
            clock.start()
            if not self.ctx.session_active:
                self.ctx.session_active = True
                log.info("Started tracking coding session")

        if not self._rollover_logged and today_iso() != self.ctx.record.date:
            self._rollover_logged = True
            log.warning("Calendar day changed — still accumulating into %s", self.ctx.record.date)

        self.watchdog.kick()

    def _on_focus(self, event):
        if not self.ctx.session_active:
            return
        if event.focused:
            self.ctx.clock.resume()
        else:
            self.ctx.clock.pause()

    def _on_command(self, event):
        handler = self.commands.get(event.command)
        if handler is None:
            log.warning("Unknown command: %s", event.command)
            return
        self._spawn(handler(), event.command)

    # ─── Session close ───────────────────────────────────────

    def _close_session(self):
        if self.watchdog is not None:
            self.watchdog.cancel()
        if self.ctx.session_active:
            self.aggregator.close_session()

    def _on_inactive(self):
        self._close_session()
        task = self._spawn(self._delivery.deliver(REASON_INACTIVITY), "inactivity delivery")
        self._delivery_tasks.add(task)
        task.add_done_callback(self._delivery_tasks.discard)

    # ─── Task bookkeeping ────────────────────────────────────

    def _spawn(self, coro, name):
        task = asyncio.get_running_loop().create_task(self._guard(coro, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    async def _guard(coro, name):
        try:
            return await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("%s failed: %s", name, e, exc_info=True)
            return None
