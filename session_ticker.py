"""
SessionTicker — the 1/sec timer source that drives SessionEngine.tick().

The engine counts wall-clock seconds, so the cadence here only affects how
often clients see an update, not how much time is counted.
"""

import asyncio
import logging

log = logging.getLogger("cooking")

TICK_INTERVAL = 1.0


class SessionTicker:
    """Runs engine.tick() on an asyncio task while a session is running."""

    def __init__(self, engine, interval=TICK_INTERVAL):
        self.engine = engine
        self.interval = interval
        self._task = None
        self._recipe_id = None
        self._on_update = None

    @property
    def running(self):
        return self._task is not None and not self._task.done()

    def start(self, recipe_id, on_update):
        """(Re)start ticking for recipe_id. on_update is awaited with each tick result."""
        self._cancel_task()
        self._recipe_id = recipe_id
        self._on_update = on_update
        self._task = asyncio.create_task(self._tick_loop())

    def stop(self):
        self._cancel_task()
        self._recipe_id = None

    def _cancel_task(self):
        if self._task:
            self._task.cancel()
            self._task = None

    async def _tick_loop(self):
        recipe_id = self._recipe_id
        try:
            while True:
                await asyncio.sleep(self.interval)
                result = self.engine.tick(recipe_id, self.engine.clock())
                if self._on_update:
                    await self._on_update(result)
                sess = result.get("session")
                if not result["ok"] or sess is None or not sess["is_running"]:
                    log.info(f"Ticker stopped for {recipe_id}")
                    break
        except asyncio.CancelledError:
            pass
