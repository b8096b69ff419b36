"""
SessionEngine — owns the single guided cooking session.

Invariant: at most one session exists at a time. All sessions start
through start(); a second start() is refused without touching the
active session.

Time is driven by tick(recipe_id, now) with an explicit timestamp, so the
engine counts elapsed wall-clock seconds instead of tick calls. Delayed,
dropped or batched ticks neither lose nor double-count time.

This module has NO dependencies on server.py, FastAPI, or asyncio.
"""

import logging
import math
import time

log = logging.getLogger("cooking")

CONFLICT = "conflict"
NOT_FOUND = "not_found"
INVALID_RECIPE = "invalid_recipe"


def step_seconds(step):
    """Duration of a recipe step in whole seconds."""
    return step["duration_minutes"] * 60


def check_recipe(recipe):
    """Return an error message if the recipe can't be cooked, else None."""
    steps = recipe.get("steps") if recipe else None
    if not steps:
        return "Recipe has no steps"
    for i, step in enumerate(steps):
        minutes = step.get("duration_minutes")
        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
            return f"Step {i + 1} duration must be a positive whole number of minutes"
    return None


class Session:
    """Countdown state for the recipe being cooked."""

    def __init__(self, recipe_id, step_durations, now):
        self.recipe_id = recipe_id
        self.step_durations = tuple(step_durations)
        self.current_step_index = 0
        self.is_running = True
        self.step_remaining_seconds = self.step_durations[0]
        self.overall_remaining_seconds = sum(self.step_durations)
        self.last_tick_timestamp = now

    @property
    def total_seconds(self):
        return sum(self.step_durations)

    @property
    def step_count(self):
        return len(self.step_durations)

    @property
    def is_final_step(self):
        return self.current_step_index == self.step_count - 1

    def remaining_from(self, index):
        """Full duration of step `index` and every step after it."""
        return sum(self.step_durations[index:])

    def to_dict(self):
        step_duration = self.step_durations[self.current_step_index]
        total = self.total_seconds
        return {
            "type": "session",
            "recipe_id": self.recipe_id,
            "current_step_index": self.current_step_index,
            "step_count": self.step_count,
            "is_running": self.is_running,
            "step_remaining_seconds": self.step_remaining_seconds,
            "overall_remaining_seconds": self.overall_remaining_seconds,
            "step_duration_seconds": step_duration,
            "total_duration_seconds": total,
            "step_progress": round((step_duration - self.step_remaining_seconds) * 100 / step_duration),
            "overall_progress": round((total - self.overall_remaining_seconds) * 100 / total),
            "last_tick_timestamp": self.last_tick_timestamp,
        }


class SessionEngine:
    """Single-active-session state machine.

    States: NotStarted (no record) -> Running <-> Paused -> Completed (record
    removed). Commands return a result dict; refused commands carry
    ``ok=False`` and an ``error`` of CONFLICT, NOT_FOUND or INVALID_RECIPE
    and leave existing state untouched.
    """

    def __init__(self, clock=time.monotonic):
        self.active = None
        self.clock = clock

    @property
    def active_recipe_id(self):
        return self.active.recipe_id if self.active else None

    def current_state(self, recipe_id):
        sess = self._get(recipe_id)
        return sess.to_dict() if sess else None

    def _get(self, recipe_id):
        if self.active and self.active.recipe_id == recipe_id:
            return self.active
        return None

    def _ok(self, sess, **extra):
        return {"ok": True, "session": sess.to_dict() if sess else None, **extra}

    def _not_found(self, recipe_id):
        return {"ok": False, "error": NOT_FOUND, "recipe_id": recipe_id}

    # --- Commands ---

    def start(self, recipe_id, recipe):
        if self.active:
            log.warning(f"Start refused for {recipe_id}: session for {self.active.recipe_id} is active")
            return {"ok": False, "error": CONFLICT, "active_recipe_id": self.active.recipe_id}
        problem = check_recipe(recipe)
        if problem:
            log.warning(f"Start refused for {recipe_id}: {problem}")
            return {"ok": False, "error": INVALID_RECIPE, "message": problem}
        durations = [step_seconds(s) for s in recipe["steps"]]
        self.active = Session(recipe_id, durations, self.clock())
        log.info(f"Session started: {recipe_id} ({len(durations)} steps, {sum(durations)}s)")
        return self._ok(self.active)

    def tick(self, recipe_id, now):
        """Count down by the whole seconds elapsed since the last tick."""
        sess = self._get(recipe_id)
        if not sess:
            return self._not_found(recipe_id)
        if not sess.is_running:
            return self._ok(sess)
        delta = max(0, math.floor(now - sess.last_tick_timestamp))
        if delta == 0:
            sess.last_tick_timestamp = now
            return self._ok(sess)
        sess.step_remaining_seconds = max(0, sess.step_remaining_seconds - delta)
        sess.overall_remaining_seconds = max(0, sess.overall_remaining_seconds - delta)
        sess.last_tick_timestamp = now
        return self._check_expiry(sess)

    def _check_expiry(self, sess):
        # Evaluated once per tick; advance() never re-enters here.
        if sess.is_running and sess.step_remaining_seconds == 0:
            log.info(f"Step {sess.current_step_index + 1} expired for {sess.recipe_id}")
            result = self.advance(sess.recipe_id)
            result["auto_advanced"] = True
            return result
        return self._ok(sess)

    def pause(self, recipe_id):
        sess = self._get(recipe_id)
        if not sess:
            return self._not_found(recipe_id)
        if sess.is_running:
            sess.is_running = False
            sess.last_tick_timestamp = None
            log.info(f"Session paused: {recipe_id}")
        return self._ok(sess)

    def resume(self, recipe_id):
        sess = self._get(recipe_id)
        if not sess:
            return self._not_found(recipe_id)
        if not sess.is_running:
            sess.is_running = True
            sess.last_tick_timestamp = self.clock()
            log.info(f"Session resumed: {recipe_id}")
        return self._ok(sess)

    def toggle(self, recipe_id):
        sess = self._get(recipe_id)
        if sess and sess.is_running:
            return self.pause(recipe_id)
        return self.resume(recipe_id)

    def advance(self, recipe_id, is_final=None, next_step_remaining_seconds=None, next_overall_remaining_seconds=None):
        """Move to the next step, or complete the session on the last one.

        The next step's counters come from the durations captured at start.
        Caller-supplied values are only checked against them.
        """
        sess = self._get(recipe_id)
        if not sess:
            return self._not_found(recipe_id)
        if is_final is not None and bool(is_final) != sess.is_final_step:
            log.warning(
                f"advance({recipe_id}) is_final={is_final} but step "
                f"{sess.current_step_index + 1}/{sess.step_count}; using computed value"
            )
        if sess.is_final_step:
            self.active = None
            log.info(f"Session completed: {recipe_id}")
            return {"ok": True, "session": None, "completed": True}

        nxt = sess.current_step_index + 1
        step_remaining = sess.step_durations[nxt]
        overall_remaining = sess.remaining_from(nxt)
        if next_step_remaining_seconds is not None and next_step_remaining_seconds != step_remaining:
            log.warning(f"advance({recipe_id}) ignoring next step remaining {next_step_remaining_seconds}s")
        if next_overall_remaining_seconds is not None and next_overall_remaining_seconds != overall_remaining:
            log.warning(f"advance({recipe_id}) ignoring next overall remaining {next_overall_remaining_seconds}s")

        sess.current_step_index = nxt
        sess.step_remaining_seconds = step_remaining
        sess.overall_remaining_seconds = overall_remaining
        sess.is_running = True
        sess.last_tick_timestamp = self.clock()
        log.info(f"Advanced {recipe_id} to step {nxt + 1}/{sess.step_count}")
        return self._ok(sess)

    def end(self, recipe_id):
        """Terminate the session immediately, whatever its state."""
        sess = self._get(recipe_id)
        if not sess:
            return self._not_found(recipe_id)
        self.active = None
        log.info(f"Session ended: {recipe_id} at step {sess.current_step_index + 1}/{sess.step_count}")
        return {"ok": True, "session": None, "ended": True}
