"""Shared test helpers for cooking session tests."""


def make_recipe(minutes=(10, 8), recipe_id="pasta", title="Test Pasta"):
    """Factory for creating test recipes, one step per duration in minutes."""
    return {
        "id": recipe_id,
        "title": title,
        "difficulty": "Easy",
        "ingredients": [],
        "steps": [
            {"id": f"s{i}", "description": f"Step {i + 1}", "type": "instruction", "duration_minutes": m}
            for i, m in enumerate(minutes)
        ],
    }


class FakeClock:
    """Fake monotonic clock for SessionEngine.

    Pass as ``SessionEngine(clock=clock)``.
    Advance by calling ``clock.advance(seconds)``.
    """

    def __init__(self, start=1000.0):
        self._now = start

    def __call__(self):
        return self._now

    def advance(self, seconds):
        self._now += seconds
        return self._now
