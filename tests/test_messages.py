import random

from conftest import ScriptedRandom
from shippingforecast.messages import WARNING_MESSAGES, random_message


class TestWarningMessages:
    def test_pool(self):
        assert len(WARNING_MESSAGES) == 10
        assert [m.id for m in WARNING_MESSAGES] == list(range(10))
        assert all(m.text.strip() for m in WARNING_MESSAGES)

    def test_selection_bounds(self):
        assert random_message(ScriptedRandom([0.0])).id == 0
        assert random_message(ScriptedRandom([0.9999])).id == 9

    def test_repeats_are_allowed(self):
        """Uniform with replacement, so back-to-back repeats do happen"""
        rng = random.Random(0)
        ids = [random_message(rng).id for _ in range(200)]
        assert any(a == b for a, b in zip(ids, ids[1:]))
        assert set(ids) == set(range(10))
