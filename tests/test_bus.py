"""Tests for classboard.bus.ChangeBus."""

from classboard.bus import ChangeBus


class TestChangeBus:
    """Tests for subscribe / notify / clear."""

    def test_notify_invokes_every_subscriber(self):
        bus = ChangeBus()
        calls = []
        bus.subscribe(lambda: calls.append("a"))
        bus.subscribe(lambda: calls.append("b"))

        bus.notify()

        assert calls == ["a", "b"]

    def test_failing_subscriber_does_not_stop_others(self):
        bus = ChangeBus()
        calls = []

        def broken():
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(lambda: calls.append("after"))

        bus.notify()

        assert calls == ["after"]

    def test_unsubscribe_is_idempotent(self):
        bus = ChangeBus()
        unsubscribe = bus.subscribe(lambda: None)

        unsubscribe()
        unsubscribe()

        assert len(bus) == 0

    def test_subscriber_may_unsubscribe_during_notify(self):
        bus = ChangeBus()
        calls = []
        holder = {}

        def once():
            calls.append("once")
            holder["unsubscribe"]()

        holder["unsubscribe"] = bus.subscribe(once)
        bus.subscribe(lambda: calls.append("other"))

        bus.notify()
        bus.notify()

        assert calls == ["once", "other", "other"]

    def test_clear(self):
        bus = ChangeBus()
        bus.subscribe(lambda: None)
        bus.subscribe(lambda: None)

        bus.clear()

        assert len(bus) == 0
