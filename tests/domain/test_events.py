"""Tests for the listener registry."""

import logging

from repopackager.domain.events import Listeners


def test_emit_reaches_every_listener():
    listeners = Listeners()
    seen = []
    listeners.subscribe(lambda e: seen.append(("a", e)))
    listeners.subscribe(lambda e: seen.append(("b", e)))

    listeners.emit(1)

    assert seen == [("a", 1), ("b", 1)]


def test_unsubscribe_during_emit_is_safe():
    """Test that a listener may remove itself while being called."""
    listeners = Listeners()
    seen = []

    def once(event):
        seen.append(event)
        unsubscribe()

    unsubscribe = listeners.subscribe(once)
    listeners.emit(1)
    listeners.emit(2)

    assert seen == [1]


def test_failing_listener_is_logged_and_others_still_run(caplog):
    listeners = Listeners()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    listeners.subscribe(broken)
    listeners.subscribe(seen.append)

    with caplog.at_level(logging.ERROR):
        listeners.emit("event")

    assert seen == ["event"]
    assert "boom" in caplog.text
