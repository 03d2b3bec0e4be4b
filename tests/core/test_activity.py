import logging
import threading

from core.activity import ActivityMonitor


def test_notifies_on_busy_and_idle_edges_only():
    monitor = ActivityMonitor()
    seen = []
    monitor.subscribe(seen.append)

    monitor.begin()
    monitor.begin()
    monitor.end()
    assert seen == [True]
    assert monitor.busy
    assert monitor.in_flight == 1

    monitor.end()
    assert seen == [True, False]
    assert not monitor.busy


def test_unsubscribe_stops_notifications():
    monitor = ActivityMonitor()
    seen = []
    unsubscribe = monitor.subscribe(seen.append)
    unsubscribe()
    unsubscribe()

    monitor.begin()
    monitor.end()
    assert seen == []


def test_unbalanced_end_is_ignored(caplog):
    monitor = ActivityMonitor()
    seen = []
    monitor.subscribe(seen.append)

    with caplog.at_level(logging.WARNING, logger="core.activity"):
        monitor.end()

    assert monitor.in_flight == 0
    assert seen == []
    assert "nothing in flight" in caplog.text


def test_failing_listener_does_not_block_others(caplog):
    monitor = ActivityMonitor()
    seen = []

    def broken(busy):
        raise RuntimeError("listener exploded")

    monitor.subscribe(broken)
    monitor.subscribe(seen.append)

    with caplog.at_level(logging.ERROR, logger="core.activity"):
        monitor.begin()

    assert seen == [True]
    assert "Activity listener" in caplog.text


def test_separate_monitors_are_independent():
    first, second = ActivityMonitor(), ActivityMonitor()
    first.begin()
    assert first.busy
    assert not second.busy


def test_concurrent_begin_end_balances():
    monitor = ActivityMonitor()
    seen = []
    monitor.subscribe(seen.append)

    def work():
        for _ in range(200):
            monitor.begin()
            monitor.end()

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert monitor.in_flight == 0
    assert not monitor.busy
    assert seen.count(True) == seen.count(False)
