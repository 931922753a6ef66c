"""Tests for single-flight periodic tasks."""

import threading

from aipnode.periodic import PeriodicTask


class TestPeriodicTask:
    def test_run_once_calls_func(self):
        calls = []
        task = PeriodicTask("t", 60, lambda: calls.append(1))
        assert task.run_once()
        assert calls == [1]

    def test_overlapping_run_is_skipped(self):
        results = []

        def func():
            results.append(task.run_once())

        task = PeriodicTask("t", 60, func)
        assert task.run_once()
        assert results == [False]

    def test_exception_is_logged_not_raised(self, caplog):
        def boom():
            raise RuntimeError("kaput")

        task = PeriodicTask("boom", 60, boom)
        assert task.run_once()
        assert "periodic run failed" in caplog.text
        # lock released after failure
        assert task.run_once()

    def test_start_and_stop(self):
        ran = threading.Event()
        task = PeriodicTask("fast", 0.01, ran.set)
        task.start()
        try:
            assert ran.wait(2.0)
            assert task.is_alive
        finally:
            task.stop()
        assert not task.is_alive
