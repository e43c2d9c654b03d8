import threading
import time

import pytest

from scorebook.utils.concurrency import run_with_concurrency


class TestRunWithConcurrency:
    def test_results_keep_input_order(self):
        def slow_for_small(value):
            time.sleep(0.01 * (5 - value))
            return value * 10

        assert run_with_concurrency([1, 2, 3, 4], 4, slow_for_small) == [10, 20, 30, 40]

    def test_pool_is_bounded(self):
        lock = threading.Lock()
        active = [0]
        peak = [0]

        def worker(value):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            time.sleep(0.01)
            with lock:
                active[0] -= 1
            return value

        assert run_with_concurrency(range(8), 2, worker) == list(range(8))
        assert peak[0] <= 2

    def test_worker_error_propagates(self):
        def worker(value):
            if value == 2:
                raise RuntimeError('boom')
            return value

        with pytest.raises(RuntimeError, match='boom'):
            run_with_concurrency([1, 2, 3], 2, worker)

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError):
            run_with_concurrency([1], 0, lambda value: value)

    def test_empty(self):
        assert run_with_concurrency([], 3, lambda value: value) == []
