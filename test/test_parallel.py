import threading

import pytest

from workload_dns.parallel import fan_out


def test_results_in_order():
    assert fan_out(lambda n: n * 2, range(25)) == [n * 2 for n in range(25)]
    assert fan_out(lambda n: n, []) == []


def test_calls_run_concurrently():
    barrier = threading.Barrier(3, timeout=5)

    # Would time out if the calls ran one after another
    assert fan_out(lambda n: barrier.wait() is not None and n, [1, 2, 3]) == [1, 2, 3]


def test_one_failure_fails_all_after_every_call_finishes():
    finished = []

    def work(n):
        if n == 1:
            raise ValueError('one failed')
        finished.append(n)
        return n

    with pytest.raises(ValueError, match='one failed'):
        fan_out(work, [0, 1, 2, 3])

    assert sorted(finished) == [0, 2, 3]
