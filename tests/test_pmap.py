# ruff: noqa: E402, I001
import sys
import threading
import time
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIR = _ROOT / "packages"
sys.path[:0] = [p for p in [str(_PKG_DIR), str(_ROOT)] if p not in sys.path]

from ledger_import.pmap import p_map, p_map_skip


def test_preserves_order_and_caps_concurrency():
    lock = threading.Lock()
    in_flight = 0
    peak = 0

    def work(x: int) -> int:
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.01 * (5 - x))
        with lock:
            in_flight -= 1
        return x * 10

    assert p_map(range(5), work, concurrency=2) == [0, 10, 20, 30, 40]
    assert peak <= 2


def test_skip_sentinel_omits_values():
    assert p_map([1, 2, 3, 4], lambda x: p_map_skip if x % 2 else x, concurrency=3) == [2, 4]


def test_errors_fail_fast_or_group():
    def boom(x: int) -> int:
        if x == 2:
            raise RuntimeError("bad item")
        return x

    with pytest.raises(RuntimeError):
        p_map([1, 2, 3], boom, concurrency=1)
    with pytest.raises(ExceptionGroup) as info:
        p_map([1, 2, 3], boom, concurrency=2, stop_on_error=False)
    assert len(info.value.exceptions) == 1


def test_should_stop_reports_unstarted_items():
    started: list[int] = []
    unstarted: list[int] = []

    out = p_map(
        range(6),
        lambda x: started.append(x) or x,
        concurrency=1,
        should_stop=lambda: len(started) >= 2,
        on_unstarted=unstarted.append,
    )

    assert out == [0, 1]
    assert unstarted == [2, 3, 4, 5]


def test_rejects_bad_concurrency():
    with pytest.raises(ValueError):
        p_map([1], lambda x: x, concurrency=0)
