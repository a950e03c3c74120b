"""A small abstraction over ThreadPoolExecutor in the spirit of `p-map`.

- One ``p_map()`` call with an iterable, a mapper and a ``concurrency`` cap.
- Submission window, shutdown and cancellation stay hidden.
- Output preserves input order.

Options:
- ``stop_on_error`` (default True): fail fast on the first error; when False,
  wait for every task and raise an ``ExceptionGroup`` of all failures.
- ``should_stop``: polled before each new submission. Once it returns true no
  further items are started; work already running is allowed to finish.
- ``p_map_skip``: return this sentinel from the mapper to omit a value while
  keeping the relative order of the rest.

Items never started because of ``should_stop`` are reported through
``on_unstarted`` (when given) and are absent from the output.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "p_map_skip"


p_map_skip: object = _Skip()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT | object],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    should_stop: Callable[[], bool] | None = None,
    on_unstarted: Callable[[InT], None] | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight."""

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    it = enumerate(iterable)

    results: dict[int, OutT | object] = {}
    errors: list[Exception] = []
    submitted = 0
    stopped = False
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        nonlocal submitted, stopped
        if stopped:
            return None
        if should_stop is not None and should_stop():
            stopped = True
            return None
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        submitted += 1
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)

            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        try:
                            pool.shutdown(wait=False, cancel_futures=True)
                        finally:
                            raise
                    errors.append(e)

            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    if stopped and on_unstarted is not None:
        for _, item in it:
            on_unstarted(item)

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)

    out: list[OutT] = []
    for i in range(submitted):
        val = results.get(i, p_map_skip)
        if val is p_map_skip:
            continue
        out.append(val)  # type: ignore[arg-type]
    return out


__all__ = ["p_map", "p_map_skip"]
