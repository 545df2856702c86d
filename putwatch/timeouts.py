"""Thread-based call timeouts and fetch deadlines for blocking upstream I/O."""

from __future__ import annotations

import contextvars
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional

from putwatch.errors import FetchTimeoutError

_fetch_deadline: contextvars.ContextVar[Optional[float]] = contextvars.ContextVar(
    "putwatch_fetch_deadline", default=None
)


@contextmanager
def fetch_deadline(seconds: float) -> Iterator[float]:
    """Bound every upstream call made inside the block to ``seconds`` from now.

    Nested deadlines never extend an enclosing one. The deadline follows calls
    into ``run_with_timeout`` worker threads, so a call the caller has already
    given up on stops retrying once it expires.
    """

    deadline = time.monotonic() + seconds
    current = _fetch_deadline.get()
    if current is not None:
        deadline = min(deadline, current)
    token = _fetch_deadline.set(deadline)
    try:
        yield deadline
    finally:
        _fetch_deadline.reset(token)


def deadline_remaining() -> Optional[float]:
    """Seconds left before the active fetch deadline; ``None`` when unbounded."""

    deadline = _fetch_deadline.get()
    if deadline is None:
        return None
    return deadline - time.monotonic()


def run_with_timeout(func: Callable[[], Any], timeout_seconds: float) -> Any:
    """Run ``func`` in a daemon thread and wait at most ``timeout_seconds``.

    This is more reliable than signal-based timeouts, especially off the main
    thread. A timed-out call keeps running in the background; its result is
    discarded.
    """

    result_container: List[Any] = []
    exception_container: List[BaseException] = []
    context = contextvars.copy_context()

    def wrapper() -> None:
        try:
            result_container.append(context.run(func))
        except BaseException as exc:  # re-raised in the caller's thread
            exception_container.append(exc)

    thread = threading.Thread(target=wrapper, daemon=True)
    thread.start()
    thread.join(timeout=timeout_seconds)

    if thread.is_alive():
        raise FetchTimeoutError(f"Operation timed out after {timeout_seconds} seconds")

    if exception_container:
        raise exception_container[0]

    if result_container:
        return result_container[0]

    raise FetchTimeoutError("Operation completed but returned no result")


__all__ = ["deadline_remaining", "fetch_deadline", "run_with_timeout"]
