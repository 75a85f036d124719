"""Thread marshaling for store writes.

Call set_scheduler() once from the main/UI thread. After that, a
FieldStore.set() issued from any other thread is handed to the scheduler
instead of running in place; writes on the scheduler thread stay synchronous.
"""

from __future__ import annotations

import threading
from typing import Callable

Scheduler = Callable[[Callable[[], None]], object]

_scheduler: Scheduler | None = None
_scheduler_thread: threading.Thread | None = None


def set_scheduler(scheduler: Scheduler | None) -> None:
    """Set the process-wide scheduler for cross-thread store writes.

    Call once from the main/UI thread:
        fieldrx.set_scheduler(app.call_from_thread)

    Pass None to go back to running every write in the calling thread.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


def dispatch(fn: Callable[[], None]) -> None:
    """Run fn now, or hand it to the scheduler when called off-thread."""
    if _scheduler is not None and threading.current_thread() is not _scheduler_thread:
        _scheduler(fn)
    else:
        fn()
