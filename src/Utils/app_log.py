"""
app_log.py
Global app log: forwards messages to whatever sink the front end registered.

The CLI calls set_app_log(print) at start-up; the long-running ``serve``
command also passes an after_fn so that messages logged by the worker thread
are queued and drained on the main thread.  Lifecycle/Nexus/Utils code calls
app_log(msg) and never prints directly.

Thread safety: when an after_fn is registered and app_log is called from a
background thread, messages are put on a queue and drained on the main
thread via a periodic after_fn callback.  Without an after_fn, messages are
delivered immediately under a lock.
"""

from __future__ import annotations

import queue
import threading
from typing import Callable

_log_fn: Callable[[str], None] | None = None
_after_fn: Callable | None = None
_main_thread_id: int | None = None
_log_queue: queue.Queue[str] = queue.Queue()
_lock = threading.Lock()


def _drain_log_queue() -> None:
    """Run on main thread: drain queued messages and log them. Reschedule to run again."""
    if _log_fn is None:
        return
    while True:
        try:
            msg = _log_queue.get_nowait()
        except queue.Empty:
            break
        _log_fn(msg)
    if _after_fn is not None:
        _after_fn(50, _drain_log_queue)


def set_app_log(log_fn: Callable[[str], None] | None,
                after_fn: Callable | None = None) -> None:
    """Register the log sink and, optionally, a main-thread scheduler.

    ``after_fn(delay_ms, callback)`` must run *callback* on the main thread
    after roughly *delay_ms*.  Passing ``log_fn=None`` detaches the sink.
    """
    global _log_fn, _after_fn, _main_thread_id
    _log_fn = log_fn
    _after_fn = after_fn
    _main_thread_id = threading.current_thread().ident
    if log_fn is not None and after_fn is not None:
        after_fn(0, _drain_log_queue)


def drain() -> None:
    """Deliver any queued messages now (used on shutdown)."""
    if _log_fn is None:
        return
    while True:
        try:
            msg = _log_queue.get_nowait()
        except queue.Empty:
            return
        _log_fn(msg)


def app_log(message: str) -> None:
    """Write a message to the application log (thread-safe). No-op if not set."""
    if _log_fn is None:
        return
    if _after_fn is not None and threading.current_thread().ident != _main_thread_id:
        _log_queue.put_nowait(message)
        return
    with _lock:
        _log_fn(message)
