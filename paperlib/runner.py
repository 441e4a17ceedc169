"""
CorrectionRunner - Runs corrections off the calling thread.

Each submitted correction gets its own cancellation event, checked by the
correctors between their major phases. The returned Future is the
completion signal the caller waits on.
"""

import inspect
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from .defaults import DEFAULT_WORKERS


class CorrectionCancelled(Exception):
    """Raised inside a correction when its cancellation event is set"""

    def __init__(self, stage):
        super().__init__(f"Cancelled before {stage}")
        self.stage = stage


def check_cancelled(cancel, stage):
    """
    Abort the running correction if cancellation was requested.

    Args:
        cancel: threading.Event or None
        stage: Name of the phase about to start (for diagnostics)

    Raises:
        CorrectionCancelled: If the event is set
    """
    if cancel is not None and cancel.is_set():
        raise CorrectionCancelled(stage)


def _accepts_cancel(fn):
    try:
        return 'cancel' in inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return False


class CorrectionRunner:
    """Thread pool wrapper handing out cancellable correction futures"""

    def __init__(self, max_workers=DEFAULT_WORKERS, logger=None):
        self.log = logger or logging.getLogger(__name__)
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="correction")
        self._events = {}
        self._lock = threading.Lock()

    def submit(self, fn, *args, **kwargs):
        """
        Schedule a correction.

        If fn takes a `cancel` argument and none was given, a fresh
        threading.Event is passed so that cancel() can stop it.

        Returns:
            concurrent.futures.Future resolving to the correction's result
        """
        event = kwargs.get('cancel')
        if event is None and _accepts_cancel(fn):
            event = threading.Event()
            kwargs['cancel'] = event

        future = self.executor.submit(fn, *args, **kwargs)

        if event is not None:
            with self._lock:
                self._events[future] = event
            future.add_done_callback(self._forget)

        self.log.debug(f"Submitted {getattr(fn, '__name__', fn)}")
        return future

    def cancel(self, future):
        """
        Request cancellation of a submitted correction.

        A correction that has not started is dropped; a running one stops at
        its next phase boundary and resolves to None.
        """
        future.cancel()
        with self._lock:
            event = self._events.get(future)
        if event is not None:
            event.set()

    def _forget(self, future):
        with self._lock:
            self._events.pop(future, None)

    def shutdown(self, wait=True):
        self.executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown(wait=True)
        return False


def elapsed_ms(start):
    """Milliseconds since a time.perf_counter() reading"""
    return (time.perf_counter() - start) * 1000.0
