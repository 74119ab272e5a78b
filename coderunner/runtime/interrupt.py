"""One-cell interrupt buffer for cooperative timeouts.

The runtime thread cannot be preempted. Writing the interrupt sentinel into
the buffer asks CPython to raise ``KeyboardInterrupt`` in the runtime thread
at its next bytecode boundary, which is the only safe point available.
"""

import ctypes
import logging
import threading

_logger = logging.getLogger("coderunner.runtime.interrupt")

NOT_INTERRUPTED = 0
# Same value as SIGINT, the sentinel the runtime reads as "raise KeyboardInterrupt".
INTERRUPT_SENTINEL = 2

try:
    _PY_SET_ASYNC_EXC = ctypes.pythonapi.PyThreadState_SetAsyncExc
except AttributeError:
    _PY_SET_ASYNC_EXC = None
else:
    _PY_SET_ASYNC_EXC.restype = ctypes.c_int


class InterruptUnsupportedError(RuntimeError):
    """The host cannot deliver an interrupt into another thread."""


class InterruptBuffer:
    def __init__(self) -> None:
        self.cell = bytearray(1)
        self._lock = threading.Lock()
        self._thread_id: int | None = None
        # An exception was posted to the armed thread and may not be raised yet.
        self._pending = False

    @classmethod
    def allocate(cls) -> "InterruptBuffer":
        if _PY_SET_ASYNC_EXC is None:
            raise InterruptUnsupportedError("PyThreadState_SetAsyncExc is not available on this interpreter")
        return cls()

    @property
    def triggered(self) -> bool:
        return self.cell[0] == INTERRUPT_SENTINEL

    def reset(self) -> None:
        with self._lock:
            self.cell[0] = NOT_INTERRUPTED

    def arm(self, thread_id: int) -> None:
        """Mark ``thread_id`` as the thread executing user code.

        A sentinel written before the thread was armed is delivered right away.
        """
        with self._lock:
            self._thread_id = thread_id
            if self.cell[0] == INTERRUPT_SENTINEL:
                self._post(thread_id)

    def disarm(self, delivered: bool = False) -> None:
        """Stop targeting the runtime thread.

        An interrupt that was posted but not raised (``delivered`` is False) is
        withdrawn. Nothing is withdrawn when none was posted: on CPython 3.11
        clearing an empty slot still flags the thread and stalls its next run.
        """
        with self._lock:
            thread_id, self._thread_id = self._thread_id, None
            pending, self._pending = self._pending and not delivered, False
            if thread_id is not None and pending:
                _PY_SET_ASYNC_EXC(ctypes.c_ulong(thread_id), None)

    def trigger(self) -> None:
        """Write the interrupt sentinel; raises in the armed thread if any."""
        with self._lock:
            self.cell[0] = INTERRUPT_SENTINEL
            thread_id = self._thread_id
            if thread_id is None:
                return
            self._post(thread_id)
        _logger.debug("Interrupt delivered to runtime thread %s", thread_id)

    def _post(self, thread_id: int) -> None:
        affected = _PY_SET_ASYNC_EXC(ctypes.c_ulong(thread_id), ctypes.py_object(KeyboardInterrupt))
        if affected > 1:
            _PY_SET_ASYNC_EXC(ctypes.c_ulong(thread_id), None)
            raise RuntimeError("PyThreadState_SetAsyncExc affected multiple threads")
        self._pending = affected == 1
