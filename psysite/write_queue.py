"""Single-flight write queue for one configuration record.

At most one write is in flight. A write submitted meanwhile waits in a single
pending slot; a newer submission takes that slot and the waiting one fails
with ``WriteSuperseded`` without ever being sent. The last submission therefore
always reaches the store last.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

logger = logging.getLogger(__name__)


class WriteSuperseded(Exception):
    """A queued write was replaced by a newer one before it was sent."""


class _QueuedWrite:
    __slots__ = ('payload', 'future', 'on_success', 'on_error')

    def __init__(self, payload, on_success, on_error):
        self.payload = payload
        self.future = Future()
        self.on_success = on_success
        self.on_error = on_error


class WriteQueue:
    def __init__(self, send, executor=None, name='config'):
        self._send = send
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix=f'{name}-write')
        self._owns_executor = executor is None
        self._lock = threading.Lock()
        self._in_flight = None
        self._pending = None
        self.name = name

    @property
    def idle(self):
        with self._lock:
            return self._in_flight is None and self._pending is None

    def submit(self, payload, on_success=None, on_error=None):
        entry = _QueuedWrite(payload, on_success, on_error)
        superseded = None
        with self._lock:
            if self._in_flight is None:
                self._in_flight = entry
                dispatch = True
            else:
                superseded, self._pending = self._pending, entry
                dispatch = False
        if superseded is not None:
            logger.debug('Write on %s superseded before dispatch.', self.name)
            self._fail(superseded, WriteSuperseded(f'Superseded by a newer write on {self.name}.'))
        if dispatch:
            self._dispatch(entry)
        return entry.future

    def close(self):
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def _dispatch(self, entry):
        try:
            inner = self._executor.submit(self._send, entry.payload)
        except RuntimeError as exc:
            self._complete(entry, None, exc)
            return
        inner.add_done_callback(lambda done: self._on_sent(entry, done))

    def _on_sent(self, entry, done):
        error = done.exception()
        self._complete(entry, None if error else done.result(), error)

    def _complete(self, entry, result, error):
        if error is None:
            self._succeed(entry, result)
        else:
            logger.warning('Write on %s failed: %s', self.name, error)
            self._fail(entry, error)
        with self._lock:
            next_entry, self._pending = self._pending, None
            self._in_flight = next_entry
        if next_entry is not None:
            self._dispatch(next_entry)

    @staticmethod
    def _succeed(entry, result):
        entry.future.set_result(result)
        if entry.on_success is not None:
            try:
                entry.on_success(result)
            except Exception:
                logger.exception('on_success callback raised.')

    @staticmethod
    def _fail(entry, error):
        entry.future.set_exception(error)
        if entry.on_error is not None:
            try:
                entry.on_error(error)
            except Exception:
                logger.exception('on_error callback raised.')
