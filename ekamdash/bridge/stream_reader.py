"""Stream reader — keeps a status tree in sync with a running build tool.

Two flows of control cooperate:

* the **reader** (``run()``, usually on its own thread) connects, reads
  the header, decodes updates and appends them to a shared queue;
* the **consumer** (whatever runs the scheduler's callbacks) drains the
  queue into the tree and fires the change notification once per batch.

A dispatch is scheduled only when the queue goes from empty to
non-empty, so a burst of updates costs one tree refresh.  The queue, the
id → action map and the tree itself are guarded by one lock; the change
notification runs outside it.

Everything that touches the tree or its collaborators runs in the
consumer context: the header callback, the apply step, the disconnect
hook and the reset.  The reader hands the header, disconnect and reset
work to the scheduler and waits for it to finish before reading on or
backing off.

On any transport error (including end of stream) the disconnect hook
gets a last look at the queue, then the tree, the id map and the queue
are cleared — the build tool replays its full state on reconnect — and
the reader waits ``reconnect_delay`` before retrying.  ``stop()``
cancels promptly and never reconnects.
"""

from __future__ import annotations

import logging
import queue
import socket
import threading
import time
from collections import deque
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from ekamdash.bridge.wire import UpdateStream
from ekamdash.config import config
from ekamdash.core.status_tree import ActionNode, DirectoryNode
from ekamdash.models.updates import StreamHeader, TaskState, TaskUpdate

logger = logging.getLogger(__name__)

Scheduler = Callable[[Callable[[], None], float], None]

# How often a reader waiting on the consumer checks for stop().
_HANDOFF_POLL_SECONDS = 0.05


class TransportError(RuntimeError):
    """Raised when the build tool cannot be reached."""


class ConnectionState(str, Enum):
    """Per-attempt connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"


class Connection(Protocol):
    """A readable byte stream for one connection attempt."""

    def read(self, size: int = -1, /) -> bytes: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Default transport and scheduler
# ---------------------------------------------------------------------------


class SocketConnection:
    """Buffered reader over a connected socket.

    ``close()`` shuts the socket down first, which wakes a reader blocked
    in ``read()`` on another thread.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._file = sock.makefile("rb")

    def read(self, size: int = -1, /) -> bytes:
        return self._file.read(size)

    def close(self) -> None:
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        try:
            self._file.close()
        finally:
            self._sock.close()


def tcp_connector(
    host: str, port: int, *, connect_timeout: float | None = 5.0
) -> Callable[[], SocketConnection]:
    """Return a connector opening a TCP connection to ``host:port``."""

    def connect() -> SocketConnection:
        try:
            sock = socket.create_connection((host, port), timeout=connect_timeout)
        except OSError as exc:
            raise TransportError(f"Cannot connect to {host}:{port}: {exc}") from exc
        # Established connections block indefinitely; stop() interrupts them.
        sock.settimeout(None)
        return SocketConnection(sock)

    return connect


class TimerScheduler:
    """Runs callbacks after a delay on daemon ``threading.Timer`` threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: list[threading.Timer] = []

    def __call__(self, callback: Callable[[], None], delay: float) -> None:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        with self._lock:
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()

    def cancel_all(self) -> None:
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()


class QueueScheduler:
    """Hands callbacks to whichever thread calls ``run_pending()``.

    Lets a foreground loop (e.g. the CLI's main thread) act as the
    consumer context, so the tree is only ever mutated and read there.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[tuple[float, Callable[[], None]]] = queue.Queue()

    def __call__(self, callback: Callable[[], None], delay: float) -> None:
        self._queue.put((time.monotonic() + delay, callback))

    def run_pending(self, timeout: float | None = None) -> int:
        """Run due callbacks, waiting up to *timeout* for the first one.

        Returns the number of callbacks run.
        """
        ran = 0
        try:
            due, callback = self._queue.get(timeout=timeout)
        except queue.Empty:
            return ran
        while True:
            wait = due - time.monotonic()
            if wait > 0:
                time.sleep(wait)
            callback()
            ran += 1
            try:
                due, callback = self._queue.get_nowait()
            except queue.Empty:
                return ran

    @property
    def pending(self) -> int:
        return self._queue.qsize()


# ---------------------------------------------------------------------------
# Stream reader
# ---------------------------------------------------------------------------


class StreamReader:
    """Connects to the build tool and applies its updates to *root*.

    Parameters
    ----------
    root:
        Root directory of the status tree to maintain.
    on_change:
        Zero-argument callback fired after every applied batch and after
        every reset.  Exceptions it raises are logged and swallowed.
    connector:
        Opens one connection.  Defaults to TCP on ``config.host:config.port``.
    reconnect_delay:
        Cool-down in seconds between a lost connection and the next attempt.
    coalesce_delay:
        Delay in seconds between the first queued update and the apply step.
    scheduler:
        ``scheduler(callback, delay)`` runs *callback* in the consumer
        context after *delay* seconds.  Defaults to a ``TimerScheduler``.
    on_header:
        Called in the consumer context with the ``StreamHeader`` of every
        new connection, before any of its updates are read.
    on_disconnect:
        Called in the consumer context when a connection ends, before the
        reset.  Updates still queued at that point are visible through
        ``pending_count`` and can be applied with ``apply_updates()``.
    on_reset:
        Called in the consumer context after the tree has been cleared
        following a lost connection.
    max_record_bytes:
        Upper bound on a single wire record.
    """

    def __init__(
        self,
        root: DirectoryNode,
        on_change: Callable[[], None],
        *,
        connector: Callable[[], Connection] | None = None,
        reconnect_delay: float | None = None,
        coalesce_delay: float | None = None,
        scheduler: Scheduler | None = None,
        on_header: Callable[[StreamHeader], None] | None = None,
        on_disconnect: Callable[[], None] | None = None,
        on_reset: Callable[[], None] | None = None,
        max_record_bytes: int | None = None,
    ) -> None:
        self._root = root
        self._on_change = on_change
        self._connector = connector or tcp_connector(config.host, config.port)
        self._reconnect_delay = (
            config.reconnect_delay_seconds if reconnect_delay is None else reconnect_delay
        )
        self._coalesce_delay = (
            config.coalesce_delay_seconds if coalesce_delay is None else coalesce_delay
        )
        self._owned_scheduler: TimerScheduler | None = None
        if scheduler is None:
            self._owned_scheduler = TimerScheduler()
            scheduler = self._owned_scheduler
        self._scheduler = scheduler
        self._on_header = on_header
        self._on_disconnect = on_disconnect
        self._on_reset = on_reset
        self._max_record_bytes = max_record_bytes or config.max_record_bytes

        # Shared between the reader and the consumer; guarded by _lock.
        self._lock = threading.Lock()
        self._queue: deque[TaskUpdate] = deque()
        self._actions_by_id: dict[int, ActionNode] = {}

        self._stop_event = threading.Event()
        self._connection_lock = threading.Lock()
        self._connection: Connection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._thread: threading.Thread | None = None
        self._connect_attempts = 0
        self._dispatch_count = 0

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def root(self) -> DirectoryNode:
        return self._root

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connect_attempts(self) -> int:
        return self._connect_attempts

    @property
    def dispatch_count(self) -> int:
        """How many apply steps have been scheduled."""
        return self._dispatch_count

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._queue)

    @property
    def tracked_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._actions_by_id)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def action_for(self, task_id: int) -> ActionNode | None:
        with self._lock:
            return self._actions_by_id.get(task_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run the reader loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._thread = threading.Thread(
            target=self.run, name="ekamdash-stream-reader", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the reader: interrupt any blocked read and never reconnect."""
        self._stop_event.set()
        self._close_connection()

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

        if self._owned_scheduler is not None:
            self._owned_scheduler.cancel_all()

    def run(self) -> None:
        """Connect, stream, reset and back off until ``stop()`` is called."""
        while not self._stop_event.is_set():
            self._set_state(ConnectionState.CONNECTING)
            self._connect_attempts += 1
            try:
                self._stream_once()
            except (OSError, ValueError, TransportError) as exc:
                if self._stop_event.is_set():
                    break
                logger.warning("Build tool connection lost: %s", exc)
            else:
                if self._stop_event.is_set():
                    break
                logger.info("Build tool closed the connection.")
            finally:
                self._close_connection()
                self._set_state(ConnectionState.DISCONNECTED)

            if not self._run_in_consumer(self._connection_lost):
                break
            logger.info("Reconnecting in %.1f s.", self._reconnect_delay)
            if self._stop_event.wait(self._reconnect_delay):
                break

        self._set_state(ConnectionState.DISCONNECTED)
        logger.debug("Stream reader stopped.")

    def _stream_once(self) -> None:
        connection = self._connector()
        with self._connection_lock:
            self._connection = connection
        if self._stop_event.is_set():
            return

        self._set_state(ConnectionState.STREAMING)
        stream = UpdateStream(connection, max_record_bytes=self._max_record_bytes)
        header = stream.read_header()
        logger.info("Connected to build tool (project root: %s).", header.project_root)
        if not self._run_in_consumer(lambda: self._deliver_header(header)):
            return

        while not self._stop_event.is_set():
            update = stream.next_update()
            if update is None or self._stop_event.is_set():
                return
            self.enqueue(update)

    def _close_connection(self) -> None:
        with self._connection_lock:
            connection, self._connection = self._connection, None
        if connection is None:
            return
        try:
            connection.close()
        except OSError as exc:
            logger.warning("Error closing build tool connection: %s", exc)

    def _run_in_consumer(self, callback: Callable[[], None]) -> bool:
        """Hand *callback* to the scheduler and wait until it has run.

        Returns ``False`` if ``stop()`` was called first; the callback may
        then run later or not at all.
        """
        finished = threading.Event()

        def task() -> None:
            try:
                callback()
            finally:
                finished.set()

        self._scheduler(task, 0.0)
        while not finished.wait(_HANDOFF_POLL_SECONDS):
            if self._stop_event.is_set():
                return False
        return True

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug("Connection state: %s -> %s", self._state.value, state.value)
            self._state = state

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(self, update: TaskUpdate) -> bool:
        """Queue *update*; schedule an apply step if the queue was empty.

        Returns ``True`` when this call scheduled a dispatch.
        """
        with self._lock:
            need_dispatch = not self._queue
            self._queue.append(update)
            if need_dispatch:
                self._dispatch_count += 1

        if need_dispatch:
            self._scheduler(self.apply_updates, self._coalesce_delay)
        return need_dispatch

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def apply_updates(self) -> int:
        """Drain the queue into the tree, then notify once.

        Returns the number of updates drained.
        """
        drained = 0
        with self._lock:
            while self._queue:
                self._apply_one(self._queue.popleft())
                drained += 1

        self._notify_change()
        return drained

    def _apply_one(self, update: TaskUpdate) -> None:
        action = self._actions_by_id.get(update.id)
        if action is None:
            if update.noun is None:
                logger.error(
                    "Update for new task id %d had no noun; dropped.", update.id
                )
                return
            action = self._root.new_action(update.noun, update)
            # A reused slot keeps its old state when the update carries none.
            if action.state != TaskState.DELETED:
                self._actions_by_id[update.id] = action
            return

        if not action.apply_update(update):
            del self._actions_by_id[update.id]

    def reset(self) -> None:
        """Forget everything: tree, id map and pending updates."""
        with self._lock:
            self._root.clear()
            self._actions_by_id.clear()
            self._queue.clear()

        if self._on_reset is not None:
            try:
                self._on_reset()
            except Exception:  # noqa: BLE001
                logger.exception("Reset callback failed; ignoring.")
        self._notify_change()

    def _connection_lost(self) -> None:
        if self._on_disconnect is not None:
            try:
                self._on_disconnect()
            except Exception:  # noqa: BLE001
                logger.exception("Disconnect callback failed; ignoring.")
        self.reset()

    def _deliver_header(self, header: StreamHeader) -> None:
        if self._on_header is None:
            return
        try:
            self._on_header(header)
        except Exception:  # noqa: BLE001
            logger.exception("Header callback failed; ignoring.")

    def _notify_change(self) -> None:
        try:
            self._on_change()
        except Exception:  # noqa: BLE001
            logger.exception("Change notification failed; ignoring.")

    def __enter__(self) -> StreamReader:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def __repr__(self) -> str:
        return (
            f"StreamReader(state={self._state.value}, "
            f"tracked={len(self._actions_by_id)}, pending={len(self._queue)})"
        )
