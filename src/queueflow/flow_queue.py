# src/queueflow/flow_queue.py
import asyncio
import logging
from collections import deque

from .events import EventEmitter
from .operators import QueueOperators

OPEN = "open"
CLOSING = "closing"
CLOSED = "closed"
KILLED = "killed"


class Queue(QueueOperators):
    """
    FIFO buffer with a single attached stage and an open/closing/closed/killed lifecycle.

    Values leave the queue in the order they were pushed. At most ``max_in_flight`` stage
    invocations are outstanding at once (one for this class), and every pump turn runs on
    the event loop via ``call_soon`` so consecutive stages overlap instead of draining one
    stage completely before the next starts.

    A stage that never signals completion stalls its queue permanently; there is no timeout.
    """

    max_in_flight = 1

    def __init__(self, manager=None, name: str = None):
        """
        Args:
            manager (QueueManager, optional): Registry used to resolve named destinations and to
                                              build anonymous downstream queues. A private one is
                                              created when omitted.
            name (str, optional): Registry name, None for anonymous queues.
        """
        if manager is None:
            from .queue_manager import QueueManager
            manager = QueueManager()
        self.manager = manager
        self.name = name
        self.buffer = deque()
        self.state = OPEN
        self.close_on_empty_flag = False
        self.downstream = []
        self.events = EventEmitter()
        self.in_flight = 0
        self.error = None
        self._stage = None
        self._sequential = False
        self._finalizers = []
        self._waiters = []
        self._scheduled = False

    def __repr__(self):
        return f"<{type(self).__name__} {self.label} state={self.state} size={len(self.buffer)}>"

    @property
    def label(self) -> str:
        if self.name is not None:
            return f"'{self.name}'"
        return f"<anonymous {id(self):#x}>"

    def qsize(self) -> int:
        return len(self.buffer)

    def on(self, name: str, handler):
        """Register an event handler and return the queue for chaining."""
        self.events.on(name, handler)
        return self

    def push(self, *values):
        """
        Append values to the buffer.

        Pushes into a queue that is no longer open are dropped. A ``push`` handler returning
        False vetoes that single value.
        """
        if self.state != OPEN:
            logging.debug(f"Dropped {len(values)} value(s) pushed into {self.state} queue {self.label}.")
            return self
        for value in values:
            if self.state != OPEN:
                break
            if not self.events.emit("push", value):
                logging.debug(f"Push of '{value}' into queue {self.label} vetoed.")
                continue
            self.buffer.append(value)
            logging.debug(f"Put item '{value}' into queue {self.label}.")
        if self.buffer:
            self._schedule()
        return self

    def close_on_empty(self):
        """Begin closing as soon as the buffer is drained by the attached stage."""
        self.close_on_empty_flag = True
        return self

    def close(self):
        """Stop accepting pushes; the queue closes once the buffer has drained."""
        if self.state in (CLOSED, KILLED):
            return self
        # Closing again retries a close that a listener canceled.
        self.state = CLOSING
        self._schedule()
        return self

    def kill(self):
        """Discard the buffer and terminate this queue and its owned downstream immediately."""
        if self.state in (CLOSED, KILLED):
            return self
        self.state = KILLED
        dropped = len(self.buffer)
        self.buffer.clear()
        self.in_flight = 0
        self.events.emit("kill")
        logging.info(f"Queue {self.label} killed, {dropped} buffered item(s) discarded.")
        for queue in self.downstream:
            if queue.error is None:
                queue.error = self.error
            queue.kill()
        self._resolve_waiters()
        return self

    def alias(self, name: str):
        """Register this queue in its manager under ``name``."""
        self.manager.register(name, self)
        return self

    async def join(self) -> None:
        """
        Wait until the queue is closed or killed.

        Raises:
            Exception: The stage error that killed this queue (or an upstream owner), if any.
        """
        if self.state not in (CLOSED, KILLED):
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            await waiter
        if self.error is not None:
            raise self.error

    def _limit(self) -> int:
        return 1 if self._sequential else self.max_in_flight

    def _ensure_free(self) -> None:
        if self._stage is not None:
            raise ValueError(f"Queue {self.label} already has a consuming stage.")

    def _attach(self, stage, sequential: bool = False) -> None:
        self._ensure_free()
        self._stage = stage
        self._sequential = sequential
        if self.buffer or self.state == CLOSING:
            self._schedule()

    def _spawn(self):
        queue = self.manager.new_queue()
        self.downstream.append(queue)
        if self.state == CLOSED:
            queue.close()
        elif self.state == KILLED:
            queue.kill()
        return queue

    def _on_closed(self, finalizer) -> None:
        if self.state == CLOSED:
            asyncio.get_running_loop().call_soon(finalizer)
        elif self.state != KILLED:
            self._finalizers.append(finalizer)

    def _schedule(self) -> None:
        if self._scheduled or self.state in (CLOSED, KILLED):
            return
        self._scheduled = True
        asyncio.get_running_loop().call_soon(self._pump)

    def _pump(self) -> None:
        self._scheduled = False
        if self.state in (CLOSED, KILLED):
            return
        if self._stage is not None:
            slots = self._limit() - self.in_flight
            while slots > 0 and self.buffer and self.state in (OPEN, CLOSING):
                slots -= 1
                self._start(self.buffer.popleft())
        if self.state == CLOSING and not self.buffer and not self.in_flight:
            self._finish_close()

    def _start(self, value) -> None:
        self.in_flight += 1
        self.events.emit("pull", value)
        if not self.buffer:
            self.events.emit("empty")
            if self.close_on_empty_flag and self.state == OPEN:
                self.close()
        self._stage(value, self._completion())

    def _completion(self):
        settled = False

        def done(effect=None):
            nonlocal settled
            if settled:
                logging.warning(f"Stage on queue {self.label} completed more than once; ignoring.")
                return
            settled = True
            if self.state == KILLED:
                logging.debug(f"Discarding late completion on killed queue {self.label}.")
                return
            self.in_flight -= 1
            if effect is not None:
                effect()
            self._schedule()

        return done

    def _finish_close(self) -> None:
        if not self.events.emit("close"):
            logging.info(f"Close of queue {self.label} canceled by a listener.")
            return
        self.state = CLOSED
        logging.debug(f"Queue {self.label} closed.")
        for queue in self.downstream:
            queue.close()
        finalizers, self._finalizers = self._finalizers, []
        for finalizer in finalizers:
            finalizer()
        self._resolve_waiters()

    def _fail(self, error: BaseException) -> None:
        if self.state == KILLED:
            return
        logging.error(f"Error in stage of queue {self.label}: {error}", exc_info=error)
        self.error = error
        self.kill()
        asyncio.get_running_loop().call_exception_handler({
            "message": f"Unhandled stage error in queue {self.label}: {error}",
            "exception": error,
            "queue": self,
        })

    def _resolve_waiters(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)


class UnorderedQueue(Queue):
    """
    Queue that runs up to ``concurrency`` stage invocations at once and forwards results in
    completion order. Reduce-family stages still run one value at a time.
    """

    def __init__(self, manager=None, name: str = None, concurrency: int = 4):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        super().__init__(manager, name)
        self.max_in_flight = concurrency
