# src/queueflow/queue_manager.py
import logging
from .flow_queue import Queue


class QueueManager:
    """
    Registry of named queues, creating them on-demand.

    The ``strategy`` builds every queue this manager creates, named or anonymous. It is called
    as ``strategy(manager, name)`` and must return an object with the Queue interface, so a
    different delivery discipline (e.g. UnorderedQueue) can be swapped in without touching any
    call site.
    """
    def __init__(self, strategy=Queue):
        self.queues = {}
        self.strategy = strategy

    def __call__(self, source=None):
        """
        Shorthand entry point.

        A string looks up (or creates) the named queue; anything else creates an anonymous
        queue, pre-filled and closing when ``source`` is an iterable of values.
        """
        if isinstance(source, str):
            return self.get_queue(source)
        return self.queue(source)

    def new_queue(self, name: str = None, strategy=None):
        """Build a queue with the given (or default) strategy without registering it."""
        return (strategy or self.strategy)(self, name)

    def queue(self, values=None):
        """
        Create an anonymous queue. If ``values`` is given they are pushed and the queue is
        closed, so it finishes once its stages have drained them.
        """
        queue = self.new_queue()
        if values is not None:
            queue.push(*values)
            queue.close()
        return queue

    def create_queue(self, key: str, strategy=None):
        """
        Explicitly create a new named queue.
        Raises an error if the queue already exists.
        """
        if key in self.queues:
            raise ValueError(f"Queue '{key}' already exists.")
        self.queues[key] = self.new_queue(key, strategy)
        logging.info(f"Queue '{key}' created.")
        return self.queues[key]

    def get_queue(self, key: str, strategy=None):
        """
        Retrieve a named queue, creating it with ``strategy`` if it does not exist yet.
        The strategy is ignored for queues that already exist.
        """
        if key not in self.queues:
            return self.create_queue(key, strategy)
        return self.queues[key]

    def register(self, key: str, queue) -> None:
        """
        Make an existing queue reachable under ``key``.
        Raises an error if the name is taken.
        """
        if key in self.queues:
            raise ValueError(f"Queue '{key}' already exists.")
        if queue.name is None:
            queue.name = key
        self.queues[key] = queue
        logging.info(f"Queue {queue.label} registered as '{key}'.")

    def remove_queue(self, key: str) -> None:
        """
        Remove a queue from the manager. The queue itself keeps running.
        """
        if key in self.queues:
            del self.queues[key]
            logging.info(f"Queue '{key}' removed.")

    def exists(self, key: str) -> bool:
        """Checks if a queue exists."""
        return key in self.queues

    def reset(self) -> None:
        """Forget every named queue."""
        self.queues.clear()
        logging.info("All named queues removed.")

    def list_queues(self) -> list:
        """
        Get a list of all queue names.
        """
        return list(self.queues.keys())

    def get_queue_sizes(self) -> dict:
        """
        Get the number of buffered items of all named queues.
        """
        return {key: queue.qsize() for key, queue in self.queues.items()}

    def log_queue_sizes(self) -> None:
        """
        Log the sizes of all queues.
        """
        sizes = self.get_queue_sizes()
        logging.info("Current queue sizes:")
        for key, size in sizes.items():
            logging.info(f"  {key}: {size}")
