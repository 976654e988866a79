# src/queueflow/factory.py
from .queue_manager import QueueManager

def create_queue_manager(queue_keys: list = None, strategy=None) -> QueueManager:
    """
    Creates and returns a QueueManager, optionally with named queues already in place.

    Args:
        queue_keys (list, optional): A list of queue names to pre-create.
        strategy (callable, optional): Queue construction strategy, called as ``strategy(manager, name)``.
                                       Defaults to the strict FIFO Queue.

    Returns:
        QueueManager: A fresh registry with no state shared with any other manager.
    """
    queue_manager = QueueManager(strategy=strategy) if strategy else QueueManager()

    # Pre-create queues if `queue_keys` are provided
    if queue_keys:
        for key in queue_keys:
            queue_manager.create_queue(key)

    return queue_manager
