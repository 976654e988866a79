# src/queueflow/__init__.py
from .events import EventEmitter
from .flow_queue import Queue, UnorderedQueue, OPEN, CLOSING, CLOSED, KILLED
from .queue_manager import QueueManager
from .stage_adapter import mark_async, is_async
from .factory import create_queue_manager

__all__ = [
    "EventEmitter",
    "Queue",
    "UnorderedQueue",
    "OPEN",
    "CLOSING",
    "CLOSED",
    "KILLED",
    "QueueManager",
    "mark_async",
    "is_async",
    "create_queue_manager",
]
