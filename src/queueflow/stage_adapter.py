# src/queueflow/stage_adapter.py
import asyncio
import functools
import inspect

# The loop only keeps weak references to tasks; pending stage coroutines live here until they settle.
_running_tasks = set()


class CallbackStage:
    """
    Tags a function as callback-style asynchronous.

    The wrapped function receives a trailing ``done`` callable and signals completion with
    ``done(result)`` or failure with ``done(error=exc)``.
    """

    def __init__(self, fn):
        if not callable(fn):
            raise TypeError(f"Expected a callable, got {type(fn).__name__}.")
        self.fn = fn
        functools.update_wrapper(self, fn)

    def __call__(self, *args):
        return self.fn(*args)


def mark_async(fn) -> CallbackStage:
    """Force callback-style invocation for ``fn``."""
    if isinstance(fn, CallbackStage):
        return fn
    return CallbackStage(fn)


def is_callback_style(fn) -> bool:
    return isinstance(fn, CallbackStage)


def is_async(fn) -> bool:
    """True if ``fn`` completes outside the calling turn (callback-style or coroutine function)."""
    return is_callback_style(fn) or inspect.iscoroutinefunction(fn)


def invoke(fn, args, callback) -> None:
    """
    Run ``fn(*args)`` and report the outcome as ``callback(error, result)``.

    Plain functions report synchronously. Awaitable results are scheduled on the running
    loop and report when they settle. Callback-style functions report whenever they call
    their ``done``.
    """
    if is_callback_style(fn):
        def done(result=None, error=None):
            callback(error, result)

        try:
            fn(*args, done)
        except Exception as e:
            callback(e, None)
        return

    try:
        result = fn(*args)
    except Exception as e:
        callback(e, None)
        return

    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        _running_tasks.add(task)
        task.add_done_callback(_running_tasks.discard)
        task.add_done_callback(functools.partial(_settle, callback))
    else:
        callback(None, result)


def _settle(callback, task) -> None:
    if task.cancelled():
        callback(asyncio.CancelledError(), None)
        return
    error = task.exception()
    if error is not None:
        callback(error, None)
    else:
        callback(None, task.result())
