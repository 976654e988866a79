# src/queueflow/operators.py
import logging
from functools import partial

from .stage_adapter import invoke


def _require_callable(fn, operator: str) -> None:
    if not callable(fn):
        raise TypeError(f"{operator}() requires a callable, got {type(fn).__name__}.")


def _require_sink(sink, operator: str) -> None:
    if not (isinstance(sink, str) or callable(sink)):
        raise TypeError(f"{operator}() sink must be a callable or a queue name, got {type(sink).__name__}.")


def _queue_names(destinations) -> list:
    names = [destinations] if isinstance(destinations, str) else list(destinations)
    for name in names:
        if not isinstance(name, str):
            raise TypeError(f"Queue names must be strings, got {type(name).__name__}.")
    return names


def _flatten(value, depth):
    if depth == 0 or not isinstance(value, (list, tuple)):
        yield value
        return
    for item in value:
        yield from _flatten(item, None if depth is None else depth - 1)


class QueueOperators:
    """
    Stage factories mixed into Queue.

    Every operator attaches one stage to this queue. Per-item operators return a new anonymous
    queue holding the stage output; reduce-family operators return this queue, since their only
    output is delivered to a sink once the queue closes.
    """

    def each(self, fn):
        """Call ``fn(value)`` for its side effects and forward the original value."""
        _require_callable(fn, "each")

        def build(target):
            def stage(value, done):
                self._run(fn, (value,), lambda _result: done(partial(target.push, value)))
            return stage

        return self._pipe(build)

    def map(self, fn):
        """Forward ``fn(value)``."""
        _require_callable(fn, "map")

        def build(target):
            def stage(value, done):
                self._run(fn, (value,), lambda result: done(partial(target.push, result)))
            return stage

        return self._pipe(build)

    def filter(self, fn):
        """Forward the value only when ``fn(value)`` is truthy."""
        _require_callable(fn, "filter")

        def build(target):
            def stage(value, done):
                self._run(fn, (value,), lambda keep: done(partial(target.push, value) if keep else None))
            return stage

        return self._pipe(build)

    def reduce(self, fn, sink, initial=None):
        """
        Fold ``fn(accumulator, value)`` over every value and deliver the result to ``sink``
        after this queue closes.

        Args:
            fn (callable): Reducer, sync, coroutine or callback-style.
            sink (callable or str): Receives the final accumulator; a string names a queue to push it into.
            initial (Any): Starting accumulator.
        """
        _require_callable(fn, "reduce")

        def update(acc, value, advance):
            self._run(fn, (acc, value), advance)

        return self._accumulate(update, sink, initial, "reduce")

    def every(self, fn, sink):
        """
        Deliver True to ``sink`` if ``fn`` is truthy for every value. After the first falsy
        result ``fn`` is no longer called and the remaining values are discarded.
        """
        _require_callable(fn, "every")

        def update(verdict, value, advance):
            if not verdict:
                advance(False)
            else:
                self._run(fn, (value,), lambda result: advance(bool(result)))

        return self._accumulate(update, sink, True, "every")

    def some(self, fn, sink):
        """Deliver True to ``sink`` if ``fn`` is truthy for any value, short-circuiting like ``every``."""
        _require_callable(fn, "some")

        def update(verdict, value, advance):
            if verdict:
                advance(True)
            else:
                self._run(fn, (value,), lambda result: advance(bool(result)))

        return self._accumulate(update, sink, False, "some")

    def to_list(self, sink):
        """Deliver every value, in arrival order, as one list."""

        def update(items, value, advance):
            items.append(value)
            advance(items)

        return self._accumulate(update, sink, [], "to_list")

    def flatten(self, depth: int = None):
        """
        Unpack nested lists and tuples into individual values, up to ``depth`` levels
        (None for unbounded, 0 to pass values through untouched).
        """
        if depth is not None and (not isinstance(depth, int) or isinstance(depth, bool) or depth < 0):
            raise ValueError(f"flatten() depth must be a non-negative int or None, got {depth!r}")

        def build(target):
            def stage(value, done):
                done(partial(target.push, *_flatten(value, depth)))
            return stage

        return self._pipe(build)

    def branch(self, fn):
        """
        Push each value into the named queue(s) returned by ``fn(value)``. Destinations that
        received values are closed when this queue closes.
        """
        _require_callable(fn, "branch")
        destinations = {}

        def route(value, names):
            for name in names:
                if name not in destinations:
                    destinations[name] = self.manager.get_queue(name)
                destinations[name].push(value)

        def decide(value, done, result):
            try:
                names = _queue_names(result)
            except TypeError as e:
                self._fail(e)
                return
            done(partial(route, value, names))

        def build(target):
            def stage(value, done):
                self._run(fn, (value,), partial(decide, value, done))
            return stage

        def close_destinations():
            for queue in destinations.values():
                queue.close()

        target = self._pipe(build)
        self._on_closed(close_destinations)
        return target

    def chain(self, destinations):
        """
        Push every value into the named queue(s). Closing or killing this queue leaves the
        destinations untouched.
        """
        names = _queue_names(destinations)

        def build(target):
            def stage(value, done):
                done(partial(self._push_named, names, value))
            return stage

        return self._pipe(build)

    def exec(self, api_fn, on_error=None):
        """
        Call ``api_fn(*args, callback)`` where ``callback(error, result)`` reports the outcome.
        List and tuple values are spread into ``args``; any other value is the single argument.

        Args:
            api_fn (callable): Callback-convention function.
            on_error: What to do when ``error`` is not None:
                      falsy -> log and drop the value;
                      True -> discard the buffer and close this queue;
                      callable -> as True, then call ``on_error(error, result, args)``;
                      str -> push ``[error, result, args]`` into that named queue and continue.
        """
        _require_callable(api_fn, "exec")
        if on_error and not (on_error is True or isinstance(on_error, str) or callable(on_error)):
            raise TypeError(f"exec() on_error must be a bool, a queue name or a callable, got {type(on_error).__name__}.")

        def build(target):
            def stage(value, done):
                args = list(value) if isinstance(value, (list, tuple)) else [value]

                def callback(error=None, result=None):
                    if error is None:
                        done(partial(target.push, result))
                    else:
                        done(partial(self._exec_error, on_error, error, result, args))

                try:
                    api_fn(*args, callback)
                except Exception as e:
                    callback(e)
            return stage

        return self._pipe(build)

    def _pipe(self, build):
        self._ensure_free()
        target = self._spawn()
        self._attach(build(target))
        return target

    def _run(self, fn, args, on_result) -> None:
        def settle(error, result):
            if error is not None:
                self._fail(error)
            else:
                on_result(result)

        invoke(fn, args, settle)

    def _accumulate(self, update, sink, initial, operator: str):
        _require_sink(sink, operator)
        self._ensure_free()
        acc = initial

        def stage(value, done):
            def advance(result):
                nonlocal acc
                acc = result
                done()

            update(acc, value, advance)

        self._attach(stage, sequential=True)
        self._on_closed(lambda: self._deliver(sink, acc))
        return self

    def _deliver(self, sink, value) -> None:
        if isinstance(sink, str):
            self.manager.get_queue(sink).push(value)
        else:
            self._run(sink, (value,), lambda _result: None)

    def _push_named(self, names, value) -> None:
        for name in names:
            self.manager.get_queue(name).push(value)

    def _exec_error(self, policy, error, result, args) -> None:
        if not policy:
            logging.warning(f"Ignoring error from exec() on queue {self.label}: {error}")
        elif isinstance(policy, str):
            self.manager.get_queue(policy).push([error, result, args])
        else:
            logging.info(f"Closing queue {self.label} after exec() error: {error}")
            self.buffer.clear()
            self.close()
            if callable(policy):
                policy(error, result, args)
