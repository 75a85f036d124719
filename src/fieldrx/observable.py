"""Push sources — the primitives every store field is built on.

An Observable wraps a subscribe function. Subscribing hands it an observer
(a plain callable taking one value) and gets back a Subscription whose
unsubscribe() tears the observer down exactly once.

A ValueHolder is an Observable that keeps its current value and replays it
to every new subscriber. Each store field owns exactly one.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")

Observer = Callable[[T], None]
Teardown = Callable[[], None]
Operator = Callable[["Observable[Any]"], "Observable[Any]"]

logger = logging.getLogger("fieldrx.observable")


class ObjectClosedError(RuntimeError):
    """Raised when reading a ValueHolder that has been completed."""


def _noop() -> None:
    pass


class Subscription:
    """Handle for one observer registration. unsubscribe() is idempotent."""

    __slots__ = ("_teardown", "_closed")

    def __init__(self, teardown: Teardown | None = None) -> None:
        self._teardown = teardown or _noop
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        teardown, self._teardown = self._teardown, _noop
        teardown()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active"
        return f"Subscription({state})"


class Observable(Generic[T]):
    """A push source built from a subscribe function.

    subscribe_fn(observer) registers the observer and returns a teardown
    callable. Operators in fieldrx.operators each build a new Observable
    around an upstream one, so chains compose with pipe():

        holder.pipe(distinct_until_changed(), map(str)).subscribe(print)
    """

    def __init__(self, subscribe_fn: Callable[[Observer[T]], Teardown]) -> None:
        self._subscribe_fn = subscribe_fn

    def subscribe(self, observer: Observer[T]) -> Subscription:
        """Register observer. Returns a Subscription for removal."""
        return Subscription(self._subscribe_fn(observer))

    def pipe(self, *operators: Operator) -> Observable[Any]:
        """Apply operators left to right."""
        return functools.reduce(lambda source, op: op(source), operators, self)


def notify(observer: Observer[T], value: T) -> None:
    """Call one observer, logging instead of raising if it fails."""
    try:
        observer(value)
    except Exception:
        logger.exception("Observer error")


class ValueHolder(Observable[T]):
    """Observable that retains its current value and replays it on subscribe.

    next() pushes synchronously to every observer, in subscription order,
    over a snapshot of the observer list. error() and complete() are terminal:
    observers are dropped and later writes are ignored.
    """

    def __init__(self, value: T) -> None:
        super().__init__(self._add_observer)
        self._value = value
        self._observers: list[Observer[T]] = []
        self._has_error = False
        self._thrown_error: BaseException | None = None
        self._is_stopped = False

    def _add_observer(self, observer: Observer[T]) -> Teardown:
        if self._has_error:
            raise self._thrown_error
        if self._is_stopped:
            return _noop

        self._observers.append(observer)
        notify(observer, self._value)

        def _remove() -> None:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass  # holder already terminated

        return _remove

    def subscribe(self, observer: Observer[T]) -> Subscription:
        subscription = super().subscribe(observer)
        if self._is_stopped:
            subscription.unsubscribe()
        return subscription

    def get_value(self) -> T:
        """Current value. Raises once the holder is errored or completed."""
        if self._has_error:
            raise self._thrown_error
        if self._is_stopped:
            raise ObjectClosedError("Object is closed")
        return self._value

    @property
    def value(self) -> T:
        return self.get_value()

    def next(self, value: T) -> None:
        if self._is_stopped:
            return
        self._value = value
        for observer in list(self._observers):
            notify(observer, value)

    def error(self, error: BaseException) -> None:
        if self._is_stopped:
            return
        self._has_error = True
        self._thrown_error = error
        self._is_stopped = True
        self._observers.clear()

    def complete(self) -> None:
        if self._is_stopped:
            return
        self._is_stopped = True
        self._observers.clear()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def __repr__(self) -> str:
        if self._has_error:
            return f"ValueHolder(error={self._thrown_error!r})"
        if self._is_stopped:
            return "ValueHolder(closed)"
        return f"ValueHolder({self._value!r})"
