"""Operators and comparisons over Observables.

Each operator returns a function from Observable to Observable, so they
compose through Observable.pipe(). Emission is synchronous throughout.

Note: this module defines map and filter; the builtins are not used here.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any, Callable, Sequence, TypeVar

from fieldrx.observable import Observable, Observer, Operator, notify

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger("fieldrx.operators")

# Compared by value; every other type compares by identity.
_SCALAR_TYPES = (bool, int, float, complex, str, bytes, type(None))


def same_value(a: Any, b: Any) -> bool:
    """Strict same-value identity.

    Scalars compare by exact type and value, everything else by identity.
    NaN is the same as NaN, 0.0 is not the same as -0.0.

    Only bool, int, float, complex, str, bytes and None count as scalars.
    Immutable values such as tuple, frozenset, Decimal or datetime still
    compare by identity, so an equal but distinct instance is a change.
    """
    if a is b:
        return True
    if type(a) is not type(b) or not isinstance(a, _SCALAR_TYPES):
        return False
    if isinstance(a, float):
        if math.isnan(a):
            return math.isnan(b)
        return a == b and math.copysign(1.0, a) == math.copysign(1.0, b)
    if isinstance(a, complex):
        return same_value(a.real, b.real) and same_value(a.imag, b.imag)
    return a == b


def shallow_equal(a: Any, b: Any) -> bool:
    """same_value, or two mappings whose keys match and values are same_value."""
    if same_value(a, b):
        return True
    if not isinstance(a, Mapping) or not isinstance(b, Mapping):
        return False
    if len(a) != len(b):
        return False
    for key, value in a.items():
        if key not in b or not same_value(value, b[key]):
            return False
    return True


def map(project: Callable[[T], R]) -> Operator:
    """Emit project(value) for each upstream value.

    A projection that raises is logged and that emission is dropped.
    """

    def _operator(source: Observable[T]) -> Observable[R]:
        def _subscribe(observer: Observer[R]):
            def _on_value(value: T) -> None:
                try:
                    result = project(value)
                except Exception:
                    logger.exception("Map projection error")
                    return
                notify(observer, result)

            return source.subscribe(_on_value).unsubscribe

        return Observable(_subscribe)

    return _operator


def filter(predicate: Callable[[T], bool]) -> Operator:
    """Only pass values where predicate(value) is true."""

    def _operator(source: Observable[T]) -> Observable[T]:
        def _subscribe(observer: Observer[T]):
            def _on_value(value: T) -> None:
                try:
                    passed = predicate(value)
                except Exception:
                    logger.exception("Filter predicate error")
                    return
                if passed:
                    notify(observer, value)

            return source.subscribe(_on_value).unsubscribe

        return Observable(_subscribe)

    return _operator


def skip(count: int) -> Operator:
    """Drop the first count values, pass the rest."""

    def _operator(source: Observable[T]) -> Observable[T]:
        def _subscribe(observer: Observer[T]):
            remaining = [count]

            def _on_value(value: T) -> None:
                if remaining[0] > 0:
                    remaining[0] -= 1
                    return
                notify(observer, value)

            return source.subscribe(_on_value).unsubscribe

        return Observable(_subscribe)

    return _operator


def distinct_until_changed(
    compare: Callable[[T, T], bool] = same_value,
) -> Operator:
    """Emit the first value, then only values where compare(previous, current) is false."""

    def _operator(source: Observable[T]) -> Observable[T]:
        def _subscribe(observer: Observer[T]):
            has_value = False
            last: Any = None

            def _on_value(value: T) -> None:
                nonlocal has_value, last
                if has_value and compare(last, value):
                    return
                has_value = True
                last = value
                notify(observer, value)

            return source.subscribe(_on_value).unsubscribe

        return Observable(_subscribe)

    return _operator


def combine_latest(sources: Sequence[Observable[Any]]) -> Observable[list[Any]]:
    """Emit a list of every source's latest value.

    Nothing is emitted until each source has emitted once; after that every
    emission from any source produces a new list. The list follows input
    order. An empty sequence never emits.
    """
    sources = list(sources)

    def _subscribe(observer: Observer[list[Any]]):
        if not sources:
            return lambda: None

        values: list[Any] = [None] * len(sources)
        seen = [False] * len(sources)
        subscriptions = []

        def _make_listener(index: int) -> Observer[Any]:
            def _on_value(value: Any) -> None:
                values[index] = value
                seen[index] = True
                if all(seen):
                    notify(observer, list(values))

            return _on_value

        for index, source in enumerate(sources):
            subscriptions.append(source.subscribe(_make_listener(index)))

        def _teardown() -> None:
            for subscription in subscriptions:
                subscription.unsubscribe()

        return _teardown

    return Observable(_subscribe)
