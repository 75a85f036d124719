"""Textual integration for fieldrx. Opt-in — requires textual.

Binds store fields to widget updates through the store's pull/subscribe
contract: a snapshot reader for the current value and a change subscription
that says when to read it again. The App is passed in by the caller; the
core package never imports Textual.
"""

import threading
from contextlib import contextmanager

from textual.css.query import NoMatches

# Module-owned pause state, keyed by id(app) so multiple apps work in tests.
_paused_apps: set[int] = set()


@contextmanager
def pause(app):
    """Suspend bound effects during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def _bind(app, read, subscribe, effect, fire_immediately):
    _main = threading.get_ident()

    def _guarded():
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe)
        else:
            _safe()

    def _safe():
        try:
            effect(read())
        except NoMatches:
            pass

    subscription = subscribe(_guarded)
    if fire_immediately:
        _guarded()
    return subscription


def bind_field(app, store, key, effect, *, fire_immediately=True):
    """Call effect(value) with key's value now and on every change.

    Guards against firing during pause/not-running, catches NoMatches
    from widget queries, and marshals cross-thread calls via call_from_thread.
    Returns the Subscription; unsubscribe() stops the binding.
    """
    return _bind(
        app,
        lambda: store.get_snapshot_field(key)(),
        lambda listener: store.subscribe_field(key, listener),
        effect,
        fire_immediately,
    )


def bind_fields(app, store, keys, effect, *, fire_immediately=True):
    """Call effect(values) with a dict of keys' values now and on every change."""
    keys = list(keys)
    return _bind(
        app,
        lambda: store.get_snapshot_fields(keys)(),
        lambda listener: store.subscribe_fields(keys, listener),
        effect,
        fire_immediately,
    )


def bind_store(app, store, effect, *, fire_immediately=True):
    """bind_fields() over every field the store has at bind time."""
    return bind_fields(app, store, store.keys(), effect, fire_immediately=fire_immediately)
