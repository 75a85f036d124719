"""FieldStore — a table of independently observable fields.

Every field is backed by one ValueHolder. set() applies a batch of updates:
it diffs against current values, bumps a version counter per changed field,
drops every cached snapshot reader that covers a changed field, and only then
pushes the new values to subscribers and registered callbacks.

Derived fields are computed from other fields and recompute synchronously
when any dependency emits. Registered callbacks are deduplicated by an
identity tag, so re-registering a re-created callback replaces it in place.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Iterator, Mapping

from fieldrx import operators
from fieldrx._scheduling import dispatch
from fieldrx.hashing import hash_function
from fieldrx.observable import Subscription, ValueHolder
from fieldrx.operators import same_value, shallow_equal

logger = logging.getLogger("fieldrx.store")

Callback = Callable[[Any], None]
Cleanup = Callable[[], None]

_UNSET = object()


def setter_name(key: str) -> str:
    """Name of the generated setter for key: "age" -> "set_age"."""
    return f"set_{key}"


def cache_key_for(keys: Iterable[str]) -> str:
    """Cache key for a field set: one field -> "field:a", more -> "fields:a,b"."""
    keys = sorted(keys)
    if len(keys) == 1:
        return f"field:{keys[0]}"
    return "fields:" + ",".join(keys)


class CacheEntry:
    """A memoized snapshot reader and the field versions it was built against."""

    __slots__ = ("fields", "versions", "snapshot", "mapping_snapshot")

    def __init__(self, versions: dict[str, int], snapshot: Callable[[], Any]) -> None:
        self.fields = frozenset(versions)
        self.versions = versions
        self.snapshot = snapshot
        # dict-shaped reader for a one-field get_snapshot_fields() request
        self.mapping_snapshot: Callable[[], dict[str, Any]] | None = None

    def __repr__(self) -> str:
        return f"CacheEntry({self.versions!r})"


class _CallbackRecord:
    __slots__ = ("callback_id", "callback")

    def __init__(self, callback_id: str, callback: Callback) -> None:
        self.callback_id = callback_id
        self.callback = callback


class Setters:
    """Generated per-field setters, reachable as attributes or by name."""

    def __init__(self) -> None:
        self._fns: dict[str, Callable[[Any], None]] = {}

    def _add(self, name: str, fn: Callable[[Any], None]) -> None:
        self._fns[name] = fn

    def __getattr__(self, name: str) -> Callable[[Any], None]:
        try:
            return self.__dict__["_fns"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, name: str) -> Callable[[Any], None]:
        return self._fns[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fns

    def __iter__(self) -> Iterator[str]:
        return iter(self._fns)

    def __len__(self) -> int:
        return len(self._fns)

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self._fns))

    def __repr__(self) -> str:
        return f"Setters({', '.join(self._fns)})"


class FieldStore:
    """Reactive field table with batched updates and snapshot caching.

    Usage:
        store = FieldStore({"name": "John", "age": 30})
        store.derived("full_info", ["name", "age"],
                      lambda v: f"{v['name']} is {v['age']}")

        store.register("name", lambda name: print("name ->", name))
        store.set({"name": "Jane", "age": 30})   # only "name" fires
        store.get("full_info")                   # "Jane is 30"
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._subjects: dict[str, ValueHolder] = {}
        self._versions: dict[str, int] = {}
        self._callbacks: dict[str, list[_CallbackRecord]] = {}
        self._cache: dict[str, CacheEntry] = {}
        self._derived: dict[str, Subscription] = {}
        self.setters = Setters()

        for key, value in (initial or {}).items():
            self._subjects[key] = ValueHolder(value)
            self._versions[key] = 0
            self.setters._add(setter_name(key), self._make_setter(key))

    def _make_setter(self, key: str) -> Callable[[Any], None]:
        def _setter(value: Any) -> None:
            self.set({key: value})

        _setter.__name__ = setter_name(key)
        return _setter

    def _holder(self, key: str) -> ValueHolder:
        try:
            return self._subjects[key]
        except KeyError:
            raise KeyError(f"Unknown field {key!r}") from None

    # --- Reads ---

    def get(self, key: str) -> Any:
        return self._holder(key).get_value()

    def get_all(self) -> dict[str, Any]:
        return {key: holder.get_value() for key, holder in self._subjects.items()}

    def _pick(self, keys: Iterable[str]) -> dict[str, Any]:
        return {key: self.get(key) for key in keys}

    def keys(self) -> list[str]:
        return list(self._subjects)

    def __contains__(self, key: object) -> bool:
        return key in self._subjects

    def is_derived(self, key: str) -> bool:
        return key in self._derived

    def field_version(self, key: str) -> int:
        """Number of accepted changes to key so far (0 for unknown keys)."""
        return self._versions.get(key, 0)

    def observable(self, key: str) -> ValueHolder:
        """The field's ValueHolder, for direct subscription."""
        return self._holder(key)

    def serialize(self) -> dict[str, Any]:
        """Current state as a plain dict, for handing to a client process."""
        return self.get_all()

    # --- Writes ---

    def set(self, partial: Mapping[str, Any], *, marshal: bool = True) -> None:
        """Apply a batch of field updates.

        Unknown and derived keys are ignored. Values that are the same (see
        operators.same_value) as the current ones are not changes. When
        nothing changed, nothing else happens.

        With marshal=False the batch is applied on the calling thread even
        when a scheduler is set, so the update is visible on return.
        """
        partial = dict(partial)
        if not marshal:
            self._apply(partial)
            return
        dispatch(lambda: self._apply(partial))

    def hydrate(self, partial: Mapping[str, Any], *, marshal: bool = True) -> None:
        """Apply server-produced state. Same as set()."""
        self.set(partial, marshal=marshal)

    def _apply(self, partial: dict[str, Any]) -> None:
        changed = [
            key
            for key, value in partial.items()
            if key in self._subjects
            and key not in self._derived
            and not same_value(self._subjects[key].get_value(), value)
        ]
        if not changed:
            return

        logger.debug("set: %d changed field(s) %s", len(changed), changed)

        # Every changed field is invalidated before any of them notifies.
        for key in changed:
            self._bump(key)

        for key in changed:
            value = partial[key]
            self._subjects[key].next(value)
            self._fire_callbacks(key, value)

    def _bump(self, key: str) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1
        self._invalidate(key)

    def _invalidate(self, key: str) -> None:
        stale = [cache_key for cache_key, entry in self._cache.items() if key in entry.fields]
        for cache_key in stale:
            del self._cache[cache_key]
        if stale:
            logger.debug("invalidated %s for field %r", stale, key)

    def _fire_callbacks(self, key: str, value: Any) -> None:
        for record in list(self._callbacks.get(key, ())):
            try:
                record.callback(value)
            except Exception:
                logger.exception("Callback error for field %r", key)

    # --- Snapshot cache ---

    def get_snapshot_field(self, key: str) -> Callable[[], Any]:
        """Memoized zero-arg reader for one field."""
        return self._field_entry(key).snapshot

    def _field_entry(self, key: str) -> CacheEntry:
        cache_key = cache_key_for([key])
        entry = self._cache.get(cache_key)
        if entry is not None:
            return entry

        self._holder(key)
        cached: Any = _UNSET

        def _snapshot() -> Any:
            nonlocal cached
            current = self.get(key)
            if cached is _UNSET or not same_value(cached, current):
                cached = current
            return cached

        entry = CacheEntry({key: self._versions[key]}, _snapshot)
        self._cache[cache_key] = entry
        return entry

    def get_snapshot_fields(self, keys: Iterable[str]) -> Callable[[], dict[str, Any]]:
        """Memoized zero-arg reader for several fields.

        The reader returns the same dict object for as long as the values it
        holds are shallow-equal to the current ones.
        """
        keys = list(dict.fromkeys(keys))
        if len(keys) == 1:
            entry = self._field_entry(keys[0])
            if entry.mapping_snapshot is None:
                entry.mapping_snapshot = self._mapping_reader(keys)
            return entry.mapping_snapshot

        cache_key = cache_key_for(keys)
        entry = self._cache.get(cache_key)
        if entry is None:
            for key in keys:
                self._holder(key)
            entry = CacheEntry(
                {key: self._versions[key] for key in keys},
                self._mapping_reader(keys),
            )
            self._cache[cache_key] = entry
        return entry.snapshot

    def _mapping_reader(self, keys: list[str]) -> Callable[[], dict[str, Any]]:
        cached: dict[str, Any] | None = None

        def _snapshot() -> dict[str, Any]:
            nonlocal cached
            result = self._pick(keys)
            if cached is None or not shallow_equal(cached, result):
                cached = result
            return cached

        return _snapshot

    def cache_keys(self) -> list[str]:
        return list(self._cache)

    # --- Change subscriptions ---

    def subscribe_field(self, key: str, listener: Callable[[], None]) -> Subscription:
        """Call listener() whenever key takes a different value."""
        return (
            self._holder(key)
            .pipe(operators.distinct_until_changed(), operators.skip(1))
            .subscribe(lambda _value: listener())
        )

    def subscribe_fields(self, keys: Iterable[str], listener: Callable[[], None]) -> Subscription:
        """Call listener() whenever any of keys takes a different value."""
        keys = list(dict.fromkeys(keys))
        streams = [
            self._holder(key).pipe(operators.distinct_until_changed()) for key in keys
        ]
        return (
            operators.combine_latest(streams)
            .pipe(
                operators.map(lambda values: dict(zip(keys, values))),
                operators.distinct_until_changed(shallow_equal),
                operators.skip(1),
            )
            .subscribe(lambda _value: listener())
        )

    # --- Side-effect registration ---

    def register(self, key: str, callback: Callback) -> Cleanup:
        """Register a side effect for key, deduplicated by callback content.

        Returns a cleanup callable. Registering a callback whose body and
        captured values match an existing one replaces it and returns a no-op.
        """
        return self.register_with_id(key, hash_function(callback), callback)

    def register_with_id(self, key: str, callback_id: str, callback: Callback) -> Cleanup:
        """Register a side effect for key under an explicit identity tag."""
        records = self._callbacks.setdefault(key, [])
        for index, record in enumerate(records):
            if record.callback_id == callback_id:
                records[index] = _CallbackRecord(callback_id, callback)
                # the first registration's cleanup stays authoritative
                return lambda: None

        records.append(_CallbackRecord(callback_id, callback))
        return Subscription(lambda: self.unregister_by_id(key, callback_id)).unsubscribe

    def unregister_by_id(self, key: str, callback_id: str) -> bool:
        records = self._callbacks.get(key)
        if not records:
            return False
        for index, record in enumerate(records):
            if record.callback_id == callback_id:
                del records[index]
                return True
        return False

    def unregister(self, key: str, callback: Callback) -> bool:
        records = self._callbacks.get(key)
        if not records:
            return False
        for index, record in enumerate(records):
            if record.callback is callback:
                del records[index]
                return True
        return False

    def callback_count(self, key: str) -> int:
        return len(self._callbacks.get(key, ()))

    # --- Derived fields ---

    def derived(
        self,
        key: str,
        deps: Iterable[str],
        compute: Callable[[dict[str, Any]], Any],
    ) -> FieldStore:
        """Add a field computed from deps. Returns this store for chaining.

        compute receives a dict of the dependency values. Dependencies must
        already exist, so derived fields always form an acyclic graph. A
        recomputation that yields the same value is not a change.
        """
        if key in self._subjects:
            raise ValueError(f"Key {key!r} already exists")
        deps = list(deps)
        sources = [self._holder(dep) for dep in deps]

        holder = ValueHolder(compute(self._pick(deps)))
        self._subjects[key] = holder
        self._versions[key] = 0

        def _recompute(values: list[Any]) -> None:
            new_value = compute(dict(zip(deps, values)))
            if same_value(holder.get_value(), new_value):
                return
            self._bump(key)
            holder.next(new_value)
            self._fire_callbacks(key, new_value)

        # The first combined emission replays the values compute just saw.
        self._derived[key] = (
            operators.combine_latest(sources)
            .pipe(operators.skip(1))
            .subscribe(_recompute)
        )
        return self

    def __repr__(self) -> str:
        return f"FieldStore({self.get_all()!r})"
