"""Construction helpers for server-rendered and client-hydrated stores."""

from __future__ import annotations

from typing import Any, Mapping

from fieldrx.store import FieldStore


def create_field_store(initial: Mapping[str, Any]) -> FieldStore:
    return FieldStore(initial)


def create_ssr_store(
    initial: Mapping[str, Any],
    server_state: Mapping[str, Any] | None = None,
    *,
    is_server: bool = False,
) -> FieldStore:
    """Create a store and, on the client, hydrate it with server_state.

    The server keeps its initial state; server_state is only applied when
    is_server is false. Hydration happens on the calling thread.
    """
    store = FieldStore(initial)
    if server_state and not is_server:
        store.hydrate(server_state, marshal=False)
    return store


def initialize_server_store(store: FieldStore, server_data: Mapping[str, Any]) -> dict[str, Any]:
    """Apply server_data to store and return the serialized result."""
    store.set(server_data, marshal=False)
    return store.serialize()
