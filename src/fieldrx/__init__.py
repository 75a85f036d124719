"""fieldrx: a small reactive field store for Python."""

from importlib.metadata import version as _version

__version__ = _version("fieldrx")

from fieldrx._scheduling import set_scheduler
from fieldrx.observable import Observable, ObjectClosedError, Subscription, ValueHolder
from fieldrx.operators import (
    combine_latest,
    distinct_until_changed,
    same_value,
    shallow_equal,
)
from fieldrx.hashing import hash_function
from fieldrx.store import CacheEntry, FieldStore
from fieldrx.factories import create_field_store, create_ssr_store, initialize_server_store
# textual NOT auto-imported — opt-in only

__all__ = [
    "Observable",
    "ObjectClosedError",
    "Subscription",
    "ValueHolder",
    "combine_latest",
    "distinct_until_changed",
    "same_value",
    "shallow_equal",
    "hash_function",
    "CacheEntry",
    "FieldStore",
    "create_field_store",
    "create_ssr_store",
    "initialize_server_store",
    "set_scheduler",
]
