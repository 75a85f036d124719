"""Callback identity tags for register() deduplication.

Two callbacks with the same body and the same captured values get the same
tag, so re-creating a callback and registering it again replaces the earlier
registration instead of stacking a duplicate. Source location is not part of
the tag: two textually identical lambdas written on different lines match.

Callables without inspectable code get a tag bound to the object itself,
handed out once from a process-wide counter and held through a weak mapping.
"""

from __future__ import annotations

import functools
import hashlib
import itertools
import types
import weakref
from typing import Any, Callable

_SCALAR_TYPES = (bool, int, float, complex, str, bytes, type(None))

_identity_ids: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
_id_counter = itertools.count(1)


def hash_function(fn: Callable[..., Any]) -> str:
    """Return the identity tag for fn.

    Mock doubles are special-cased so tests can count calls per instance:
    a bare Mock is unique per object, a Mock with a callable side_effect is
    tagged by that implementation.
    """
    if _is_mock(fn):
        impl = fn.side_effect
        if callable(impl) and not isinstance(impl, type):
            return hash_function(impl)
        return f"mock_{_identity_id(fn)}"

    token = _structure(fn)
    if token is None:
        return f"obj_{_identity_id(fn)}"
    return f"fn_{_digest(token)}"


def _is_mock(fn: Any) -> bool:
    # Mock auto-creates attributes on access, so look at the instance dict.
    return "_mock_children" in (getattr(fn, "__dict__", None) or {})


def _structure(fn: Any) -> tuple | None:
    if isinstance(fn, types.MethodType):
        inner = _structure(fn.__func__)
        if inner is None:
            return None
        return ("method", inner, _value_token(fn.__self__))
    if isinstance(fn, functools.partial):
        inner = _structure(fn.func)
        if inner is None:
            return None
        args = tuple(_value_token(a) for a in fn.args)
        kwargs = tuple(sorted((k, _value_token(v)) for k, v in fn.keywords.items()))
        return ("partial", inner, args, kwargs)
    if isinstance(fn, types.FunctionType):
        return (
            "function",
            _code_token(fn.__code__),
            tuple(_value_token(d) for d in fn.__defaults__ or ()),
            tuple(sorted((k, _value_token(v)) for k, v in (fn.__kwdefaults__ or {}).items())),
            tuple(_cell_token(c) for c in fn.__closure__ or ()),
        )
    return None


def _code_token(code: types.CodeType) -> tuple:
    consts = tuple(
        _code_token(c) if isinstance(c, types.CodeType) else repr(c)
        for c in code.co_consts
    )
    return (
        code.co_code,
        consts,
        code.co_names,
        code.co_varnames,
        code.co_freevars,
        code.co_argcount,
        code.co_kwonlyargcount,
    )


def _cell_token(cell: types.CellType) -> Any:
    try:
        contents = cell.cell_contents
    except ValueError:
        return "<empty>"
    return _value_token(contents)


def _value_token(value: Any) -> Any:
    # Scalars by value, everything else by object identity.
    if isinstance(value, _SCALAR_TYPES):
        return (type(value).__name__, repr(value))
    return ("ref", id(value))


def _identity_id(obj: Any) -> int:
    try:
        ident = _identity_ids.get(obj)
    except TypeError:
        # not weak-referenceable or unhashable
        return id(obj)
    if ident is None:
        ident = next(_id_counter)
        _identity_ids[obj] = ident
    return ident


def _digest(token: tuple) -> str:
    return hashlib.blake2b(repr(token).encode(), digest_size=8).hexdigest()
