"""Scoped handles to borrowed values, checked at run time.

A :class:`Scope` is opened with :func:`scope`.  While it is open it hands out
:class:`StackHandle` objects that refer to values owned by the caller.  Once
the scope closes every handle created through it becomes invalid.  After that
any access raises :class:`StackGoneError`.

While a handle is being accessed, the handled value can call :func:`reborrow`
on itself.  This hands out further handles into its own members that live as
long as the enclosing scope.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping, Sequence
from typing import Any, Callable, Optional, TypeVar

__all__ = [
    "StackGoneError",
    "ReborrowError",
    "StackHandle",
    "Scope",
    "reborrow",
    "can_reborrow",
    "scope",
]

R = TypeVar("R")

KIND_PLAIN = "plain"
KIND_SEQ = "seq"
KIND_STRUCT = "struct"

_counter = itertools.count()
_counter_lock = threading.Lock()


class _ThreadState(threading.local):
    def __init__(self) -> None:
        self.valid_ids: set[int] = set()
        self.current: Optional["StackHandle"] = None


_state = _ThreadState()


def _next_scope_id() -> int:
    with _counter_lock:
        return next(_counter)


class StackGoneError(RuntimeError):
    """Raised when a handle is used after its scope has closed."""


class ReborrowError(RuntimeError):
    """Raised when an object cannot be reborrowed."""


def _type_name(obj: Any) -> str:
    return type(obj).__qualname__


def _infer_kind(value: Any) -> str:
    kind = getattr(value, "kind", None)
    if kind in (KIND_PLAIN, KIND_SEQ, KIND_STRUCT):
        return kind
    if isinstance(value, Mapping) or hasattr(value, "get_field"):
        return KIND_STRUCT
    if (
        isinstance(value, Sequence) and not isinstance(value, (str, bytes))
    ) or hasattr(value, "get_item"):
        return KIND_SEQ
    return KIND_PLAIN


class StackHandle:
    """A reference to a value that is only usable while its scope is open."""

    __slots__ = ("_value", "_scope_id", "kind")

    def __init__(self, value: Any, scope_id: int, kind: str = KIND_PLAIN) -> None:
        self._value = value
        self._scope_id = scope_id
        self.kind = kind

    def is_valid(self) -> bool:
        """True while the scope that created this handle is still open."""
        return self._scope_id in _state.valid_ids

    def with_value(self, func: Callable[[Any], R]) -> R:
        """Call ``func`` with the referenced value.

        While ``func`` runs, the value may reborrow itself.
        """
        if not self.is_valid():
            raise StackGoneError("stack is gone")
        previous, _state.current = _state.current, self
        try:
            return func(self._value)
        finally:
            _state.current = previous

    # sequence protocol

    def get_item(self, index: int) -> Any:
        """Return the item at ``index``, or None when out of range."""

        def get(value: Any) -> Any:
            getter = getattr(value, "get_item", None)
            if getter is not None:
                return getter(index)
            if index < 0:
                return None
            try:
                return value[index]
            except (IndexError, KeyError, TypeError):
                return None

        return self.with_value(get)

    def item_count(self) -> int:
        """Return the number of items in the referenced sequence."""

        def count(value: Any) -> int:
            counter = getattr(value, "item_count", None)
            if counter is not None:
                return counter()
            return len(value)

        return self.with_value(count)

    # struct protocol

    def get_field(self, name: str) -> Any:
        """Return the field ``name``, or None when it does not exist."""

        def get(value: Any) -> Any:
            getter = getattr(value, "get_field", None)
            if getter is not None:
                return getter(name)
            if isinstance(value, Mapping):
                return value.get(name)
            return None

        return self.with_value(get)

    def fields(self) -> list[str]:
        """Return the known field names of the referenced struct."""

        def collect(value: Any) -> list[str]:
            lister = getattr(value, "fields", None)
            if callable(lister):
                return list(lister())
            static = getattr(value, "static_fields", None)
            if callable(static):
                names = static()
                if names is not None:
                    return list(names)
            if isinstance(value, Mapping):
                return [str(key) for key in value]
            return []

        return self.with_value(collect)

    def field_count(self) -> int:
        """Return the number of known fields."""

        def count(value: Any) -> int:
            counter = getattr(value, "field_count", None)
            if callable(counter):
                return counter()
            return len(self.fields())

        return self.with_value(count)

    # object protocol

    def call_method(self, name: str, *args: Any) -> Any:
        """Call the method ``name`` on the referenced value."""

        def call(value: Any) -> Any:
            dispatcher = getattr(value, "call_method", None)
            if dispatcher is not None:
                return dispatcher(name, *args)
            method = getattr(value, name, None)
            if method is None or not callable(method):
                raise AttributeError(
                    f"object has no method named {name}"
                )
            return method(*args)

        return self.with_value(call)

    def call(self, *args: Any) -> Any:
        """Call the referenced value."""

        def invoke(value: Any) -> Any:
            caller = getattr(value, "call", None)
            if caller is not None:
                return caller(*args)
            if not callable(value):
                raise TypeError(f"{_type_name(value)} is not callable")
            return value(*args)

        return self.with_value(invoke)

    def __str__(self) -> str:
        return self.with_value(str)

    def __repr__(self) -> str:
        return self.with_value(repr)


class Scope:
    """An open scope; handles made from it die when it closes."""

    def __init__(self, scope_id: Optional[int] = None, owns: bool = True) -> None:
        if scope_id is None:
            scope_id = _next_scope_id()
        self._id = scope_id
        self._owns = False
        if owns and scope_id not in _state.valid_ids:
            _state.valid_ids.add(scope_id)
            self._owns = True

    @property
    def id(self) -> int:
        """The numeric identity of this scope."""
        return self._id

    def handle(self, value: Any) -> StackHandle:
        """Create a plain handle to ``value``."""
        return StackHandle(value, self._id)

    def object_ref(self, value: Any) -> StackHandle:
        """Create a handle whose kind follows the shape of ``value``."""
        return StackHandle(value, self._id, _infer_kind(value))

    def seq_object_ref(self, value: Any) -> StackHandle:
        """Create a handle that behaves as a sequence."""
        return StackHandle(value, self._id, KIND_SEQ)

    def struct_object_ref(self, value: Any) -> StackHandle:
        """Create a handle that behaves as a struct."""
        return StackHandle(value, self._id, KIND_STRUCT)

    def close(self) -> None:
        """Invalidate every handle created through this scope."""
        if self._owns:
            _state.valid_ids.discard(self._id)
            self._owns = False

    def __enter__(self) -> "Scope":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Scope(id={self._id})"


def _current_handle_for(obj: Any) -> Optional[StackHandle]:
    handle = _state.current
    if handle is None or handle._value is not obj:
        return None
    return handle


def reborrow(obj: Any, func: Callable[[Any, Scope], R]) -> R:
    """Call ``func(obj, scope)`` with the scope of the handle that holds ``obj``.

    Only works while ``obj`` is being accessed through a handle.
    """
    handle = _state.current
    if handle is None:
        raise ReborrowError(
            f"cannot reborrow {_type_name(obj)} because there is no handle on the stack"
        )
    if handle._value is not obj:
        raise ReborrowError(
            f"cannot reborrow {_type_name(obj)} as it's not held in an active stack handle"
        )
    if not handle.is_valid():
        raise StackGoneError(
            f"cannot reborrow {_type_name(obj)} because stack is gone"
        )
    return func(handle._value, Scope(handle._scope_id, owns=False))


def can_reborrow(obj: Any) -> bool:
    """True if :func:`reborrow` would succeed for ``obj`` right now."""
    handle = _current_handle_for(obj)
    return handle is not None and handle.is_valid()


def scope(func: Callable[[Scope], R]) -> R:
    """Open a scope, call ``func`` with it and close it afterwards."""
    with Scope() as current:
        return func(current)