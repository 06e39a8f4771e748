"""
The language's own value types: Struct, Array, class instances and the
generic metadata wrapper.

Each implements the Referenceable protocol, so the dispatcher hands lookups
on them straight back to these classes.
"""
import collections.abc
from abc import abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from boxref.boxref_datatypes import ABSENT, Key, Referenceable
from boxref.boxref_errors import (
    BoxRuntimeError, BoxValidationError, KeyNotFoundError,
    format_keys, render, type_name,
)
from boxref.boxref_functions import call_function


# =================================================================
# Index validation shared by every 1-based sequence
# =================================================================

def index_for_dereference(key: Key, size: int, safe: bool) -> Optional[int]:
    """Returns the 1-based index for a read, or None when a safe read misses."""
    index = key.int_value
    if index is None:
        if safe:
            return None
        raise BoxValidationError(render("index_not_numeric", name=key.name))
    if index < 1 or index > size:
        if safe:
            return None
        raise BoxValidationError(render("index_out_of_bounds", index=index, size=size))
    return index


def index_for_assign(key: Key, size: int, fixed: bool) -> int:
    """Returns the 1-based index for a write. Only growable sequences may write past the end."""
    index = key.int_value
    if index is None:
        raise BoxValidationError(render("index_not_numeric", name=key.name))
    if index < 1:
        raise BoxValidationError(render("index_below_one", index=index))
    if fixed and index > size:
        raise BoxValidationError(render("index_out_of_bounds", index=index, size=size))
    return index


def _member_method(context, key: Key, target):
    if context is None:
        return None
    functions = context.get_function_service()
    if functions is None:
        return None
    return functions.get_member_method(key, target)


def _invoke_value(context, owner, key: Key, value: Any, args) -> Any:
    if value is ABSENT:
        return ABSENT
    if not callable(value):
        raise BoxRuntimeError(render("not_a_function", name=key.name, type=type_name(type(owner))))
    return call_function(value, context, args)


# =================================================================
# Struct
# =================================================================

class Struct(collections.abc.MutableMapping, Referenceable):
    """An ordered map with case-insensitive keys.

    Iteration yields the original key names.
    """
    def __init__(self, data: Optional[collections.abc.Mapping] = None, **kwargs):
        self._data: Dict[Key, Any] = {}
        if data is not None:
            for k, v in data.items():
                self[k] = v
        for k, v in kwargs.items():
            self[k] = v
        self._box_meta = None

    @classmethod
    def of(cls, *pairs: Any) -> 'Struct':
        """Struct.of("a", 1, "b", 2)"""
        if len(pairs) % 2:
            raise BoxValidationError("Struct.of expects an even number of arguments")
        s = cls()
        for i in range(0, len(pairs), 2):
            s[pairs[i]] = pairs[i + 1]
        return s

    def __getitem__(self, key):
        return self._data[Key.of(key)]

    def __setitem__(self, key, value):
        # Rebinding an equal key keeps the dict's original Key, so the
        # casing of the first write survives.
        self._data[Key.of(key)] = value

    def __delitem__(self, key):
        del self._data[Key.of(key)]

    def __contains__(self, key):
        try:
            return Key.of(key) in self._data
        except TypeError:
            return False

    def __iter__(self):
        return (k.name for k in self._data)

    def __len__(self):
        return len(self._data)

    def __eq__(self, other):
        if isinstance(other, Struct):
            return self._data == other._data
        if isinstance(other, collections.abc.Mapping):
            return self._data == {Key.of(k): v for k, v in other.items()}
        return NotImplemented

    __hash__ = None

    def key_names(self) -> List[str]:
        return [k.name for k in self._data]

    def get_box_meta(self):
        if self._box_meta is None:
            self._box_meta = GenericMeta(self)
        return self._box_meta

    # --- Referenceable ---
    def assign(self, context, key: Key, value: Any) -> Any:
        self[key] = value
        return value

    def dereference(self, context, key: Key, safe: bool = False) -> Any:
        if key == Key.box_meta:
            return self.get_box_meta()
        if key in self._data:
            return self._data[key]
        if safe:
            return ABSENT
        raise KeyNotFoundError(
            render("struct_key_missing", name=key.name, keys=format_keys(self.key_names())),
            keys=self.key_names(),
            target=self,
        )

    def dereference_and_invoke(self, context, key: Key, args, safe: bool = False) -> Any:
        member = _member_method(context, key, self)
        if member is not None:
            return member.invoke(context, self, args)
        if key == Key.key_array:
            return Array(self.key_names())
        return _invoke_value(context, self, key, self.dereference(context, key, safe), args)

    def __repr__(self):
        inner = ", ".join(f"{k.name}: {v!r}" for k, v in self._data.items())
        return f"Struct{{{inner}}}"


# =================================================================
# Array
# =================================================================

class Array(collections.abc.MutableSequence, Referenceable):
    """A growable sequence addressed with 1-based indexes by scripts.

    The Python sequence protocol (__getitem__ etc.) stays 0-based.
    """
    def __init__(self, items: Optional[Iterable[Any]] = None):
        self._items: List[Any] = list(items) if items is not None else []
        self._box_meta = None

    def __getitem__(self, index):
        return self._items[index]

    def __setitem__(self, index, value):
        self._items[index] = value

    def __delitem__(self, index):
        del self._items[index]

    def __len__(self):
        return len(self._items)

    def insert(self, index, value):
        self._items.insert(index, value)

    def __eq__(self, other):
        if isinstance(other, Array):
            return self._items == other._items
        if isinstance(other, list):
            return self._items == other
        return NotImplemented

    __hash__ = None

    def get_box_meta(self):
        if self._box_meta is None:
            self._box_meta = GenericMeta(self)
        return self._box_meta

    # --- Referenceable ---
    def assign(self, context, key: Key, value: Any) -> Any:
        index = index_for_assign(key, len(self._items), fixed=False)
        while len(self._items) < index:
            self._items.append(ABSENT)
        self._items[index - 1] = value
        return value

    def dereference(self, context, key: Key, safe: bool = False) -> Any:
        if key == Key.box_meta:
            return self.get_box_meta()
        if key == Key.length:
            return len(self._items)
        index = index_for_dereference(key, len(self._items), safe)
        if index is None:
            return ABSENT
        return self._items[index - 1]

    def dereference_and_invoke(self, context, key: Key, args, safe: bool = False) -> Any:
        member = _member_method(context, key, self)
        if member is not None:
            return member.invoke(context, self, args)
        return _invoke_value(context, self, key, self.dereference(context, key, safe), args)

    def __repr__(self):
        return f"Array({self._items!r})"


# =================================================================
# Metadata
# =================================================================

class GenericMeta:
    """Metadata wrapper for values that do not describe themselves."""
    target: Any
    meta: Struct

    def __init__(self, target: Any):
        self.target = target
        cls = target if isinstance(target, type) else type(target)
        self.meta = Struct(
            name=cls.__name__,
            qualifiedName=type_name(cls),
            module=getattr(cls, "__module__", None) or "",
            isClass=isinstance(target, type),
        )

    def __repr__(self):
        return f"<GenericMeta {self.meta['qualifiedName']}>"


# =================================================================
# User-defined class instances
# =================================================================

class ClassRunnable(Referenceable):
    """Base for instances of user-defined classes.

    Public members live in `this_scope`, private state in `variables_scope`.
    After raw allocation the engine runs `pseudo_constructor` (the field and
    property initializer block) and then `init`, if one is declared.
    """
    def __init__(self):
        self.this_scope = Struct()
        self.variables_scope = Struct()
        self._box_meta = None

    @abstractmethod
    def pseudo_constructor(self, context) -> None:
        raise NotImplementedError

    def get_box_meta(self):
        if self._box_meta is None:
            self._box_meta = GenericMeta(self)
        return self._box_meta

    def assign(self, context, key: Key, value: Any) -> Any:
        self.this_scope[key] = value
        return value

    def dereference(self, context, key: Key, safe: bool = False) -> Any:
        if key == Key.box_meta:
            return self.get_box_meta()
        found = self.this_scope.dereference(context, key, True)
        if found is not ABSENT or safe:
            return found
        raise KeyNotFoundError(
            render("class_key_missing", name=key.name, type=type_name(type(self)),
                   keys=format_keys(self.this_scope.key_names())),
            keys=self.this_scope.key_names(),
            target=self,
        )

    def dereference_and_invoke(self, context, key: Key, args, safe: bool = False) -> Any:
        return _invoke_value(context, self, key, self.dereference(context, key, safe), args)
