"""
Member-method lookup and the calling convention for script-visible functions.

The broader runtime registers named behaviors per value category here
(e.g. a sequence's "contains"); the dispatcher consults this registry
before it falls back to host overload resolution.
"""
import collections.abc
import inspect
import numbers
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from boxref.boxref_datatypes import Key


class BoxLangType(Enum):
    STRUCT = "struct"
    ARRAY = "array"
    STRING = "string"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    ANY = "any"

    @classmethod
    def of(cls, value: Any) -> 'BoxLangType':
        """Returns the category a value's member methods are registered under."""
        match value:
            case bool():
                return cls.BOOLEAN
            case str():
                return cls.STRING
            case numbers.Number():
                return cls.NUMERIC
            case collections.abc.Mapping():
                return cls.STRUCT
            case bytes() | bytearray():
                return cls.ANY
            case collections.abc.Sequence():
                return cls.ARRAY
            case _:
                return cls.ANY


def accepts_context(func: Callable) -> bool:
    """True when the callable declares a `context` parameter. Cached on the callable."""
    needs = getattr(func, "_box_accepts_context", None)
    if needs is not None:
        return needs
    try:
        needs = "context" in inspect.signature(func).parameters
    except (TypeError, ValueError):
        needs = False
    try:
        setattr(func, "_box_accepts_context", needs)
    except (AttributeError, TypeError):
        pass
    return needs


def call_function(func: Callable, context, args) -> Any:
    """Calls a script-visible callable with positional or named arguments.

    The calling context is passed as the `context` keyword when the callable
    asks for it.
    """
    kwargs = {}
    if accepts_context(func):
        kwargs["context"] = context
    if isinstance(args, collections.abc.Mapping):
        kwargs.update({str(k): v for k, v in args.items()})
        return func(**kwargs)
    return func(*args, **kwargs)


@dataclass(frozen=True)
class MemberDescriptor:
    """A named behavior registered for one value category."""
    name: Key
    box_type: BoxLangType
    function: Callable

    def invoke(self, context, target: Any, args) -> Any:
        kwargs = {}
        if accepts_context(self.function):
            kwargs["context"] = context
        if isinstance(args, collections.abc.Mapping):
            kwargs.update({str(k): v for k, v in args.items()})
            return self.function(target, **kwargs)
        return self.function(target, *args, **kwargs)


class FunctionService:
    """Registry of member methods keyed by (category, case-insensitive name)."""

    def __init__(self):
        self._members: Dict[Tuple[BoxLangType, Key], MemberDescriptor] = {}
        self._lock = threading.Lock()

    def register_member_method(self, name: Any, box_type: BoxLangType, function: Callable) -> MemberDescriptor:
        descriptor = MemberDescriptor(Key.of(name), box_type, function)
        with self._lock:
            self._members[(box_type, descriptor.name)] = descriptor
        return descriptor

    def member_method(self, name: Any, box_type: BoxLangType = BoxLangType.ANY):
        """Decorator form of register_member_method."""
        def deco(func):
            self.register_member_method(name, box_type, func)
            return func
        return deco

    def get_member_method(self, name: Any, value: Any) -> Optional[MemberDescriptor]:
        key = Key.of(name)
        found = self._members.get((BoxLangType.of(value), key))
        if found is None:
            found = self._members.get((BoxLangType.ANY, key))
        return found

    def has_member_method(self, name: Any, value: Any) -> bool:
        return self.get_member_method(name, value) is not None

    def member_method_names(self, box_type: BoxLangType) -> List[str]:
        return [d.name.name for (t, _), d in self._members.items() if t is box_type]
