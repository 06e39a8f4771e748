"""
Defines the core data types shared by the boxref resolution engine.

This module provides the symbol model (Key), the target reference every
lookup resolves against, the immutable records the resolver caches, the
absent marker and the Referenceable capability implemented by the
language's own value types.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Tuple

_NUMERIC_TEXT = re.compile(r"\d+")


# =================================================================
# Absent marker
# =================================================================

class Absent:
    """Sentinel for "no value", distinct from a stored None."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "<absent>"

    def __reduce__(self):
        return (Absent, ())


ABSENT = Absent()


def is_absent(value: Any) -> bool:
    return value is ABSENT


# =================================================================
# Symbol model
# =================================================================

class Key:
    """A canonical, case-insensitive name used for every member and key lookup.

    Equality and hashing use the case-folded text. The original text is kept
    for display and for use as a literal key on raw mappings.
    """
    __slots__ = ("_name", "_name_no_case", "_hash")

    def __init__(self, name: Any):
        self._name = str(name)
        self._name_no_case = self._name.casefold()
        self._hash = hash(self._name_no_case)

    @classmethod
    def of(cls, value: Any) -> 'Key':
        """Builds a Key from text, an integer, or an existing Key."""
        if isinstance(value, Key):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return IntKey(value)
        return cls(value)

    @property
    def name(self) -> str:
        return self._name

    @property
    def name_no_case(self) -> str:
        return self._name_no_case

    @property
    def original_value(self) -> Any:
        """The value to use as a literal key on a raw mapping."""
        return self._name

    @property
    def int_value(self) -> Optional[int]:
        """The integer interpretation of this key, or None when it has none."""
        if _NUMERIC_TEXT.fullmatch(self._name):
            return int(self._name)
        return None

    def __eq__(self, other):
        if not isinstance(other, Key):
            return NotImplemented
        return self._name_no_case == other._name_no_case

    def __hash__(self):
        return self._hash

    def __str__(self):
        return self._name

    def __repr__(self):
        return f"Key<{self._name!r}>"


class IntKey(Key):
    """A Key built from an integer, used for index-style access."""
    __slots__ = ("_int",)

    def __init__(self, value: int):
        super().__init__(value)
        self._int = int(value)

    @property
    def original_value(self) -> Any:
        return self._int

    @property
    def int_value(self) -> Optional[int]:
        return self._int

    def __repr__(self):
        return f"IntKey<{self._int}>"


# Well-known keys
Key.init = Key("init")
Key.length = Key("length")
Key.message = Key("message")
Key.detail = Key("detail")
Key.type = Key("type")
Key.tag_context = Key("tagContext")
Key.extended_info = Key("extendedInfo")
Key.key_array = Key("keyArray")
Key.box_meta = Key("$bx")
# The "new instance" member a constructor resolves to has no name.
Key.new_instance = Key("")


# =================================================================
# Target reference and resolution records
# =================================================================

class TargetRef:
    """A (type, optional instance) pair identifying what a lookup resolves against.

    A missing instance denotes a static-only lookup.
    """
    __slots__ = ("target_type", "target_instance")

    def __init__(self, target_type: type, target_instance: Any = None):
        if not isinstance(target_type, type):
            raise TypeError(f"TargetRef type must be a class, not {type(target_type).__name__}")
        self.target_type = target_type
        self.target_instance = target_instance

    @classmethod
    def of(cls, instance: Any) -> 'TargetRef':
        """Derives the type from the instance."""
        return cls(type(instance), instance)

    @classmethod
    def of_type(cls, target_type: type) -> 'TargetRef':
        return cls(target_type, None)

    @property
    def has_instance(self) -> bool:
        return self.target_instance is not None

    def __repr__(self):
        inst = "static" if self.target_instance is None else f"instance=#{id(self.target_instance)}"
        return f"<TargetRef {self.target_type.__qualname__} {inst}>"


@dataclass(frozen=True)
class MethodRecord:
    """A resolved, reusable call descriptor. Never mutated once cached."""
    name: str
    handle: Any
    owner: type
    is_static: bool
    arity: int


@dataclass(frozen=True)
class FieldRecord:
    """A resolved field handle.

    kind is 'attribute' (annotated or class-level), 'property' (a data
    descriptor) or 'instance' (found only in the instance __dict__).
    """
    name: str
    owner: type
    is_static: bool
    kind: str = "attribute"


@dataclass(frozen=True)
class MemberInfo:
    """One callable member as seen by overload resolution.

    param_kinds is None when the member's signature cannot be introspected;
    such a member accepts any arguments.
    """
    name: str
    attr: str
    member: Any
    owner: type
    is_static: bool
    param_kinds: Optional[Tuple[Any, ...]]

    @property
    def arity(self) -> int:
        return -1 if self.param_kinds is None else len(self.param_kinds)

    @property
    def signature_id(self):
        return (self.name.casefold(), self.param_kinds, self.is_static)

    def accepts_arity(self, count: int) -> bool:
        if self.param_kinds is None:
            return True
        return count == len(self.param_kinds)


# =================================================================
# Capabilities
# =================================================================

class Referenceable(ABC):
    """Values that satisfy assign/dereference/invoke themselves.

    The engine delegates to these before any of its generic rules run.
    """

    @abstractmethod
    def assign(self, context, key: Key, value: Any) -> Any:
        raise NotImplementedError

    @abstractmethod
    def dereference(self, context, key: Key, safe: bool = False) -> Any:
        raise NotImplementedError

    @abstractmethod
    def dereference_and_invoke(self, context, key: Key, args, safe: bool = False) -> Any:
        raise NotImplementedError
