"""
Host introspection: what a Python class exposes to scripts.

HostIntrospector is the only thing the resolver asks about host types. It
lists callable members (own before inherited, declaration order), the
constructor, declared fields, and answers whether an argument kind can be
passed to a parameter kind.
"""
import inspect
import numbers
import types
import typing
from typing import Any, Dict, List, Optional, Tuple

from boxref.boxref_datatypes import FieldRecord, Key, MemberInfo, MethodRecord


def host_method(name: str):
    """Exposes a method to scripts under `name`.

    Lets one class declare several overloads of the same script name:

        @host_method("add")
        def add_pair(self, x: int, y: int): ...
    """
    def deco(func):
        target = getattr(func, "__func__", func)
        target._host_name = name
        return func
    return deco


# =================================================================
# Kinds and assignability
# =================================================================

NoneType = type(None)
PRIMITIVE_KINDS = (bool, int, float, complex)

# Numeric widening: bool -> int -> float -> complex
_WIDENS_TO = {
    bool: (bool, int, float, complex),
    int: (int, float, complex),
    float: (float, complex),
    complex: (complex,),
}

_STATIC_KINDS = (staticmethod, classmethod, types.ClassMethodDescriptorType)
_INSTANCE_KINDS = (types.FunctionType, types.MethodDescriptorType, types.WrapperDescriptorType)

# A required keyword-only parameter can never be satisfied positionally.
_UNCALLABLE = object()


def unboxed_kind(kind: type) -> Optional[type]:
    """The primitive numeric kind a (possibly boxed) numeric type compares as."""
    if not isinstance(kind, type):
        return None
    if issubclass(kind, bool):
        return bool
    if issubclass(kind, numbers.Integral):
        return int
    if issubclass(kind, numbers.Real):
        return float
    if issubclass(kind, numbers.Complex):
        return complex
    return None


def annotation_kinds(annotation: Any) -> Tuple[type, ...]:
    """Turns a parameter annotation into the tuple of kinds it accepts."""
    if annotation is inspect.Parameter.empty or annotation is typing.Any:
        return (object,)
    if annotation is None:
        return (NoneType,)
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        kinds: List[type] = []
        for arg in typing.get_args(annotation):
            for k in annotation_kinds(arg):
                if k not in kinds:
                    kinds.append(k)
        return tuple(kinds)
    if origin is not None:
        return (origin,) if isinstance(origin, type) else (object,)
    if isinstance(annotation, type):
        return (annotation,)
    # TypeVars, NewTypes and unresolved forward references
    return (object,)


def is_assignable(arg_kind: type, param_kind: type) -> bool:
    if param_kind is object:
        return True
    if arg_kind is NoneType:
        return param_kind not in PRIMITIVE_KINDS
    try:
        if issubclass(arg_kind, param_kind):
            return True
    except TypeError:
        return False
    arg_prim = unboxed_kind(arg_kind)
    if arg_prim is not None and param_kind in PRIMITIVE_KINDS:
        return param_kind in _WIDENS_TO[arg_prim]
    return False


def accepts_kinds(info: MemberInfo, argument_kinds: Tuple[type, ...]) -> bool:
    """Per-parameter assignability of every argument kind."""
    if info.param_kinds is None:
        return True
    for arg_kind, accepted in zip(argument_kinds, info.param_kinds):
        if not any(is_assignable(arg_kind, k) for k in accepted):
            return False
    return True


# =================================================================
# Signatures
# =================================================================

def _signature(func) -> Optional[inspect.Signature]:
    try:
        return inspect.signature(func, eval_str=True)
    except (NameError, AttributeError, SyntaxError):
        pass
    except (TypeError, ValueError):
        return None
    # Unresolvable string annotations: fall back to the raw ones.
    try:
        return inspect.signature(func)
    except (TypeError, ValueError):
        return None


def positional_kinds(func, skip_first: bool = False):
    """Returns the accepted kinds of each positional parameter of a callable.

    Every positional parameter takes exactly one argument, defaulted or not.
    Returns None when the signature cannot be read, and _UNCALLABLE when the
    callable has a required keyword-only parameter.
    """
    sig = _signature(func)
    if sig is None:
        return None
    params = list(sig.parameters.values())
    if skip_first and params and params[0].kind in (
            inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
        params = params[1:]
    kinds = []
    for p in params:
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            kinds.append(annotation_kinds(p.annotation))
        elif p.kind is inspect.Parameter.KEYWORD_ONLY and p.default is inspect.Parameter.empty:
            return _UNCALLABLE
    return tuple(kinds)


def _is_data_descriptor(value: Any) -> bool:
    return isinstance(value, property) or hasattr(type(value), "__set__")


def _is_method_like(value: Any) -> bool:
    return isinstance(value, _STATIC_KINDS + _INSTANCE_KINDS) or inspect.isroutine(value)


def _is_class_var(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("ClassVar", "typing.ClassVar"))
    return annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar


# =================================================================
# Provider
# =================================================================

class HostIntrospector:
    """Lists and operates on the members of host classes via Python reflection."""

    def _walk(self, target_type: type):
        for owner in target_type.__mro__:
            if owner is object and target_type is not object:
                continue
            yield owner

    def list_methods(self, target_type: type) -> List[MemberInfo]:
        """All script-visible callables of a type, own before inherited,
        deduplicated by signature (first occurrence wins)."""
        found: List[MemberInfo] = []
        seen = set()
        for owner in self._walk(target_type):
            for attr, member in vars(owner).items():
                info = self._member_info(target_type, owner, attr, member)
                if info is None or info.signature_id in seen:
                    continue
                seen.add(info.signature_id)
                found.append(info)
        return found

    def _member_info(self, target_type: type, owner: type, attr: str, member: Any) -> Optional[MemberInfo]:
        raw = getattr(member, "__func__", member)
        host_name = getattr(raw, "_host_name", None)
        if host_name is None and attr.startswith("_"):
            return None
        if isinstance(member, _STATIC_KINDS):
            is_static = True
            kinds = positional_kinds(member.__get__(None, target_type))
        elif isinstance(member, _INSTANCE_KINDS):
            is_static = False
            kinds = positional_kinds(member, skip_first=True)
        else:
            return None
        if kinds is _UNCALLABLE:
            return None
        return MemberInfo(
            name=host_name or attr,
            attr=attr,
            member=member,
            owner=owner,
            is_static=is_static,
            param_kinds=kinds,
        )

    def list_constructors(self, target_type: type) -> List[MemberInfo]:
        kinds = positional_kinds(target_type)
        if kinds is _UNCALLABLE:
            return []
        return [MemberInfo(
            name=Key.new_instance.name,
            attr="__init__",
            member=target_type,
            owner=target_type,
            is_static=True,
            param_kinds=kinds,
        )]

    def method_names(self, target_type: type) -> List[str]:
        names: List[str] = []
        for info in self.list_methods(target_type):
            if info.name not in names:
                names.append(info.name)
        return names

    # --- fields ---

    def list_fields(self, target_type: type) -> List[FieldRecord]:
        """Declared fields: annotations, data descriptors and public class constants."""
        fields: Dict[str, FieldRecord] = {}

        def add(record):
            fields.setdefault(record.name.casefold(), record)

        for owner in self._walk(target_type):
            for name, annotation in inspect.get_annotations(owner).items():
                if name.startswith("_"):
                    continue
                add(FieldRecord(name, owner, _is_class_var(annotation), "attribute"))
            for name, value in vars(owner).items():
                if name.startswith("_"):
                    continue
                if isinstance(value, types.MemberDescriptorType):
                    # __slots__ entry; may be unset
                    add(FieldRecord(name, owner, False, "attribute"))
                elif _is_data_descriptor(value):
                    add(FieldRecord(name, owner, False, "property"))
                elif not _is_method_like(value) and not isinstance(value, type):
                    add(FieldRecord(name, owner, True, "attribute"))
        return list(fields.values())

    def find_field(self, target_type: type, name: Key) -> Optional[FieldRecord]:
        for record in self.list_fields(target_type):
            if record.name.casefold() == name.name_no_case:
                return record
        return None

    def find_instance_attribute(self, instance: Any, name: Key) -> Optional[FieldRecord]:
        """Looks for an attribute set on the instance itself (its __dict__)."""
        attrs = getattr(instance, "__dict__", None)
        if not attrs:
            return None
        for attr in attrs:
            if isinstance(attr, str) and attr.casefold() == name.name_no_case:
                return FieldRecord(attr, type(instance), False, "instance")
        return None

    def instance_field_names(self, instance: Any) -> List[str]:
        attrs = getattr(instance, "__dict__", None) or {}
        return [a for a in attrs if isinstance(a, str) and not a.startswith("_")]

    def field_names(self, target_type: type, instance: Any = None) -> List[str]:
        names = [f.name for f in self.list_fields(target_type)]
        if instance is not None:
            folded = {n.casefold() for n in names}
            names.extend(n for n in self.instance_field_names(instance) if n.casefold() not in folded)
        return names

    # --- handles ---

    def bind(self, record: MethodRecord, instance: Any, target_type: type):
        """Returns a callable for a resolved member.

        Constructors are the class itself; static members ignore the instance.
        """
        if isinstance(record.handle, type):
            return record.handle
        if record.is_static:
            return record.handle.__get__(None, target_type)
        return record.handle.__get__(instance, target_type)

    def read_field(self, record: FieldRecord, instance: Any, target_type: type) -> Any:
        if record.is_static:
            return getattr(target_type, record.name)
        if record.kind == "attribute":
            # Declared but never assigned
            return getattr(instance, record.name, None)
        return getattr(instance, record.name)

    def write_field(self, record: FieldRecord, instance: Any, target_type: type, value: Any) -> None:
        if record.is_static:
            setattr(target_type, record.name, value)
        else:
            setattr(instance, record.name, value)

    def is_interface(self, target_type: type) -> bool:
        return inspect.isabstract(target_type) or bool(getattr(target_type, "_is_protocol", False))
