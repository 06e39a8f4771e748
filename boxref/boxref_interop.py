"""
The unified protocol dispatcher and the invocation/construction executor.

Every read, write and call the evaluator performs on a value goes through
`InteropService.dereference`, `assign` or `dereference_and_invoke`. The value
is classified into a closed set of target kinds; language-native values
answer for themselves, raw containers follow their own rules, and anything
else falls through to the caching resolver and Python introspection.
"""
import collections.abc
import ctypes
import threading
import weakref
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from boxref.boxref_config import RuntimeConfig, load_config
from boxref.boxref_containers import (
    ClassRunnable, GenericMeta, index_for_assign, index_for_dereference,
)
from boxref.boxref_context import BoxContext, ClassBoxContext
from boxref.boxref_datatypes import ABSENT, FieldRecord, Key, MethodRecord, Referenceable, TargetRef
from boxref.boxref_errors import (
    BoxRuntimeError, BoxValidationError, ConstructionError, InvocationError,
    KeyNotFoundError, NoFieldError, NoMethodError,
    format_keys, render, type_name,
)
from boxref.boxref_functions import FunctionService, call_function
from boxref.boxref_introspect import HostIntrospector
from boxref.boxref_resolver import Resolver

NO_DEFAULT = object()

# Keys every error-like value answers; all but `message` read as empty text.
ERROR_KEYS = (Key.message, Key.detail, Key.type, Key.tag_context, Key.extended_info)


# =================================================================
# Target classification
# =================================================================

class TargetKind(Enum):
    REFERENCEABLE = "referenceable"
    ORDERED_MAP = "ordered_map"
    SEQUENCE = "sequence"
    ARRAY = "array"
    TEXT = "text"
    ERROR_LIKE = "error_like"
    NATIVE_OBJECT = "native_object"


def classify(value: Any) -> TargetKind:
    match value:
        case Referenceable():
            return TargetKind.REFERENCEABLE
        case str():
            return TargetKind.TEXT
        case collections.abc.Mapping():
            return TargetKind.ORDERED_MAP
        case bytearray():
            # Resizable, but cannot hold the absent marker
            return TargetKind.ARRAY
        case collections.abc.MutableSequence():
            return TargetKind.SEQUENCE
        case tuple() | bytes() | range() | memoryview() | ctypes.Array():
            return TargetKind.ARRAY
        case BaseException():
            return TargetKind.ERROR_LIKE
        case _:
            return TargetKind.NATIVE_OBJECT


def unwrap_arguments(args):
    """Replaces DynamicObject arguments with the value they wrap."""
    from boxref.boxref_dynamic import DynamicObject
    if isinstance(args, collections.abc.Mapping):
        return {k: (v.unwrap() if isinstance(v, DynamicObject) else v) for k, v in args.items()}
    return tuple(a.unwrap() if isinstance(a, DynamicObject) else a for a in args)


def argument_kinds(args) -> Tuple[type, ...]:
    return tuple(type(a) for a in args)


def _as_ref(target: Any) -> TargetRef:
    if isinstance(target, TargetRef):
        return target
    return TargetRef.of(target)


def _error_message(error: BaseException) -> str:
    # str(KeyError("x")) quotes the key
    if len(error.args) == 1:
        return str(error.args[0])
    return str(error)


# =================================================================
# Service
# =================================================================

class InteropService:
    """Dispatches reads, writes and calls against any value."""

    _default: Optional['InteropService'] = None
    _default_lock = threading.Lock()

    def __init__(self, config: Optional[RuntimeConfig] = None, *,
                 introspector: Optional[HostIntrospector] = None,
                 functions: Optional[FunctionService] = None,
                 meta_factory: Optional[Callable[[Any], Any]] = None):
        self.config = config or RuntimeConfig()
        self.introspector = introspector or HostIntrospector()
        self.resolver = Resolver(
            self.introspector,
            cache_enabled=self.config.handles_cache_enabled,
            debug=self.config.debug,
            max_diagnostic_keys=self.config.max_diagnostic_keys,
        )
        self.functions = functions or FunctionService()
        self.meta_factory = meta_factory or GenericMeta
        self._meta: Dict[int, Tuple[weakref.ref, Any]] = {}
        self._meta_lock = threading.Lock()
        self.root_context = BoxContext(interop=self)

    @classmethod
    def default(cls) -> 'InteropService':
        """The shared service, configured from $BOXREF_CONFIG on first use."""
        if cls._default is None:
            with cls._default_lock:
                if cls._default is None:
                    cls._default = cls(load_config())
        return cls._default

    @property
    def handles_cache_enabled(self) -> bool:
        return self.resolver.cache_enabled

    @handles_cache_enabled.setter
    def handles_cache_enabled(self, enabled: bool):
        self.resolver.cache_enabled = bool(enabled)

    def _dbg(self, *parts):
        self.resolver._dbg(*parts)

    def _keys(self, keys) -> str:
        return format_keys(keys, self.config.max_diagnostic_keys)

    def resolve(self, target: Any, name: Any, kinds: Tuple[type, ...] = ()) -> MethodRecord:
        return self.resolver.resolve(_as_ref(target), Key.of(name), kinds)

    # =================================================================
    # dereference / assign / dereference_and_invoke
    # =================================================================

    def dereference(self, target: Any, key: Any, safe: bool = False, context: Optional[BoxContext] = None) -> Any:
        key = Key.of(key)
        if target is None:
            if safe:
                return ABSENT
            raise KeyNotFoundError(render("null_dereference", name=key.name))
        ref = _as_ref(target)
        value = ref.target_instance
        kind = classify(value) if ref.has_instance else TargetKind.NATIVE_OBJECT
        self._dbg("DEREF", kind.name, type_name(ref.target_type), key.name)

        if kind is TargetKind.REFERENCEABLE:
            return value.dereference(context or self.root_context, key, safe)
        if key == Key.box_meta:
            return self._box_meta(value if ref.has_instance else ref.target_type)

        match kind:
            case TargetKind.ORDERED_MAP:
                return self._map_get(value, key, safe)
            case TargetKind.SEQUENCE | TargetKind.ARRAY:
                if key == Key.length:
                    return len(value)
                index = index_for_dereference(key, len(value), safe)
                return ABSENT if index is None else value[index - 1]
            case TargetKind.ERROR_LIKE if key in ERROR_KEYS:
                return _error_message(value) if key == Key.message else ""
            case TargetKind.TEXT if key.int_value is not None:
                index = index_for_dereference(key, len(value), safe)
                return ABSENT if index is None else value[index - 1]
        return self._get_field(ref, key, safe)

    def assign(self, target: Any, key: Any, value: Any, context: Optional[BoxContext] = None) -> Any:
        key = Key.of(key)
        ref = _as_ref(target)
        obj = ref.target_instance
        kind = classify(obj) if ref.has_instance else TargetKind.NATIVE_OBJECT
        self._dbg("ASSIGN", kind.name, type_name(ref.target_type), key.name)

        match kind:
            case TargetKind.REFERENCEABLE:
                return obj.assign(context or self.root_context, key, value)
            case TargetKind.ORDERED_MAP:
                if not isinstance(obj, collections.abc.MutableMapping):
                    raise BoxValidationError(render("map_read_only", type=type_name(type(obj))))
                obj[key.original_value] = value
            case TargetKind.SEQUENCE:
                index = index_for_assign(key, len(obj), fixed=False)
                while len(obj) < index:
                    obj.append(ABSENT)
                obj[index - 1] = value
            case TargetKind.ARRAY:
                index = index_for_assign(key, len(obj), fixed=True)
                try:
                    obj[index - 1] = value
                except TypeError as e:
                    raise BoxValidationError(render("array_immutable", type=type_name(type(obj)))) from e
            case TargetKind.ERROR_LIKE:
                # Writes to error objects never fail; undeclared fields are dropped.
                try:
                    self._set_field(ref, key, value)
                except (NoFieldError, AttributeError, TypeError) as e:
                    self._dbg("ASSIGN", "discarded", key.name, type(e).__name__)
            case _:
                self._set_field(ref, key, value)
        return value

    def dereference_and_invoke(self, target: Any, key: Any, args=(), safe: bool = False,
                               context: Optional[BoxContext] = None) -> Any:
        key = Key.of(key)
        ref = _as_ref(target)
        obj = ref.target_instance
        context = context or self.root_context
        kind = classify(obj) if ref.has_instance else TargetKind.NATIVE_OBJECT
        self._dbg("INVOKE", kind.name, type_name(ref.target_type), key.name)

        if kind is TargetKind.REFERENCEABLE:
            return obj.dereference_and_invoke(context, key, args, safe)
        if ref.has_instance:
            member = self.functions.get_member_method(key, obj)
            if member is not None:
                return member.invoke(context, obj, args)
        if kind is TargetKind.ORDERED_MAP and key.original_value in obj:
            func = obj[key.original_value]
            if not callable(func):
                raise BoxRuntimeError(render("not_a_function", name=key.name, type=type_name(type(obj))))
            return call_function(func, context, args)
        if isinstance(args, collections.abc.Mapping):
            raise BoxRuntimeError(render("named_args_unsupported"))
        return self.invoke(ref, key, args, safe)

    # --- containers and fields ---

    def _map_get(self, mapping, key: Key, safe: bool) -> Any:
        if key.original_value in mapping:
            return mapping[key.original_value]
        if key.name != key.original_value and key.name in mapping:
            return mapping[key.name]
        if safe:
            return ABSENT
        raise KeyNotFoundError(
            render("map_key_missing", name=key.name, keys=self._keys(mapping.keys())),
            keys=mapping.keys(),
            target=mapping,
        )

    def _find_field(self, ref: TargetRef, key: Key) -> Optional[FieldRecord]:
        try:
            return self.resolver.resolve_field(ref.target_type, key)
        except NoFieldError:
            if ref.has_instance:
                return self.introspector.find_instance_attribute(ref.target_instance, key)
            return None

    def _missing_field(self, ref: TargetRef, key: Key) -> str:
        names = self.introspector.field_names(ref.target_type, ref.target_instance)
        template = "no_public_field" if ref.has_instance else "no_static_field"
        return render(template, name=key.name, type=type_name(ref.target_type), fields=self._keys(names))

    def _get_field(self, ref: TargetRef, key: Key, safe: bool, default: Any = NO_DEFAULT) -> Any:
        record = self._find_field(ref, key)
        if record is None:
            if default is not NO_DEFAULT:
                return default
            if safe:
                return ABSENT
            names = self.introspector.field_names(ref.target_type, ref.target_instance)
            raise KeyNotFoundError(self._missing_field(ref, key), keys=names, target=ref.target_instance)
        if not record.is_static and not ref.has_instance:
            raise BoxRuntimeError(render("field_needs_instance", action="get", name=key.name))
        return self.introspector.read_field(record, ref.target_instance, ref.target_type)

    def _set_field(self, ref: TargetRef, key: Key, value: Any) -> None:
        record = self._find_field(ref, key)
        if record is None:
            raise NoFieldError(self._missing_field(ref, key))
        if not record.is_static and not ref.has_instance:
            raise BoxRuntimeError(render("field_needs_instance", action="set", name=key.name))
        self.introspector.write_field(record, ref.target_instance, ref.target_type, value)

    def _box_meta(self, value: Any) -> Any:
        own = getattr(value, "get_box_meta", None)
        if callable(own) and not isinstance(value, type):
            return own()
        try:
            handle = weakref.ref(value, lambda _r, i=id(value): self._meta.pop(i, None))
        except TypeError:
            # Not weak-referenceable: nothing to key a cache entry on.
            return self.meta_factory(value)
        with self._meta_lock:
            entry = self._meta.get(id(value))
            if entry is not None and entry[0]() is value:
                return entry[1]
            meta = self.meta_factory(value)
            self._meta[id(value)] = (handle, meta)
            return meta

    # =================================================================
    # Field helpers
    # =================================================================

    def get_field(self, target: Any, name: Any, default: Any = NO_DEFAULT) -> Any:
        return self._get_field(_as_ref(target), Key.of(name), False, default)

    def set_field(self, target: Any, name: Any, value: Any) -> None:
        self._set_field(_as_ref(target), Key.of(name), value)

    def get_field_names(self, target: Any):
        ref = _as_ref(target)
        return self.introspector.field_names(ref.target_type, ref.target_instance)

    def get_field_names_no_case(self, target: Any):
        return [n.upper() for n in self.get_field_names(target)]

    def has_field(self, target: Any, name: str) -> bool:
        return name in self.get_field_names(target)

    def has_field_no_case(self, target: Any, name: str) -> bool:
        return name.upper() in self.get_field_names_no_case(target)

    def get_method_names(self, target: Any):
        return self.introspector.method_names(_as_ref(target).target_type)

    def has_method(self, target: Any, name: str) -> bool:
        return name in self.get_method_names(target)

    def has_method_no_case(self, target: Any, name: str) -> bool:
        folded = name.casefold()
        return any(n.casefold() == folded for n in self.get_method_names(target))

    # =================================================================
    # Invocation & construction
    # =================================================================

    def invoke(self, target: Any, name: Any, args=(), safe: bool = False) -> Any:
        """Resolves and calls a host method on `target` (a TargetRef or a value)."""
        key = Key.of(name)
        if not key.name:
            raise BoxRuntimeError(render("empty_method_name"))
        ref = _as_ref(target)
        args = unwrap_arguments(args)
        try:
            record = self.resolver.resolve(ref, key, argument_kinds(args))
        except NoMethodError:
            if safe:
                return ABSENT
            raise
        if not record.is_static and not ref.has_instance:
            raise BoxRuntimeError(render("invoke_needs_instance"))
        func = self.introspector.bind(record, ref.target_instance, ref.target_type)
        return self._execute(func, args, record.name, ref.target_type)

    def invoke_static(self, target: Any, name: Any, args=()) -> Any:
        ref = TargetRef.of_type(target) if isinstance(target, type) else _as_ref(target)
        key = Key.of(name)
        if not key.name:
            raise BoxRuntimeError(render("empty_method_name"))
        args = unwrap_arguments(args)
        record = self.resolver.resolve(ref, key, argument_kinds(args))
        if not record.is_static:
            raise BoxRuntimeError(render("not_static", name=key.name, type=type_name(ref.target_type)))
        func = self.introspector.bind(record, None, ref.target_type)
        return self._execute(func, args, record.name, ref.target_type)

    def _execute(self, func, args, name: str, target_type: type) -> Any:
        try:
            return func(*args)
        except Exception as e:
            raise InvocationError(render(
                "invocation_failed", name=name, type=type_name(target_type), cause=f"{type(e).__name__}: {e}",
            )) from e

    def invoke_constructor(self, context: Optional[BoxContext], target_type: type, args=()) -> Any:
        """Creates an instance of `target_type`, running bring-up for user-defined classes."""
        args = unwrap_arguments(args)
        if self.introspector.is_interface(target_type):
            raise ConstructionError(render("constructor_abstract", type=type_name(target_type)))
        # User-defined classes are allocated bare; their arguments go to init.
        alloc_args = () if issubclass(target_type, ClassRunnable) else args
        try:
            record = self.resolver.resolve_constructor(target_type, argument_kinds(alloc_args))
        except NoMethodError as e:
            raise ConstructionError(render("constructor_lookup_failed", type=type_name(target_type))) from e
        constructor = self.introspector.bind(record, None, target_type)
        try:
            instance = constructor(*alloc_args)
        except Exception as e:
            raise ConstructionError(render(
                "constructor_failed", type=type_name(target_type), cause=f"{type(e).__name__}: {e}",
            )) from e
        if isinstance(instance, ClassRunnable):
            instance = self._bring_up(context, instance, args)
        return instance

    def _bring_up(self, context: Optional[BoxContext], instance: ClassRunnable, args) -> Any:
        """Runs the initializer block, then `init` with the constructor arguments.

        A non-null value returned by `init` replaces the instance.
        """
        scope = ClassBoxContext(context or self.root_context, instance)
        try:
            self._dbg("BRINGUP", "pseudo_constructor", type(instance).__name__)
            instance.pseudo_constructor(scope)
            init = instance.dereference(scope, Key.init, True)
            if init is ABSENT or init is None:
                return instance
            self._dbg("BRINGUP", "init", type(instance).__name__)
            result = instance.dereference_and_invoke(scope, Key.init, args, False)
        except Exception as e:
            raise ConstructionError(render(
                "bring_up_failed", type=type_name(type(instance)), cause=f"{type(e).__name__}: {e}",
            )) from e
        if result is None or result is ABSENT:
            return instance
        return result
