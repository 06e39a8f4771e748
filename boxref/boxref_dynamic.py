"""
DynamicObject, the deferred target wrapper scripts hold for host classes and
instances, and the Referencer facade the evaluator uses for dotted access.
"""
from typing import Any, Optional

from boxref.boxref_containers import Struct
from boxref.boxref_datatypes import ABSENT, Key, Referenceable, TargetRef
from boxref.boxref_interop import InteropService, NO_DEFAULT


class DynamicObject(Referenceable):
    """A host class, optionally with an instance of it.

    Without an instance only static members are reachable; calling
    invoke_constructor creates and stores one.

        greeter = DynamicObject(Greeter).invoke_constructor(None, "Hi")
        greeter.invoke("sayHello", "World")
    """
    def __init__(self, target_class: type, target_instance: Any = None, interop: Optional[InteropService] = None):
        self.target_class = target_class
        self.target_instance = target_instance
        self.interop = interop or InteropService.default()

    @classmethod
    def of(cls, value: Any, interop: Optional[InteropService] = None) -> 'DynamicObject':
        if isinstance(value, DynamicObject):
            return value
        if isinstance(value, type):
            return cls(value, None, interop)
        return cls(type(value), value, interop)

    @property
    def target_ref(self) -> TargetRef:
        return TargetRef(self.target_class, self.target_instance)

    def has_instance(self) -> bool:
        return self.target_instance is not None

    def unwrap(self) -> Any:
        return self.target_instance if self.target_instance is not None else self.target_class

    # --- construction and calls ---

    def invoke_constructor(self, context, *args) -> 'DynamicObject':
        instance = self.interop.invoke_constructor(context, self.target_class, args)
        self.target_instance = instance
        # init may hand back an object of another class
        self.target_class = type(instance)
        return self

    def invoke(self, name: str, *args, safe: bool = False) -> Any:
        return self.interop.invoke(self.target_ref, name, args, safe)

    def invoke_static(self, name: str, *args) -> Any:
        return self.interop.invoke_static(self.target_class, name, args)

    # --- fields ---

    def get_field(self, name: str, default: Any = NO_DEFAULT) -> Any:
        return self.interop.get_field(self.target_ref, name, default)

    def set_field(self, name: str, value: Any) -> 'DynamicObject':
        self.interop.set_field(self.target_ref, name, value)
        return self

    def has_field(self, name: str) -> bool:
        return self.interop.has_field(self.target_ref, name)

    def has_field_no_case(self, name: str) -> bool:
        return self.interop.has_field_no_case(self.target_ref, name)

    def get_field_names(self):
        return self.interop.get_field_names(self.target_ref)

    def get_field_names_no_case(self):
        return self.interop.get_field_names_no_case(self.target_ref)

    def get_method_names(self):
        return self.interop.get_method_names(self.target_ref)

    def has_method(self, name: str) -> bool:
        return self.interop.has_method(self.target_ref, name)

    def has_method_no_case(self, name: str) -> bool:
        return self.interop.has_method_no_case(self.target_ref, name)

    def is_interface(self) -> bool:
        return self.interop.introspector.is_interface(self.target_class)

    # --- Referenceable ---

    def assign(self, context, key: Key, value: Any) -> Any:
        return self.interop.assign(self.target_ref, key, value, context)

    def dereference(self, context, key: Key, safe: bool = False) -> Any:
        return self.interop.dereference(self.target_ref, key, safe, context)

    def dereference_and_invoke(self, context, key: Key, args, safe: bool = False) -> Any:
        return self.interop.dereference_and_invoke(self.target_ref, key, args, safe, context)

    def __repr__(self):
        inst = "static" if self.target_instance is None else f"instance=#{id(self.target_instance)}"
        return f"<DynamicObject {self.target_class.__qualname__} {inst}>"


def _interop_for(context) -> InteropService:
    interop = context.get_interop() if context is not None else None
    return interop or InteropService.default()


class Referencer:
    """Dotted get/set/call on any value, as the evaluator performs them."""

    @staticmethod
    def get(context, obj: Any, key: Any, safe: bool = False) -> Any:
        return _interop_for(context).dereference(obj, key, safe, context)

    @staticmethod
    def get_and_invoke(context, obj: Any, key: Any, args=(), safe: bool = False) -> Any:
        return _interop_for(context).dereference_and_invoke(obj, key, args, safe, context)

    @staticmethod
    def set(context, obj: Any, key: Any, value: Any) -> Any:
        """Assigns and returns the object, so writes can be chained."""
        _interop_for(context).assign(obj, key, value, context)
        return obj

    @staticmethod
    def set_deep(context, obj: Any, value: Any, *keys: Any) -> Any:
        """Assigns `value` at a key path, creating Structs for missing or null steps.

            Referencer.set_deep(ctx, s, 42, "a", "b", "c")   # s.a.b.c = 42
        """
        if not keys:
            return obj
        current = obj
        for key in keys[:-1]:
            step = Referencer.get(context, current, key, True)
            if step is ABSENT or step is None:
                step = Struct()
                Referencer.set(context, current, key, step)
            current = step
        Referencer.set(context, current, keys[-1], value)
        return obj
