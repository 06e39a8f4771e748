"""
Evaluation contexts: the chain of variable scopes a call runs in.
"""
from typing import Any, Optional

from boxref.boxref_datatypes import Key
from boxref.boxref_containers import Struct


class BoxContext:
    """A variables scope with a parent chain.

    Lookup walks this context, then its parents. The root context owns the
    InteropService the engine entry points use.
    """
    def __init__(self, parent: Optional['BoxContext'] = None, interop=None):
        self.parent = parent
        self.variables = Struct()
        self._interop = interop

    def __setitem__(self, key: Any, value: Any):
        self.variables[key] = value

    def __getitem__(self, key: Any) -> Any:
        owner = self.find_owner(key)
        if owner is None:
            raise KeyError(str(key))
        return owner.variables[key]

    def __contains__(self, key: Any) -> bool:
        return self.find_owner(key) is not None

    def find_owner(self, key: Any) -> Optional['BoxContext']:
        """Finds the context in the chain (self -> parent) whose variables hold key."""
        key = Key.of(key)
        cur = self
        while cur is not None:
            if key in cur.variables:
                return cur
            cur = cur.parent
        return None

    def get(self, key: Any, default: Any = None) -> Any:
        owner = self.find_owner(key)
        if owner is None:
            return default
        return owner.variables[key]

    def get_interop(self):
        cur = self
        while cur is not None:
            if cur._interop is not None:
                return cur._interop
            cur = cur.parent
        return None

    def get_function_service(self):
        interop = self.get_interop()
        return interop.functions if interop is not None else None

    def __repr__(self) -> str:
        keys = ', '.join(self.variables.keys())
        parent_id = f", parent=#{id(self.parent)}" if self.parent else ""
        return f"<{type(self).__name__} variables=[{keys}]{parent_id}>"


class ClassBoxContext(BoxContext):
    """The context an instance's initializer block runs in.

    Its variables are the instance's own variables scope; unresolved names
    fall through to the caller's context.
    """
    def __init__(self, parent: Optional[BoxContext], instance):
        super().__init__(parent)
        self.this = instance
        self.variables = instance.variables_scope
