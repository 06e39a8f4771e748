"""
Error kinds raised by the boxref engine and the message templates behind them.
"""
from typing import Any, Iterable, Optional

import pystache

MAX_DIAGNOSTIC_KEYS = 50

TEMPLATES = {
    "no_method": "No such method [{{name}}] found in the class [{{type}}] using [{{arity}}] arguments of types [{{kinds}}]. The available methods are [{{methods}}]",
    "no_constructor": "No constructor found in the class [{{type}}] using [{{arity}}] arguments of types [{{kinds}}]",
    "no_field": "No such field [{{name}}] found in the class [{{type}}].",
    "no_public_field": "The instance [{{type}}] has no public field [{{name}}]. The allowed fields are [{{fields}}]",
    "no_static_field": "The instance [{{type}}] has no static field [{{name}}]. The allowed fields are [{{fields}}]",
    "map_key_missing": "The key [{{name}}] was not found in the map. Valid keys are ({{keys}})",
    "struct_key_missing": "The key {{name}} was not found in the struct. Valid keys are ({{keys}})",
    "class_key_missing": "The key {{name}} was not found in the class [{{type}}]. Valid keys are ({{keys}})",
    "index_not_numeric": "Array index [{{name}}] is not a valid integer",
    "index_out_of_bounds": "Index [{{index}}] out of bounds for array of length {{size}}",
    "index_below_one": "Array index [{{index}}] must be 1 or greater",
    "array_immutable": "The array of type [{{type}}] cannot be modified",
    "map_read_only": "The map of type [{{type}}] is read only",
    "empty_method_name": "Method name cannot be null or empty.",
    "invoke_needs_instance": "You can't call invoke on a null target instance. Use [invoke_static] instead or set the target instance manually or via the constructor.",
    "not_static": "The method [{{name}}] in the class [{{type}}] is not static",
    "invocation_failed": "Error invoking method {{name}} for class {{type}}: {{cause}}",
    "constructor_abstract": "Cannot invoke a constructor on the abstract class [{{type}}]",
    "constructor_lookup_failed": "Error getting constructor for class {{type}}",
    "constructor_failed": "Error invoking constructor for class {{type}}: {{cause}}",
    "bring_up_failed": "Error initializing instance of class {{type}}: {{cause}}",
    "field_needs_instance": "You are trying to {{action}} the public field [{{name}}] but there is no instance set on the invoker, please make sure the [invoke_constructor] has been called.",
    "named_args_unsupported": "Methods on host objects cannot be called with named arguments",
    "not_a_function": "The key [{{name}}] of [{{type}}] is not a function",
    "null_dereference": "Cannot dereference the key [{{name}}] on a null value",
    "config_type": "Config option [{{option}}] must be a {{expected}}, got {{actual}}",
}

_renderer = pystache.Renderer(escape=lambda u: u)


def render(template_name: str, **context: Any) -> str:
    """Renders one of the message templates with the given values."""
    return _renderer.render(TEMPLATES[template_name], context)


def format_keys(keys: Iterable[Any], limit: Optional[int] = None) -> str:
    limit = MAX_DIAGNOSTIC_KEYS if limit is None else limit
    names = [str(k) for k in keys]
    if limit >= 0 and len(names) > limit:
        return ", ".join(names[:limit]) + ", ..."
    return ", ".join(names)


def format_kinds(kinds: Iterable[type]) -> str:
    return ", ".join(getattr(k, "__qualname__", repr(k)) for k in kinds)


def type_name(target_type: type) -> str:
    module = getattr(target_type, "__module__", None)
    if module in (None, "builtins"):
        return target_type.__qualname__
    return f"{module}.{target_type.__qualname__}"


# =================================================================
# Error kinds
# =================================================================

class BoxLangError(Exception):
    """Base class for every error the engine raises."""


class BoxRuntimeError(BoxLangError):
    pass


class BoxValidationError(BoxRuntimeError):
    """An argument or index failed validation."""


class NoFieldError(BoxRuntimeError):
    """No host field matches the requested name."""


class NoMethodError(BoxRuntimeError):
    """No assignable overload was found."""


class KeyNotFoundError(BoxRuntimeError):
    """A container key or object property is absent."""
    def __init__(self, message: str, keys: Optional[Iterable[Any]] = None, target: Any = None):
        super().__init__(message)
        self.keys = list(keys) if keys is not None else []
        self.target = target


class InvocationError(BoxRuntimeError):
    """A resolved call raised while executing. The original error is the __cause__."""


class ConstructionError(BoxRuntimeError):
    """Constructor resolution or instance bring-up failed."""


# Conditions that safe mode degrades to the absent marker.
SAFE_RECOVERABLE = (NoFieldError, NoMethodError, KeyNotFoundError)
