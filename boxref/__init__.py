"""
boxref: dynamic member resolution and invocation for a scripting runtime
hosted on Python.
"""
from boxref.boxref_datatypes import (
    ABSENT, FieldRecord, IntKey, Key, MethodRecord, Referenceable, TargetRef, is_absent,
)
from boxref.boxref_errors import (
    BoxLangError, BoxRuntimeError, BoxValidationError, ConstructionError,
    InvocationError, KeyNotFoundError, NoFieldError, NoMethodError,
)
from boxref.boxref_containers import Array, ClassRunnable, GenericMeta, Struct
from boxref.boxref_context import BoxContext, ClassBoxContext
from boxref.boxref_config import RuntimeConfig, load_config
from boxref.boxref_functions import BoxLangType, FunctionService
from boxref.boxref_introspect import HostIntrospector, host_method
from boxref.boxref_resolver import MethodCache, Resolver
from boxref.boxref_interop import InteropService, TargetKind, classify
from boxref.boxref_dynamic import DynamicObject, Referencer
