"""
The caching resolver and overload resolution.

`Resolver.resolve` maps (target type, name, argument kinds) to a MethodRecord,
discovering it at most once per signature. Discovery filters the type's
callable members by name, arity and per-parameter assignability and takes the
first survivor in enumeration order; there is no most-specific tie-break.
"""
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from boxref.boxref_datatypes import FieldRecord, Key, MemberInfo, MethodRecord, TargetRef
from boxref.boxref_errors import (
    NoFieldError, NoMethodError, format_keys, format_kinds, render, type_name,
)
from boxref.boxref_introspect import HostIntrospector, accepts_kinds

# Kind vector used in cache keys for field lookups
FIELD_MARKER = "<field>"

CacheKey = Tuple[type, str, Any]


class MethodCache:
    """Concurrent mapping from a composite key to an immutable record.

    Reads never lock. A miss takes the lock only around re-check, create and
    insert; a factory that raises inserts nothing.
    """
    def __init__(self):
        self._entries: Dict[CacheKey, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: CacheKey) -> Optional[Any]:
        return self._entries.get(key)

    def get_or_create(self, key: CacheKey, factory: Callable[[], Any]):
        """Returns (record, created)."""
        found = self._entries.get(key)
        if found is not None:
            return found, False
        with self._lock:
            found = self._entries.get(key)
            if found is not None:
                return found, False
            found = factory()
            self._entries[key] = found
        return found, True

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries


class Resolver:
    def __init__(self, introspector: Optional[HostIntrospector] = None, cache_enabled: bool = True, debug: bool = False,
                 max_diagnostic_keys: Optional[int] = None):
        self.introspector = introspector or HostIntrospector()
        self.max_diagnostic_keys = max_diagnostic_keys
        self.cache = MethodCache()
        # Read without synchronization; a stale read costs one extra discovery.
        self.cache_enabled = cache_enabled
        self.debug = debug
        self.discoveries = 0

    def _dbg(self, *parts):
        import os, sys
        if self.debug or os.environ.get("BOXREF_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except (OSError, ValueError):
                pass

    # --- cache plumbing ---

    def _cached(self, key: CacheKey, factory: Callable[[], Any]):
        if not self.cache_enabled:
            return factory()
        record, created = self.cache.get_or_create(key, factory)
        self._dbg("CACHE", "miss" if created else "hit", key[0].__qualname__, repr(key[1]))
        return record

    def clear_cache(self):
        self.cache.clear()

    def cache_size(self) -> int:
        return len(self.cache)

    # --- entry points ---

    def resolve(self, target: TargetRef, name: Key, argument_kinds: Tuple[type, ...] = ()) -> MethodRecord:
        """Resolves a named call on a target. Raises NoMethodError."""
        kinds = tuple(argument_kinds)
        key = (target.target_type, name.name_no_case, kinds)
        return self._cached(key, lambda: self.discover(target.target_type, name, kinds))

    def resolve_constructor(self, target_type: type, argument_kinds: Tuple[type, ...] = ()) -> MethodRecord:
        kinds = tuple(argument_kinds)
        key = (target_type, Key.new_instance.name_no_case, kinds)
        return self._cached(key, lambda: self.discover_constructor(target_type, kinds))

    def resolve_field(self, target_type: type, name: Key) -> FieldRecord:
        """Resolves a class-declared field. Raises NoFieldError."""
        key = (target_type, name.name_no_case, FIELD_MARKER)
        return self._cached(key, lambda: self.discover_field(target_type, name))

    # --- discovery ---

    def discover(self, target_type: type, name: Key, argument_kinds: Tuple[type, ...]) -> MethodRecord:
        self.discoveries += 1
        candidates = [
            m for m in self.introspector.list_methods(target_type)
            if m.name.casefold() == name.name_no_case
        ]
        chosen = self._select(candidates, argument_kinds)
        if chosen is None:
            self._dbg("DISCOVER", "no match", type_name(target_type), name.name, format_kinds(argument_kinds))
            raise NoMethodError(render(
                "no_method",
                name=name.name,
                type=type_name(target_type),
                arity=len(argument_kinds),
                kinds=format_kinds(argument_kinds),
                methods=format_keys(self.introspector.method_names(target_type), self.max_diagnostic_keys),
            ))
        self._dbg("DISCOVER", type_name(target_type), name.name, "->", chosen.owner.__qualname__ + "." + chosen.attr)
        return self._record(chosen)

    def discover_constructor(self, target_type: type, argument_kinds: Tuple[type, ...]) -> MethodRecord:
        # Constructors are matched on arity and assignability only.
        self.discoveries += 1
        chosen = self._select(self.introspector.list_constructors(target_type), argument_kinds)
        if chosen is None:
            raise NoMethodError(render(
                "no_constructor",
                type=type_name(target_type),
                arity=len(argument_kinds),
                kinds=format_kinds(argument_kinds),
            ))
        return self._record(chosen)

    def discover_field(self, target_type: type, name: Key) -> FieldRecord:
        self.discoveries += 1
        record = self.introspector.find_field(target_type, name)
        if record is None:
            raise NoFieldError(render("no_field", name=name.name, type=type_name(target_type)))
        return record

    def _select(self, candidates, argument_kinds) -> Optional[MemberInfo]:
        count = len(argument_kinds)
        for info in candidates:
            if info.accepts_arity(count) and accepts_kinds(info, argument_kinds):
                return info
        return None

    @staticmethod
    def _record(info: MemberInfo) -> MethodRecord:
        return MethodRecord(
            name=info.name,
            handle=info.member,
            owner=info.owner,
            is_static=info.is_static,
            arity=info.arity,
        )
