import decimal
import fractions
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Union

import pytest

from boxref.boxref_datatypes import Key, MemberInfo, TargetRef
from boxref.boxref_errors import NoFieldError, NoMethodError
from boxref.boxref_interop import InteropService
from boxref.boxref_introspect import HostIntrospector, host_method, is_assignable
from boxref.boxref_resolver import FIELD_MARKER, MethodCache, Resolver


class Calculator:
    def add(self, x: int):
        return ("one", x)

    @host_method("add")
    def add_pair(self, x: int, y: int):
        return ("two", x + y)


class OffsetCalculator:
    @host_method("add")
    def add_pair(self, x: int, y: int = 10):
        return ("pair", x, y)

    def add(self, x: int):
        return ("single", x)


class Numbers:
    def scale(self, factor: float):
        return factor * 2

    def count(self, n: int):
        return n

    def label(self, text: str):
        return text

    def maybe(self, n: Optional[int]):
        return n

    def either(self, v: Union[int, str]):
        return v

    def pad(self, text: str, width: int = 10):
        return text.ljust(width)

    def strict(self, *, flag):
        return flag

    def anything(self, value):
        return value

    def _hidden(self):
        return "hidden"


class Printer:
    def show(self, value: object):
        return "object"

    @host_method("show")
    def show_text(self, value: str):
        return "text"


class TextFirstPrinter:
    @host_method("show")
    def show_text(self, value: str):
        return "text"

    def show(self, value: object):
        return "object"


class Base:
    def greet(self, name: str):
        return "base"

    def wave(self):
        return "base wave"


class Child(Base):
    def greet(self, name: str):
        return "child"


class Factory:
    @staticmethod
    def make(n: int):
        return n

    @classmethod
    def build(cls, name: str):
        return cls()


class Point:
    x: int
    y: int
    ORIGIN = (0, 0)

    def __init__(self, x: int, y: int = 0):
        self.x = x
        self.y = y


def ref(obj):
    return TargetRef.of(obj)


# --- Overload Resolution Tests ---

def test_one_argument_never_selects_two_argument_overload():
    r = Resolver()
    one = r.resolve(ref(Calculator()), Key("add"), (int,))
    two = r.resolve(ref(Calculator()), Key("add"), (int, int))
    assert one.arity == 1
    assert one.handle is Calculator.__dict__["add"]
    assert two.arity == 2
    assert two.handle is Calculator.__dict__["add_pair"]
    with pytest.raises(NoMethodError):
        r.resolve(ref(Calculator()), Key("add"), (int, int, int))


def test_name_matching_ignores_case():
    r = Resolver()
    rec = r.resolve(ref(Calculator()), Key("ADD"), (int,))
    assert rec.name == "add"


def test_first_assignable_candidate_wins():
    r = Resolver()
    # Both overloads accept a str; the one declared first is chosen.
    assert r.resolve(ref(Printer()), Key("show"), (str,)).handle is Printer.__dict__["show"]
    assert r.resolve(ref(TextFirstPrinter()), Key("show"), (str,)).handle is TextFirstPrinter.__dict__["show_text"]
    assert r.resolve(ref(TextFirstPrinter()), Key("show"), (int,)).handle is TextFirstPrinter.__dict__["show"]


def test_own_members_before_inherited():
    r = Resolver()
    assert r.resolve(ref(Child()), Key("greet"), (str,)).owner is Child
    assert r.resolve(ref(Child()), Key("wave"), ()).owner is Base


def test_numeric_widening():
    r = Resolver()
    target = ref(Numbers())
    assert r.resolve(target, Key("scale"), (int,)).name == "scale"
    assert r.resolve(target, Key("scale"), (bool,)).name == "scale"
    assert r.resolve(target, Key("scale"), (fractions.Fraction,)).name == "scale"
    assert r.resolve(target, Key("count"), (bool,)).name == "count"
    with pytest.raises(NoMethodError):
        r.resolve(target, Key("count"), (float,))
    with pytest.raises(NoMethodError):
        r.resolve(target, Key("scale"), (decimal.Decimal,))


def test_none_is_assignable_to_reference_kinds_only():
    r = Resolver()
    target = ref(Numbers())
    assert r.resolve(target, Key("label"), (type(None),)).name == "label"
    with pytest.raises(NoMethodError):
        r.resolve(target, Key("count"), (type(None),))


def test_optional_and_union_parameters():
    r = Resolver()
    target = ref(Numbers())
    assert r.resolve(target, Key("maybe"), (int,)).name == "maybe"
    assert r.resolve(target, Key("maybe"), (type(None),)).name == "maybe"
    with pytest.raises(NoMethodError):
        r.resolve(target, Key("maybe"), (str,))
    assert r.resolve(target, Key("either"), (str,)).name == "either"
    with pytest.raises(NoMethodError):
        r.resolve(target, Key("either"), (list,))


def test_defaulted_parameters_still_take_one_argument():
    r = Resolver()
    target = ref(Numbers())
    assert r.resolve(target, Key("pad"), (str, int)).arity == 2
    with pytest.raises(NoMethodError):
        r.resolve(target, Key("pad"), (str,))


def test_arity_is_exact_even_when_a_defaulted_overload_comes_first():
    svc = InteropService()
    assert svc.invoke(TargetRef.of(OffsetCalculator()), "add", (1,)) == ("single", 1)
    assert svc.invoke(TargetRef.of(OffsetCalculator()), "add", (1, 2)) == ("pair", 1, 2)


def test_required_keyword_only_parameter_excludes_member():
    r = Resolver()
    with pytest.raises(NoMethodError):
        r.resolve(ref(Numbers()), Key("strict"), ())


def test_unannotated_parameter_accepts_anything():
    r = Resolver()
    assert r.resolve(ref(Numbers()), Key("anything"), (list,)).name == "anything"


def test_private_members_are_not_candidates():
    r = Resolver()
    with pytest.raises(NoMethodError):
        r.resolve(ref(Numbers()), Key("_hidden"), ())


def test_static_and_class_methods():
    r = Resolver()
    make = r.resolve(TargetRef.of_type(Factory), Key("make"), (int,))
    build = r.resolve(TargetRef.of_type(Factory), Key("build"), (str,))
    assert make.is_static and make.arity == 1
    assert build.is_static and build.arity == 1


def test_builtin_methods_resolve():
    r = Resolver()
    assert r.resolve(ref("abc"), Key("UPPER"), ()).name == "upper"
    assert r.resolve(ref("abc"), Key("zfill"), (int,)).is_static is False


def test_no_method_error_names_the_call():
    r = Resolver()
    with pytest.raises(NoMethodError) as exc:
        r.resolve(ref(Calculator()), Key("nope"), (int, str))
    msg = str(exc.value)
    assert "nope" in msg
    assert "Calculator" in msg
    assert "[2]" in msg
    assert "int, str" in msg
    assert "The available methods are [add]" in msg


def test_no_method_error_listing_is_capped():
    from boxref.boxref_config import RuntimeConfig
    svc = InteropService(RuntimeConfig(max_diagnostic_keys=1))
    with pytest.raises(NoMethodError) as exc:
        svc.invoke(Numbers(), "nope")
    assert "[scale, ...]" in str(exc.value)


def test_custom_introspector_is_the_only_dependency():
    class Registry(HostIntrospector):
        def list_methods(self, target_type):
            return [MemberInfo("ping", "ping", pong, target_type, False, ())]

    def pong(self):
        return "pong"

    r = Resolver(Registry())
    assert r.resolve(ref(Calculator()), Key("PING"), ()).handle is pong


# --- Constructor and Field Tests ---

def test_constructor_uses_arity_and_assignability_only():
    r = Resolver()
    assert r.resolve_constructor(Point, (int, int)).handle is Point
    with pytest.raises(NoMethodError):
        r.resolve_constructor(Point, (int,))
    with pytest.raises(NoMethodError) as exc:
        r.resolve_constructor(Point, (str, int))
    assert "constructor" in str(exc.value)


def test_resolve_field():
    r = Resolver()
    x = r.resolve_field(Point, Key("X"))
    assert x.name == "x"
    assert not x.is_static
    origin = r.resolve_field(Point, Key("origin"))
    assert origin.is_static
    assert r.resolve_field(Point, Key("x")) is x
    assert (Point, "x", FIELD_MARKER) in r.cache
    with pytest.raises(NoFieldError):
        r.resolve_field(Point, Key("z"))


# --- Assignability Tests ---

def test_is_assignable_rules():
    assert is_assignable(str, object)
    assert is_assignable(bool, int)
    assert is_assignable(int, complex)
    assert not is_assignable(float, int)
    assert is_assignable(type(None), list)
    assert not is_assignable(type(None), float)
    assert is_assignable(Child, Base)
    assert not is_assignable(Base, Child)


# --- Cache Tests ---

def test_cache_coherence():
    r = Resolver()
    target = ref(Calculator())
    first = r.resolve(target, Key("add"), (int,))
    second = r.resolve(TargetRef.of(Calculator()), Key("Add"), (int,))
    assert first is second
    assert r.discoveries == 1
    assert r.cache_size() == 1


def test_failed_resolutions_are_not_cached():
    r = Resolver()
    for _ in range(2):
        with pytest.raises(NoMethodError):
            r.resolve(ref(Calculator()), Key("missing"), ())
    assert r.discoveries == 2
    assert r.cache_size() == 0


def test_cache_toggle_changes_only_discovery():
    r = Resolver()
    target = ref(Calculator())
    cached = r.resolve(target, Key("add"), (int,))

    r.cache_enabled = False
    bypassed = r.resolve(target, Key("add"), (int,))
    r.resolve(target, Key("add"), (int,))
    assert r.discoveries == 3
    assert bypassed == cached
    assert bypassed.handle is cached.handle
    assert r.cache_size() == 1

    r.cache_enabled = True
    assert r.resolve(target, Key("add"), (int,)) is cached
    assert r.discoveries == 3


def test_clear_cache():
    r = Resolver()
    r.resolve(ref(Calculator()), Key("add"), (int,))
    r.clear_cache()
    assert r.cache_size() == 0


def test_concurrent_resolution_discovers_once():
    r = Resolver()
    target = ref(Calculator())
    start = threading.Barrier(8)

    def work(_):
        start.wait()
        return r.resolve(target, Key("add"), (int, int))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(work, range(8)))
    assert all(rec is results[0] for rec in results)
    assert r.discoveries == 1


def test_method_cache_factory_failure_inserts_nothing():
    cache = MethodCache()

    def boom():
        raise NoMethodError("no")

    with pytest.raises(NoMethodError):
        cache.get_or_create(("k",), boom)
    assert len(cache) == 0
    value, created = cache.get_or_create(("k",), lambda: "v")
    assert (value, created) == ("v", True)
    assert cache.get_or_create(("k",), lambda: "other") == ("v", False)
