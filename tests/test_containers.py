import pytest

from boxref.boxref_containers import Array, GenericMeta, Struct
from boxref.boxref_context import BoxContext
from boxref.boxref_datatypes import ABSENT, Key
from boxref.boxref_errors import BoxRuntimeError, BoxValidationError, KeyNotFoundError
from boxref.boxref_functions import BoxLangType
from boxref.boxref_interop import InteropService


# --- Struct Tests ---

def test_struct_keys_are_case_insensitive():
    s = Struct({"Name": "brad"})
    assert s["name"] == "brad"
    assert "NAME" in s
    s["NAME"] = "luis"
    assert s.key_names() == ["Name"]
    assert s["Name"] == "luis"
    assert len(s) == 1


def test_struct_rewrites_keep_first_casing_for_every_key():
    s = Struct()
    for i in range(200):
        s[f"Key{i}"] = i
    for i in range(200):
        s[f"KEY{i}"] = i * 2
    assert len(s) == 200
    assert s.key_names()[:2] == ["Key0", "Key1"]
    assert s["key199"] == 398


def test_struct_of_pairs_and_equality():
    s = Struct.of("a", 1, "b", 2)
    assert list(s) == ["a", "b"]
    assert s == {"A": 1, "B": 2}
    assert s == Struct(a=1, b=2)
    with pytest.raises(BoxValidationError):
        Struct.of("a")


def test_struct_stores_none_distinct_from_absent():
    s = Struct(a=None)
    assert s.dereference(None, Key("a")) is None
    assert s.dereference(None, Key("b"), True) is ABSENT


def test_struct_missing_key_lists_valid_keys():
    s = Struct(alpha=1, beta=2)
    with pytest.raises(KeyNotFoundError) as exc:
        s.dereference(None, Key("gamma"))
    assert exc.value.keys == ["alpha", "beta"]
    assert "alpha, beta" in str(exc.value)


def test_struct_invokes_callable_values():
    s = Struct(double=lambda x: x * 2, name="x")
    ctx = BoxContext()
    assert s.dereference_and_invoke(ctx, Key("DOUBLE"), (4,)) == 8
    with pytest.raises(BoxRuntimeError):
        s.dereference_and_invoke(ctx, Key("name"), ())
    assert s.dereference_and_invoke(ctx, Key("missing"), (), True) is ABSENT


def test_struct_callable_receives_context_when_asked():
    seen = []

    def remember(value, context=None):
        seen.append(context)
        return value

    ctx = BoxContext()
    s = Struct(remember=remember)
    assert s.dereference_and_invoke(ctx, Key("remember"), {"value": 3}) == 3
    assert seen == [ctx]


def test_struct_key_array():
    s = Struct(a=1, b=2)
    keys = s.dereference_and_invoke(BoxContext(), Key("keyArray"), ())
    assert isinstance(keys, Array)
    assert keys == ["a", "b"]


def test_struct_member_methods_come_first():
    svc = InteropService()
    svc.functions.register_member_method("len", BoxLangType.STRUCT, lambda s: len(s))
    s = Struct(a=1, len="shadowed")
    assert svc.dereference_and_invoke(s, "len", ()) == 2


def test_struct_meta_is_cached():
    s = Struct(a=1)
    meta = s.dereference(None, Key("$bx"))
    assert isinstance(meta, GenericMeta)
    assert meta is s.dereference(None, Key("$BX"))
    assert meta.meta["name"] == "Struct"
    assert meta.target is s


# --- Array Tests ---

def test_array_is_one_based_for_scripts():
    a = Array(["x", "y"])
    assert a.dereference(None, Key.of(1)) == "x"
    assert a.dereference(None, Key("2")) == "y"
    assert a[0] == "x"


def test_array_bounds():
    a = Array(["x", "y"])
    assert a.dereference(None, Key.of(0), True) is ABSENT
    assert a.dereference(None, Key.of(3), True) is ABSENT
    with pytest.raises(BoxValidationError):
        a.dereference(None, Key.of(3))
    with pytest.raises(BoxValidationError):
        a.dereference(None, Key("first"))


def test_array_length_key_matches_raw_sequences():
    svc = InteropService()
    a = Array([1, 2, 3])
    assert a.dereference(None, Key("length")) == 3
    assert svc.dereference(a, "LENGTH") == 3
    assert svc.dereference(a, "length", safe=True) == 3
    assert svc.dereference(a, "length") == svc.dereference([1, 2, 3], "length")


def test_array_assign_pads_with_absent():
    a = Array(["x", "y"])
    a.assign(None, Key.of(5), "z")
    assert len(a) == 5
    assert a[2] is ABSENT and a[3] is ABSENT
    assert a[4] == "z"
    with pytest.raises(BoxValidationError):
        a.assign(None, Key.of(0), "nope")


def test_array_mutable_sequence_protocol():
    a = Array()
    a.append(1)
    a.extend([2, 3])
    a.insert(0, 0)
    assert a == [0, 1, 2, 3]
    del a[0]
    assert list(a) == [1, 2, 3]


def test_array_member_methods():
    svc = InteropService()

    @svc.functions.member_method("contains", BoxLangType.ARRAY)
    def contains(arr, value):
        return value in arr

    a = Array([1, 2])
    assert svc.dereference_and_invoke(a, "Contains", (2,)) is True
    assert svc.dereference_and_invoke(a, "contains", (9,)) is False
