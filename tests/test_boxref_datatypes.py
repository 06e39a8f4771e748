import dataclasses

import pytest

from boxref.boxref_datatypes import (
    ABSENT, Absent, IntKey, Key, MemberInfo, MethodRecord, TargetRef, is_absent,
)


# --- Key Tests ---

def test_key_equality_ignores_case():
    assert Key("sayHello") == Key("SAYHELLO")
    assert hash(Key("sayHello")) == hash(Key("sayhello"))
    assert Key("a") != Key("b")


def test_key_keeps_original_text():
    k = Key("MixedCase")
    assert k.name == "MixedCase"
    assert k.name_no_case == "mixedcase"
    assert k.original_value == "MixedCase"
    assert str(k) == "MixedCase"


def test_key_of_builds_int_keys():
    k = Key.of(3)
    assert isinstance(k, IntKey)
    assert k.int_value == 3
    assert k.original_value == 3
    assert k == Key("3")
    assert Key.of(k) is k


def test_key_int_value_only_for_digits():
    assert Key("12").int_value == 12
    assert Key("a1").int_value is None
    assert Key("-1").int_value is None
    assert Key("").int_value is None


def test_well_known_keys():
    assert Key.tag_context == Key("TAGCONTEXT")
    assert Key.box_meta.name == "$bx"
    assert Key.new_instance.name == ""


def test_keys_work_as_dict_keys():
    d = {Key("Name"): 1}
    assert d[Key("name")] == 1


# --- Absent Tests ---

def test_absent_is_a_falsy_singleton():
    assert Absent() is ABSENT
    assert not ABSENT
    assert ABSENT is not None
    assert is_absent(ABSENT)
    assert not is_absent(None)
    assert repr(ABSENT) == "<absent>"


# --- TargetRef Tests ---

class Thing:
    pass


def test_target_ref_forms():
    t = Thing()
    explicit = TargetRef(Thing, t)
    assert explicit.target_type is Thing and explicit.target_instance is t

    derived = TargetRef.of(t)
    assert derived.target_type is Thing
    assert derived.has_instance

    static = TargetRef.of_type(Thing)
    assert static.target_instance is None
    assert not static.has_instance


def test_target_ref_requires_a_class():
    with pytest.raises(TypeError):
        TargetRef("Thing")


# --- Record Tests ---

def test_method_record_is_immutable():
    rec = MethodRecord("go", Thing, Thing, False, 0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        rec.arity = 2


def test_member_info_arity_is_exact():
    info = MemberInfo("pad", "pad", None, Thing, False, ((str,), (int,)))
    assert info.arity == 2
    assert info.accepts_arity(2)
    assert not info.accepts_arity(1)
    assert not info.accepts_arity(0)
    assert not info.accepts_arity(3)


def test_member_info_without_signature_accepts_any_arity():
    info = MemberInfo("len", "len", None, Thing, False, None)
    assert info.arity == -1
    assert info.accepts_arity(0)
    assert info.accepts_arity(5)
