import pytest

from envreload.stackref import (
    ReborrowError,
    Scope,
    StackGoneError,
    StackHandle,
    can_reborrow,
    reborrow,
    scope,
)


class NestedConfig:
    def __init__(self, active):
        self.active = active

    def static_fields(self):
        return ["active"]

    def get_field(self, name):
        if name == "active":
            return self.active
        return None


class Config:
    def __init__(self):
        self.version = "1.0"
        self.nested = NestedConfig(True)

    def static_fields(self):
        return ["version", "nested"]

    def get_field(self, name):
        if name == "version":
            return self.version
        if name == "nested":
            return reborrow(self, lambda slf, sc: sc.struct_object_ref(slf.nested))
        return None


class Utils:
    def call_method(self, name, *args):
        if name == "greet":
            return "hello " + " ".join(args)
        raise AttributeError(name)

    def __str__(self):
        return "<utils>"


def test_stack_handle():
    value = [1, 2, 3]

    def body(sc):
        handle = sc.handle(value)
        assert handle.with_value(len) == 3
        return handle

    leaked = scope(body)
    assert len(value) == 3
    assert not leaked.is_valid()


def test_stack_handle_panic():
    value = [1, 2, 3]

    def body(sc):
        handle = sc.handle(value)
        assert handle.with_value(len) == 3
        return handle

    leaked = scope(body)
    with pytest.raises(StackGoneError, match="stack is gone"):
        leaked.with_value(len)


def test_seq_object_ref():
    items = [1, 2, 3, 4]

    def body(sc):
        handle = sc.seq_object_ref(items)
        return handle.kind, handle.item_count(), handle.get_item(1), handle.get_item(10)

    assert scope(body) == ("seq", 4, 2, None)


def test_struct_object_ref_with_reborrow():
    config = Config()

    def body(sc):
        handle = sc.struct_object_ref(config)
        nested = handle.get_field("nested")
        return (
            handle.get_field("version"),
            handle.fields(),
            handle.field_count(),
            nested.get_field("active"),
            nested.kind,
        )

    assert scope(body) == ("1.0", ["version", "nested"], 2, True, "struct")


def test_reborrowed_handle_dies_with_outer_scope():
    config = Config()

    def body(sc):
        nested = sc.struct_object_ref(config).get_field("nested")
        assert nested.is_valid()
        return nested

    nested = scope(body)
    assert not nested.is_valid()
    with pytest.raises(StackGoneError):
        nested.get_field("active")


def test_reborrow_without_handle():
    with pytest.raises(ReborrowError, match="no handle on the stack"):
        reborrow(Config(), lambda slf, sc: None)


def test_reborrow_wrong_object():
    other = NestedConfig(False)

    def body(sc):
        handle = sc.handle(Config())
        return handle.with_value(lambda v: reborrow(other, lambda slf, s: 1))

    with pytest.raises(ReborrowError, match="not held in an active stack handle"):
        scope(body)


def test_can_reborrow():
    config = Config()
    assert can_reborrow(config) is False

    def body(sc):
        handle = sc.handle(config)
        inside = handle.with_value(can_reborrow)
        other = handle.with_value(lambda v: can_reborrow(object()))
        return inside, other

    assert scope(body) == (True, False)
    assert can_reborrow(config) is False


def test_object_ref_infers_kind():
    def body(sc):
        return (
            sc.object_ref([1, 2]).kind,
            sc.object_ref({"a": 1}).kind,
            sc.object_ref(Utils()).kind,
            sc.object_ref(Config()).kind,
        )

    assert scope(body) == ("seq", "struct", "plain", "struct")


def test_call_method_and_call():
    def body(sc):
        utils = sc.object_ref(Utils())
        func = sc.object_ref(lambda a, b: a + b)
        return utils.call_method("greet", "a", "b"), func.call(2, 3), str(utils)

    assert scope(body) == ("hello a b", 5, "<utils>")


def test_mapping_struct_fields():
    data = {"x": 1, "y": 2}

    def body(sc):
        handle = sc.struct_object_ref(data)
        return handle.fields(), handle.field_count(), handle.get_field("y"), handle.get_field("z")

    assert scope(body) == (["x", "y"], 2, 2, None)


def test_scope_context_manager_and_close():
    with Scope() as sc:
        handle = sc.handle("abc")
        assert handle.is_valid()
        assert handle.with_value(str.upper) == "ABC"
    assert not handle.is_valid()
    sc.close()
    assert not handle.is_valid()


def test_scope_returns_result():
    assert scope(lambda sc: 42) == 42


def test_stack_handle_type():
    handle = scope(lambda sc: sc.handle(1))
    assert isinstance(handle, StackHandle) and handle.is_valid() is False