"""Tests for ExecutionContext."""

from datetime import date, datetime, timezone

import pytest

from stepwise.domain.context import ExecutionContext


class TestPut:
    def test_put_and_get(self):
        ctx = ExecutionContext()
        ctx.put("offset", 20)
        assert ctx.get("offset") == 20
        assert "offset" in ctx
        assert len(ctx) == 1

    def test_put_none_removes(self):
        ctx = ExecutionContext({"offset": 1})
        ctx.put("offset", None)
        assert "offset" not in ctx
        assert ctx.is_dirty

    def test_put_none_on_missing_key_is_clean(self):
        ctx = ExecutionContext()
        ctx.put("offset", None)
        assert not ctx.is_dirty

    def test_supported_values(self):
        ctx = ExecutionContext()
        ctx.put_all(
            {
                "s": "x",
                "i": 1,
                "f": 1.5,
                "b": True,
                "d": date(2024, 1, 1),
                "dt": datetime(2024, 1, 1, tzinfo=timezone.utc),
                "nested": {"a": 1, "deeper": {"b": "c"}},
            }
        )
        assert len(ctx) == 7

    def test_unsupported_value(self):
        with pytest.raises(TypeError):
            ExecutionContext().put("obj", object())

    def test_non_string_nested_key(self):
        with pytest.raises(TypeError):
            ExecutionContext().put("nested", {1: "x"})

    def test_non_string_key(self):
        with pytest.raises(TypeError):
            ExecutionContext().put(1, "x")


class TestDirtyFlag:
    def test_new_context_is_clean(self):
        assert not ExecutionContext({"a": 1}).is_dirty

    def test_change_marks_dirty(self):
        ctx = ExecutionContext()
        ctx.put("a", 1)
        assert ctx.is_dirty

    def test_same_value_stays_clean(self):
        ctx = ExecutionContext({"a": 1})
        ctx.put("a", 1)
        assert not ctx.is_dirty

    def test_type_change_is_a_change(self):
        ctx = ExecutionContext({"a": 1})
        ctx.put("a", True)
        assert ctx.is_dirty

    def test_clear_dirty_flag(self):
        ctx = ExecutionContext()
        ctx.put("a", 1)
        ctx.clear_dirty_flag()
        assert not ctx.is_dirty

    def test_remove_marks_dirty(self):
        ctx = ExecutionContext({"a": 1})
        assert ctx.remove("a") == 1
        assert ctx.is_dirty

    def test_clear(self):
        ctx = ExecutionContext({"a": 1})
        ctx.clear()
        assert ctx.is_empty
        assert ctx.is_dirty


class TestTypedAccess:
    def test_get_string(self):
        assert ExecutionContext({"k": "v"}).get_string("k") == "v"

    def test_get_int_rejects_bool(self):
        with pytest.raises(TypeError):
            ExecutionContext({"k": True}).get_int("k")

    def test_get_float_wrong_type(self):
        with pytest.raises(TypeError):
            ExecutionContext({"k": "1.5"}).get_float("k")

    def test_missing_key_without_default(self):
        with pytest.raises(KeyError):
            ExecutionContext().get_int("k")

    def test_missing_key_with_default(self):
        assert ExecutionContext().get_int("k", 5) == 5


class TestCopySemantics:
    def test_copy_is_independent(self):
        source = ExecutionContext({"nested": {"a": 1}})
        copy = ExecutionContext(source)
        copy.put("nested", {"a": 2})
        assert source.get("nested") == {"a": 1}

    def test_to_dict_is_a_copy(self):
        ctx = ExecutionContext({"nested": {"a": 1}})
        data = ctx.to_dict()
        data["nested"]["a"] = 99
        assert ctx.get("nested") == {"a": 1}

    def test_equality_ignores_dirty_flag(self):
        a = ExecutionContext({"x": 1})
        b = ExecutionContext()
        b.put("x", 1)
        assert a == b

    def test_unhashable(self):
        with pytest.raises(TypeError):
            hash(ExecutionContext())

    def test_contains_value(self):
        ctx = ExecutionContext({"x": "needle"})
        assert ctx.contains_value("needle")
        assert ctx.contains_key("x")
        assert list(ctx.keys()) == ["x"]
