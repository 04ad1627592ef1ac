from __future__ import annotations

import copy
import re
import threading

import pytest

from opforge.context import UNSET
from opforge.errors import SynthesisError, UnresolvedOperationError
from opforge.host import DynamicOperations
from opforge.rule import OperationRule, pattern_matcher
from opforge.settings import ResolverSettings, set_settings


def _named(name: str):
    return lambda ctx: ctx.operation_name == name


def _returns(value, calls=None):
    def producer(ctx):
        if calls is not None:
            calls.append(ctx.operation_name)
        return f"const {value}"

    return producer


class _Fallback:
    def __getattr__(self, name):
        return 10


@pytest.mark.unit
def test_first_matching_rule_wins(make_host):
    host = make_host()
    third_calls: list[str] = []
    host.add_operation_rule(matcher=_named("aaa"), specification_producer=_returns(1))
    host.add_operation_rule(matcher=_named("bbb"), specification_producer=_returns(2))
    host.add_operation_rule(matcher=_named("bbb"), specification_producer=_returns(3, third_calls))

    instance = host()
    assert instance.bbb() == 2
    assert instance.aaa() == 1
    assert third_calls == []


@pytest.mark.unit
def test_unmatched_name_falls_back_to_base_getattr(make_host):
    host = make_host("WithFallback", _Fallback)
    host.add_operation_rule(matcher=_named("aaa"), specification_producer=_returns(1))

    instance = host()
    assert instance.aaa() == 1
    assert instance.ccc == 10
    assert "ccc" not in vars(host)


@pytest.mark.unit
def test_unmatched_name_without_fallback_is_an_attribute_error(make_host):
    host = make_host()
    host.add_operation_rule(matcher=_named("aaa"), specification_producer=_returns(1))
    instance = host()

    with pytest.raises(UnresolvedOperationError) as excinfo:
        instance.ccc()
    assert isinstance(excinfo.value, AttributeError)
    assert excinfo.value.operation_name == "ccc"
    assert "'Host' object has no attribute 'ccc'" in str(excinfo.value)
    assert not hasattr(instance, "ccc")
    assert getattr(instance, "ccc", "default") == "default"


@pytest.mark.unit
def test_worked_example_reader_and_thrower(make_host):
    calls: list[str] = []
    host = make_host("Record")

    def reader(ctx):
        calls.append(ctx.operation_name)
        return f"field {ctx.field} or none"

    host.add_operation_rule(
        matcher=pattern_matcher(r"get_(?P<field>\w+)"),
        specification_producer=reader,
    )
    host.add_operation_rule(
        matcher=lambda ctx: True,
        specification_producer=lambda ctx: 'raise NotImplementedError "{name} is not an operation"',
    )

    record = host()
    record.x = 5
    assert record.get_x() == 5
    assert host().get_x() is None

    with pytest.raises(NotImplementedError, match="frobnicate is not an operation"):
        record.frobnicate()

    assert calls == ["get_x"]
    assert "get_x" in vars(host)
    assert host.operation_registry().installed() == ("get_x", "frobnicate")


@pytest.mark.unit
def test_field_reader_default_survives_catch_all_rule(make_host):
    host = make_host("Record")
    host.add_operation_rule(
        matcher=pattern_matcher(r"get_(?P<field>\w+)"),
        specification_producer=lambda ctx: f"field {ctx.field} or none",
    )
    host.add_operation_rule(
        matcher=lambda ctx: True,
        specification_producer=lambda ctx: 'raise NotImplementedError "{name}"',
    )
    strict = make_host("Strict")
    strict.add_operation_rule(matcher=_named("get_x"), specification_producer=lambda ctx: "field x")
    strict.add_operation_rule(matcher=lambda ctx: True, specification_producer=_returns(1))

    assert host().get_x() is None
    assert "x" not in vars(host)
    with pytest.raises(AttributeError):
        strict().get_x()
    assert "x" not in vars(strict)


@pytest.mark.unit
def test_installed_operation_bypasses_resolver(make_host, monkeypatch):
    host = make_host()
    host.add_operation_rule(matcher=_named("aaa"), specification_producer=_returns(1))
    host().aaa()

    def _explode(self, name):
        raise AssertionError(f"resolver re-entered for {name}")

    monkeypatch.setattr(DynamicOperations, "__getattr__", _explode)
    assert host().aaa() == 1
    assert host.aaa(host()) == 1


@pytest.mark.unit
def test_each_distinct_name_is_synthesized_once(make_host):
    calls: list[str] = []
    host = make_host()
    host.add_operation_rule(matcher=lambda ctx: ctx.operation_name.startswith("n"), specification_producer=_returns(0, calls))

    first, second = host(), host()
    for instance in (first, second, first):
        instance.n1()
        instance.n2()

    assert calls == ["n1", "n2"]


@pytest.mark.unit
def test_slot_from_matcher_reaches_synthesized_body(make_host):
    host = make_host()

    def matcher(ctx):
        ctx.my_data = "hello"
        return ctx.operation_name == "aaa"

    host.add_operation_rule(matcher=matcher, specification_producer=lambda ctx: "slot my_data")
    assert host().aaa() == "hello"


@pytest.mark.unit
def test_producer_sees_name_and_original_receiver(make_host):
    host = make_host()
    seen = {}

    def producer(ctx):
        seen["name"] = ctx.operation_name
        seen["receiver"] = ctx.original_receiver
        return "self"

    host.add_operation_rule(matcher=_named("aaa"), specification_producer=producer)
    instance = host()

    assert instance.aaa() is instance
    assert seen == {"name": "aaa", "receiver": instance}


@pytest.mark.unit
def test_direct_implementation_receives_call_arguments(make_host):
    host = make_host()

    @host.operation_rule(pattern_matcher(r"add_(?P<amount>\d+)"), description="adders")
    def add(self, value, *, times=1):
        return value * times

    instance = host()
    assert instance.add_2(3, times=2) == 6
    assert instance.add_5(1) == 1
    assert host.operation_rules()[0].description == "adders"


@pytest.mark.unit
def test_can_resolve_matches_without_installing(make_host):
    calls: list[str] = []
    host = make_host()
    host.add_operation_rule(matcher=pattern_matcher(r"aaa_\w+"), specification_producer=_returns(1, calls))
    instance = host()

    assert instance.can_resolve("aaa_1")
    assert instance.can_resolve("aaa_2")
    assert not instance.can_resolve("bbb_1")
    assert calls == []
    assert "aaa_1" not in vars(host)

    assert instance.responds_to("aaa_1")
    assert instance.responds_to("can_resolve")
    assert not instance.responds_to("bbb_1")


@pytest.mark.unit
def test_can_resolve_ignores_later_synthesis_failures(make_host):
    host = make_host()
    host.add_operation_rule(matcher=_named("broken"), specification_producer=lambda ctx: "not a spec")
    instance = host()

    assert instance.can_resolve("broken")
    with pytest.raises(SynthesisError):
        instance.broken


@pytest.mark.unit
def test_synthesis_failure_is_not_retried_with_next_rule(make_host):
    fallback_calls: list[str] = []
    host = make_host()
    host.add_operation_rule(matcher=_named("aaa"), specification_producer=lambda ctx: "const")
    host.add_operation_rule(matcher=lambda ctx: True, specification_producer=_returns(2, fallback_calls))

    with pytest.raises(SynthesisError):
        host().aaa()
    assert fallback_calls == []
    assert "aaa" not in vars(host)


@pytest.mark.unit
def test_matcher_errors_propagate_unchanged(make_host):
    host = make_host()

    def matcher(ctx):
        raise re.error("bad pattern")

    host.add_operation_rule(matcher=matcher, specification_producer=_returns(1))
    with pytest.raises(re.error):
        host().aaa


@pytest.mark.unit
def test_invoke_operation_resolves_and_calls(make_host):
    host = make_host()
    host.add_operation_rule(matcher=_named("echo"), specification_producer=lambda ctx: "arg 0")
    assert host().invoke_operation("echo", "x") == "x"


@pytest.mark.unit
def test_subclasses_do_not_inherit_rules_by_default(make_host):
    parent = make_host("Parent")
    parent.add_operation_rule(matcher=_named("aaa"), specification_producer=_returns(1))

    class Child(parent):
        pass

    class OptedIn(parent, inherit_rules=True):
        pass

    OptedIn.add_operation_rule(matcher=_named("bbb"), specification_producer=_returns(2))

    assert Child.operation_rules() == ()
    with pytest.raises(AttributeError):
        Child().aaa()

    opted = OptedIn()
    assert opted.aaa() == 1
    assert opted.bbb() == 2
    assert "aaa" in vars(OptedIn)
    assert "aaa" not in vars(parent)


@pytest.mark.unit
def test_dunder_names_are_left_to_python(make_host):
    host = make_host()
    host.add_operation_rule(matcher=lambda ctx: True, specification_producer=_returns(1))
    instance = host()

    clone = copy.deepcopy(instance)
    assert type(clone) is host
    assert not instance.can_resolve("__deepcopy__")

    set_settings(ResolverSettings(resolve_dunder_names=True))
    assert instance.can_resolve("__deepcopy__")


@pytest.mark.unit
def test_properties_raising_attribute_error_are_not_shadowed(make_host):
    host = make_host()
    host.add_operation_rule(matcher=lambda ctx: True, specification_producer=_returns(1))

    def broken(self):
        raise AttributeError("inner")

    host.size = property(broken)

    with pytest.raises(UnresolvedOperationError):
        host().size
    assert isinstance(vars(host)["size"], property)


@pytest.mark.unit
def test_add_operation_rule_forms(make_host):
    host = make_host()
    built = OperationRule(matcher=_named("a"), specification_producer=_returns(1))

    def block(config):
        config.matcher = _named("b")
        config.specification_producer = _returns(2)

    host.add_operation_rule(built)
    host.add_operation_rule(configure=block)
    host.add_operation_rule(matcher=_named("c"), implementation=lambda self: 3)

    instance = host()
    assert (instance.a(), instance.b(), instance.c()) == (1, 2, 3)
    assert host.operation_rules()[0] is built
    assert host.operation_rules()[1].description == ""
    assert host.operation_rules()[1].undeclared is UNSET

    with pytest.raises(TypeError):
        host.add_operation_rule(built, matcher=_named("d"))


@pytest.mark.unit
def test_concurrent_resolution_installs_once(make_host):
    host = make_host()
    barrier = threading.Barrier(8)
    implementations = []

    def producer(ctx):
        def operation(self):
            return operation

        implementations.append(operation)
        return operation

    def matcher(ctx):
        barrier.wait(timeout=5)
        return True

    host.add_operation_rule(matcher=matcher, specification_producer=producer)
    results = []

    def worker():
        results.append(host().shared())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 8
    assert len(set(map(id, results))) == 1
    assert vars(host)["shared"] is results[0]
