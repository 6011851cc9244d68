"""Tests for computed state."""

from airstate import ABSENT, Channel, ComputeFailure, TypeConflict


def _total(values):
    return values["price"] * values["qty"]


class TestComputed:
    def test_initial_computation_seeds_target(self, runtime):
        runtime.write("price", 3)
        runtime.write("qty", 2)
        runtime.register_computed("total", ["price", "qty"], _total)
        assert runtime.read("total") == 6
        assert runtime.is_computed("total")

    def test_recomputes_on_dependency_change(self, runtime):
        runtime.write("price", 3)
        runtime.write("qty", 2)
        runtime.register_computed("total", ["price", "qty"], _total)
        runtime.write("qty", 5)
        assert runtime.read("total") == 15

    def test_ignores_unrelated_keys(self, runtime):
        calls = []
        runtime.write("a", 1)

        def compute(values):
            calls.append(values)
            return values["a"]

        runtime.register_computed("copy", ["a"], compute)
        runtime.write("unrelated", 1)
        assert len(calls) == 1

    def test_absent_dependency(self, runtime):
        seen = []

        def compute(values):
            seen.append(values["missing"])
            return 0

        runtime.register_computed("target", ["missing"], compute)
        assert seen == [ABSENT]
        assert not ABSENT

    def test_same_result_writes_once(self, runtime):
        runtime.write("n", 1)
        runtime.register_computed("parity", ["n"], lambda v: v["n"] % 2)
        notified = []
        runtime.state("parity").add_listener(notified.append)

        runtime.write("n", 3)
        runtime.write("n", 5)
        assert notified == []

        runtime.write("n", 4)
        assert notified == [0]

    def test_suppresses_second_identical_result(self, runtime):
        runtime.write("n", 1)
        runtime.register_computed("sign", ["n"], lambda v: "pos" if v["n"] > 0 else "neg")
        notified = []
        runtime.state("sign").add_listener(notified.append)
        runtime.write("n", -1)
        runtime.write("n", -2)
        assert notified == ["neg"]

    def test_failure_keeps_last_value(self, runtime, delegate):
        runtime.write("n", 2)
        runtime.register_computed("inverse", ["n"], lambda v: 1 / v["n"])
        runtime.write("n", 0)
        assert runtime.read("inverse") == 0.5
        [(message, context, is_error)] = delegate.errors()
        assert message == "Error computing state"
        assert context["key"] == "inverse"
        assert isinstance(context["error"], ComputeFailure)
        assert isinstance(context["error"].error, ZeroDivisionError)

        runtime.write("n", 4)
        assert runtime.read("inverse") == 0.25

    def test_writes_attributed_to_computed(self, runtime, delegate):
        runtime.write("cart.qty", 1)
        runtime.register_computed("cart.total", ["cart.qty"], lambda v: v["cart.qty"] * 10)
        assert ("computed", "cart", "data", "cart.total") in delegate.interactions

    def test_registration_logged(self, runtime, delegate):
        runtime.register_computed("t", ["b", "a"], lambda v: 0)
        assert ("Registered computed state", {"key": "t", "dependencies": ["a", "b"]}, False) in delegate.logs

    def test_unregister_keeps_value(self, runtime):
        runtime.write("n", 1)
        runtime.register_computed("double", ["n"], lambda v: v["n"] * 2)
        assert runtime.unregister_computed("double") is True
        runtime.write("n", 5)
        assert runtime.read("double") == 2
        assert not runtime.is_computed("double")
        assert runtime.unregister_computed("double") is False

    def test_reregister_replaces(self, runtime):
        runtime.write("n", 1)
        runtime.register_computed("out", ["n"], lambda v: v["n"] * 2)
        runtime.register_computed("out", ["n"], lambda v: v["n"] * 3)
        runtime.write("n", 2)
        assert runtime.read("out") == 6
        assert runtime.computed.registered_keys == ["out"]
        assert runtime.bus.count(Channel.STATE) == 1

    def test_chained_computed(self, runtime):
        runtime.write("n", 1)
        runtime.register_computed("double", ["n"], lambda v: v["n"] * 2)
        runtime.register_computed("quad", ["double"], lambda v: v["double"] * 2)
        runtime.write("n", 5)
        assert runtime.read("quad") == 20

    def test_chain_registered_out_of_order(self, runtime):
        runtime.register_computed("quad", ["double"], lambda v: 0 if v["double"] is ABSENT else v["double"] * 2)
        runtime.write("n", 1)
        runtime.register_computed("double", ["n"], lambda v: v["n"] * 2)
        assert runtime.read("quad") == 4

    def test_unregistered_mid_dispatch_is_ignored(self, runtime):
        runtime.write("n", 1)
        calls = []

        def compute(values):
            calls.append(values["n"])
            return values["n"]

        # Registered before the computed, so it runs first in the same dispatch.
        runtime.subscribe_state(lambda k, v: runtime.unregister_computed("copy") if k == "n" else None)
        runtime.register_computed("copy", ["n"], compute)
        runtime.write("n", 2)
        assert calls == [1]
        assert runtime.read("copy") == 1

    def test_evaluate_one_off(self, runtime):
        runtime.write("a", 2)
        assert runtime.computed.evaluate(["a", "b"], lambda v: (v["a"], v["b"])) == (2, ABSENT)
        assert runtime.computed.registered_keys == []

    def test_clear(self, runtime):
        runtime.write("n", 1)
        runtime.register_computed("x", ["n"], lambda v: v["n"])
        runtime.register_computed("y", ["n"], lambda v: v["n"])
        runtime.computed.clear()
        assert runtime.computed.registered_keys == []

    def test_result_of_other_type_is_logged(self, runtime, delegate):
        runtime.write("n", 1)
        runtime.register_computed("label", ["n"], lambda v: v["n"] if v["n"] > 0 else "negative")
        runtime.write("n", -1)
        assert runtime.read("label") == 1
        [(message, context, is_error)] = delegate.errors()
        assert message == "Error computing state"
        assert isinstance(context["error"].error, TypeConflict)

    def test_rejected_result_does_not_advance_last_value(self, runtime):
        runtime.write("n", 1)
        runtime.write("label", "one")
        runtime.register_computed("label", ["n"], lambda v: v["n"])
        assert runtime.computed.get("label").last_value != 1
        assert runtime.read("label") == "one"
