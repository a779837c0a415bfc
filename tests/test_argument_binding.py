import pytest
from decompiler.analysis.argument_binding import bind_arguments, site_operands
from decompiler.core.fact_store import FactStore
from decompiler.core.violations import ViolationKind


def create_call_facts(call_uses, return_uses=(), **overrides):
    """
    Helper: one CALLPRIVATE statement in Bcaller, one RETURNPRIVATE in Bexit.
    """
    relations = dict(
        statement_opcode=[("scall", "CALLPRIVATE"), ("sret", "RETURNPRIVATE")],
        statement_block=[("scall", "Bcaller"), ("sret", "Bexit")],
        statement_uses=[("scall", v, i) for v, i in call_uses] + [("sret", v, i) for v, i in return_uses],
        in_function=[("Bcaller", "Fmain"), ("Bexit", "Fcallee")],
    )
    relations.update(overrides)
    return FactStore.from_relations(**relations)


def test_actual_argument_positions_are_rebased():
    """Scenario C: raw position 2 becomes argument position 1."""
    facts = create_call_facts([("target", 0), ("a", 1), ("v", 2)])

    bindings = bind_arguments(facts)

    assert ("Bcaller", "v", 1) in bindings.actual_args
    assert sorted(bindings.actual_args) == [("Bcaller", "a", 0), ("Bcaller", "v", 1)]
    assert bindings.violations == ()


def test_callee_slot_is_not_an_argument():
    facts = create_call_facts([("target", 0)])

    bindings = bind_arguments(facts)

    assert bindings.actual_args == ()


def test_formal_return_args_attributed_to_returning_function():
    facts = create_call_facts(
        [("target", 0)],
        return_uses=[("retaddr", 0), ("r0", 1), ("r1", 2)],
    )

    bindings = bind_arguments(facts)

    assert sorted(bindings.formal_return_args) == [("Fcallee", "r0", 0), ("Fcallee", "r1", 1)]


def test_gap_in_call_positions_is_reported_and_not_bound():
    facts = create_call_facts([("target", 0), ("a", 1), ("b", 3)])

    bindings = bind_arguments(facts)

    assert bindings.actual_args == ()
    assert [v.kind for v in bindings.violations] == [ViolationKind.NON_CONTIGUOUS_BINDING]
    assert bindings.violations[0].entity == "scall"


def test_positions_starting_above_one_are_reported():
    facts = create_call_facts([("target", 0), ("a", 2), ("b", 3)])

    bindings = bind_arguments(facts)

    assert bindings.actual_args == ()
    assert bindings.violations[0].kind == ViolationKind.NON_CONTIGUOUS_BINDING


def test_duplicate_position_is_reported():
    facts = create_call_facts([("target", 0), ("a", 1), ("b", 1)])

    bindings = bind_arguments(facts)

    assert bindings.actual_args == ()
    assert bindings.violations[0].kind == ViolationKind.DUPLICATE_BINDING_POSITION


def test_return_site_in_block_without_function_is_skipped():
    facts = create_call_facts(
        [("target", 0)],
        return_uses=[("retaddr", 0), ("r0", 1)],
        in_function=[("Bcaller", "Fmain")],
    )

    bindings = bind_arguments(facts)

    assert bindings.formal_return_args == ()


def test_consumed_bindings_are_passed_through():
    facts = create_call_facts(
        [("target", 0)],
        formal_args=[("Fcallee", "p0", 0), ("Fcallee", "p1", 1)],
        actual_return_args=[("Bcaller", "x", 0)],
    )

    bindings = bind_arguments(facts)

    assert sorted(bindings.formal_args) == [("Fcallee", "p0", 0), ("Fcallee", "p1", 1)]
    assert bindings.actual_return_args == (("Bcaller", "x", 0),)


def test_consumed_bindings_with_gaps_are_dropped():
    facts = create_call_facts(
        [("target", 0)],
        formal_args=[("Fcallee", "p0", 0), ("Fcallee", "p2", 2)],
    )

    bindings = bind_arguments(facts)

    assert bindings.formal_args == ()
    assert bindings.violations[0].entity == "Fcallee"


def test_site_operands_skip_reserved_slot():
    facts = create_call_facts([("target", 0), ("a", 1)])

    assert site_operands(facts, "scall") == [("a", 1)]
