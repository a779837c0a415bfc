import pytest
from decompiler.analysis.block_boundaries import resolve_block_boundaries
from decompiler.analysis.block_classifier import (
    classify_blocks,
    find_function_exits,
    find_valid_terminals,
)
from decompiler.core.fact_store import FactStore
from decompiler.core.violations import ViolationKind


def create_terminal_facts(tails, local_edges=(), **overrides):
    """Helper: one single-statement block per (block, opcode) pair."""
    relations = dict(
        statement_opcode=[(f"s_{block}", opcode) for block, opcode in tails],
        statement_block=[(f"s_{block}", block) for block, _ in tails],
        local_edges=local_edges,
        in_function=[(block, "F0") for block, _ in tails],
    )
    relations.update(overrides)
    return FactStore.from_relations(**relations)


def classify(facts, **kwargs):
    return classify_blocks(facts, resolve_block_boundaries(facts).tail, **kwargs)


def test_stop_and_return_are_valid_terminals():
    facts = create_terminal_facts([("B0", "STOP"), ("B1", "RETURN"), ("B2", "REVERT"), ("B3", "INVALID")])

    terminals = find_valid_terminals(facts, resolve_block_boundaries(facts).tail)

    assert terminals == {"B0", "B1"}


def test_function_exit_is_local_sink_with_predecessor():
    facts = create_terminal_facts(
        [("B0", "JUMPI"), ("B1", "STOP"), ("B2", "REVERT"), ("B3", "STOP")],
        local_edges=[("B0", "B1"), ("B0", "B2")],
    )

    exits = find_function_exits(facts)

    # B3 has no incoming edge, B0 has outgoing ones
    assert exits == {"B1", "B2"}


def test_exit_terminal_kinds():
    facts = create_terminal_facts(
        [("B0", "JUMPI"), ("B1", "STOP"), ("B2", "REVERT"), ("B3", "RETURNPRIVATE")],
        local_edges=[("B0", "B1"), ("B0", "B2"), ("B0", "B3")],
    )

    classification = classify(facts)

    assert classification.terminal_kinds == {"B1": "valid", "B2": "abnormal", "B3": "private-return"}
    assert classification.violations == ()


def test_exit_without_halting_tail_is_reported():
    facts = create_terminal_facts(
        [("B0", "JUMP"), ("B1", "ADD")],
        local_edges=[("B0", "B1")],
    )

    classification = classify(facts)

    assert classification.is_function_exit("B1")
    assert [(v.kind, v.entity) for v in classification.violations] == [
        (ViolationKind.UNCLASSIFIED_TERMINAL, "B1")
    ]


def test_global_entry_block_is_configured_constant():
    facts = create_terminal_facts([("0x0", "STOP")])

    assert classify(facts).global_entry_block == "0x0"
    assert classify(facts, global_entry_block="0x1").global_entry_block == "0x1"


def test_fallback_function_selector():
    """Scenario D: only the all-zero selector marks the fallback."""
    facts = create_terminal_facts(
        [("B0", "STOP")],
        public_function_selectors=[("Ffallback", "0x00000000"), ("Ftransfer", "0xa9059cbb")],
    )

    classification = classify(facts)

    assert classification.is_fallback("Ffallback")
    assert not classification.is_fallback("Ftransfer")
    assert not classification.is_fallback("Fprivate")


def test_fallback_selector_without_prefix_is_recognised():
    facts = create_terminal_facts(
        [("B0", "STOP")],
        public_function_selectors=[("Ffallback", "00000000")],
    )

    assert classify(facts).fallback_functions == {"Ffallback"}


def test_duplicate_fallback_is_reported():
    facts = create_terminal_facts(
        [("B0", "STOP")],
        public_function_selectors=[("F1", "0x00000000"), ("F2", "0x00000000")],
    )

    classification = classify(facts)

    assert classification.fallback_functions == {"F1", "F2"}
    assert classification.violations[0].kind == ViolationKind.DUPLICATE_FALLBACK


def test_malformed_selector_is_reported():
    facts = create_terminal_facts(
        [("B0", "STOP")],
        public_function_selectors=[("F1", "0x0000"), ("F2", "0xzzzzzzzz")],
    )

    classification = classify(facts)

    assert classification.fallback_functions == frozenset()
    assert {v.entity for v in classification.violations} == {"F1", "F2"}
    assert {v.kind for v in classification.violations} == {ViolationKind.MALFORMED_SELECTOR}
