import pytest
from decompiler.analysis.block_boundaries import resolve_block_boundaries
from decompiler.analysis.global_cfg import build_global_cfg
from decompiler.core.fact_store import FactStore
from decompiler.core.violations import ViolationKind


def create_private_call_facts(**overrides):
    """Scenario B: Bcaller calls Fcallee (entry Bentry), which returns from Bexit into Bcont."""
    relations = dict(
        statement_opcode=[
            ("s1", "CALLPRIVATE"),
            ("s2", "JUMPDEST"),
            ("s3", "RETURNPRIVATE"),
            ("s4", "STOP"),
        ],
        statement_block=[("s1", "Bcaller"), ("s2", "Bentry"), ("s3", "Bexit"), ("s4", "Bcont")],
        statement_next=[("s1", "s2"), ("s2", "s3"), ("s3", "s4")],
        local_edges=[("Bcaller", "Bcont")],
        call_graph_edges=[("Bcaller", "Fcallee")],
        function_call_returns=[("Bcaller", "Fcallee", "Bcont")],
        function_entries=["Bentry", "Bcaller"],
        in_function=[
            ("Bcaller", "Fmain"),
            ("Bcont", "Fmain"),
            ("Bentry", "Fcallee"),
            ("Bexit", "Fcallee"),
        ],
    )
    relations.update(overrides)
    return FactStore.from_relations(**relations)


def build(facts):
    return build_global_cfg(facts, resolve_block_boundaries(facts).tail)


def test_private_call_becomes_call_and_return_edges():
    cfg = build(create_private_call_facts())

    assert cfg.edges == {("Bcaller", "Bentry"), ("Bexit", "Bcont")}
    assert ("Bcaller", "Bcont") not in cfg.edges
    assert cfg.placeholder_edges == {("Bcaller", "Bcont")}
    assert cfg.violations == ()


def test_ordinary_local_edges_pass_through():
    facts = create_private_call_facts(
        local_edges=[("Bcaller", "Bcont"), ("Bentry", "Bexit")],
    )

    cfg = build(facts)

    assert ("Bentry", "Bexit") in cfg.edges
    assert ("Bcaller", "Bcont") not in cfg.edges


def test_return_edges_form_cross_product():
    """Two call sites times two return blocks gives four return edges."""
    facts = create_private_call_facts(
        statement_opcode=[
            ("s1", "CALLPRIVATE"),
            ("s2", "JUMPDEST"),
            ("s3", "RETURNPRIVATE"),
            ("s4", "STOP"),
            ("s5", "CALLPRIVATE"),
            ("s6", "RETURNPRIVATE"),
            ("s7", "STOP"),
        ],
        statement_block=[
            ("s1", "Bcaller"), ("s2", "Bentry"), ("s3", "Bexit"), ("s4", "Bcont"),
            ("s5", "Bcaller2"), ("s6", "Bexit2"), ("s7", "Bcont2"),
        ],
        call_graph_edges=[("Bcaller", "Fcallee"), ("Bcaller2", "Fcallee")],
        function_call_returns=[("Bcaller", "Fcallee", "Bcont"), ("Bcaller2", "Fcallee", "Bcont2")],
        local_edges=[("Bcaller", "Bcont"), ("Bcaller2", "Bcont2")],
        in_function=[
            ("Bcaller", "Fmain"), ("Bcont", "Fmain"), ("Bcaller2", "Fmain"), ("Bcont2", "Fmain"),
            ("Bentry", "Fcallee"), ("Bexit", "Fcallee"), ("Bexit2", "Fcallee"),
        ],
    )

    cfg = build(facts)

    assert cfg.return_edges == {
        ("Bexit", "Bcont"), ("Bexit", "Bcont2"),
        ("Bexit2", "Bcont"), ("Bexit2", "Bcont2"),
    }
    assert cfg.call_edges == {("Bcaller", "Bentry"), ("Bcaller2", "Bentry")}


def test_blocks_not_ending_in_private_return_get_no_return_edge():
    facts = create_private_call_facts(
        statement_opcode=[("s1", "CALLPRIVATE"), ("s2", "JUMPDEST"), ("s3", "REVERT"), ("s4", "STOP")],
    )

    cfg = build(facts)

    assert cfg.return_edges == frozenset()


def test_without_tails_no_return_edges_are_built():
    cfg = build_global_cfg(create_private_call_facts())

    assert cfg.edges == {("Bcaller", "Bentry")}


def test_function_without_entry_is_reported():
    facts = create_private_call_facts(function_entries=["Bcaller"])

    cfg = build(facts)

    assert cfg.call_edges == frozenset()
    assert cfg.return_edges == {("Bexit", "Bcont")}
    assert [v.kind for v in cfg.violations] == [ViolationKind.FUNCTION_WITHOUT_ENTRY]


def test_function_with_two_entries_is_reported():
    facts = create_private_call_facts(function_entries=["Bcaller", "Bentry", "Bexit"])

    cfg = build(facts)

    assert cfg.call_edges == frozenset()
    assert cfg.violations[0].kind == ViolationKind.FUNCTION_MULTIPLE_ENTRIES


def test_successor_index():
    cfg = build(create_private_call_facts())

    assert cfg.successors() == {"Bcaller": {"Bentry"}, "Bexit": {"Bcont"}}
