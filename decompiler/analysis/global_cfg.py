import dataclasses
from collections import defaultdict
from typing import Dict, FrozenSet, Mapping, Optional, Set, Tuple

import structlog

from decompiler.core.fact_store import Edge, FactStore
from decompiler.core.violations import Violation, ViolationCollector, ViolationKind
from decompiler.utils.evm_ops import RETURNPRIVATE

logger = structlog.get_logger()


@dataclasses.dataclass(frozen=True)
class GlobalCFG:
    edges: FrozenSet[Edge]
    call_edges: FrozenSet[Edge]
    return_edges: FrozenSet[Edge]
    placeholder_edges: FrozenSet[Edge]  # Local edges dropped as call bookkeeping
    violations: Tuple[Violation, ...] = ()

    def successors(self) -> Dict[str, FrozenSet[str]]:
        index = defaultdict(set)
        for src, dst in self.edges:
            index[src].add(dst)
        return {block: frozenset(dsts) for block, dsts in index.items()}


def find_function_entries(facts: FactStore, violations: ViolationCollector) -> Dict[str, str]:
    """
    Resolve each called function's single entry block.

    Functions reached by a call edge without an entry block, or with more
    than one, are reported and get no call edges. Their return edges do
    not depend on the entry and are still built.
    """
    entries: Dict[str, str] = {}
    called = {f for _, f in facts.call_graph_edges} | {f for _, f, _ in facts.function_call_returns}
    for function in sorted(called):
        blocks = facts.function_entry_blocks.get(function, frozenset())
        if len(blocks) == 1:
            entries[function] = next(iter(blocks))
        elif not blocks:
            violations.record(
                ViolationKind.FUNCTION_WITHOUT_ENTRY,
                function,
                [(b, f) for b, f in facts.call_graph_edges if f == function],
                "called function has no entry block",
            )
        else:
            violations.record(
                ViolationKind.FUNCTION_MULTIPLE_ENTRIES,
                function,
                [(block, function) for block in blocks],
                f"function has {len(blocks)} entry blocks",
            )
    return entries


def find_private_return_blocks(facts: FactStore, block_tail: Mapping[str, str]) -> Dict[str, Set[str]]:
    """Function → blocks of that function whose tail statement is RETURNPRIVATE."""
    returns = defaultdict(set)
    for block, function in facts.function_of.items():
        tail = block_tail.get(block)
        if tail is not None and facts.opcode_of.get(tail) == RETURNPRIVATE:
            returns[function].add(block)
    return returns


def build_global_cfg(facts: FactStore, block_tail: Optional[Mapping[str, str]] = None) -> GlobalCFG:
    """
    Thread private calls and returns through function boundaries.

    The result is the union of:
      a. every local edge, except the placeholder edge (caller,
         continuation) recorded by a call/continuation triple;
      b. an edge from each call site to the entry block of the callee;
      c. an edge from every private-return block of the callee to each
         continuation of each of its call sites.

    Args:
        facts: The fact store for one contract.
        block_tail: Block → tail statement, as produced by
            ``resolve_block_boundaries``. Needed to find the callee's
            private-return blocks.

    Returns:
        GlobalCFG with the merged edge set and its parts.
    """
    violations = ViolationCollector("global-cfg")
    block_tail = block_tail or {}

    placeholders = {(caller, cont) for caller, _, cont in facts.function_call_returns}
    passthrough = {edge for edge in facts.local_edges if edge not in placeholders}
    dropped = frozenset(facts.local_edges & placeholders)

    entries = find_function_entries(facts, violations)
    call_edges = {
        (caller, entries[function])
        for caller, function in facts.call_graph_edges
        if function in entries
    }

    return_blocks = find_private_return_blocks(facts, block_tail)
    return_edges = {
        (exit_block, cont)
        for _, function, cont in facts.function_call_returns
        for exit_block in return_blocks.get(function, ())
    }

    edges = passthrough | call_edges | return_edges

    logger.info(
        "Built global control-flow graph",
        local_edges=len(facts.local_edges),
        placeholders=len(dropped),
        call_edges=len(call_edges),
        return_edges=len(return_edges),
        edges=len(edges),
    )
    return GlobalCFG(
        edges=frozenset(edges),
        call_edges=frozenset(call_edges),
        return_edges=frozenset(return_edges),
        placeholder_edges=dropped,
        violations=violations.freeze(),
    )
