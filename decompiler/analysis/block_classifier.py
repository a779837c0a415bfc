import dataclasses
from typing import Dict, FrozenSet, Mapping, Tuple

import structlog

from decompiler.core.fact_store import FactStore
from decompiler.core.violations import Violation, ViolationCollector, ViolationKind
from decompiler.utils.evm_ops import classify_terminal, is_valid_terminal
from decompiler.utils.ids import selector_bytes, sorted_ids

logger = structlog.get_logger()

DEFAULT_GLOBAL_ENTRY_BLOCK = "0x0"
DEFAULT_FALLBACK_SELECTOR = "0x00000000"


@dataclasses.dataclass(frozen=True)
class BlockClassification:
    function_exits: FrozenSet[str]
    global_entry_block: str
    valid_terminal_blocks: FrozenSet[str]
    terminal_kinds: Dict[str, str]  # Function-exit block → evm_ops.classify_terminal label
    fallback_functions: FrozenSet[str]
    violations: Tuple[Violation, ...] = ()

    def is_function_exit(self, block: str) -> bool:
        return block in self.function_exits

    def is_valid_terminal(self, block: str) -> bool:
        return block in self.valid_terminal_blocks

    def is_fallback(self, function: str) -> bool:
        return function in self.fallback_functions


def find_function_exits(facts: FactStore) -> FrozenSet[str]:
    """Sinks of the local graph: at least one incoming local edge, no outgoing one."""
    return frozenset(
        block
        for block in facts.local_predecessors
        if not facts.local_successors.get(block)
    )


def find_valid_terminals(facts: FactStore, block_tail: Mapping[str, str]) -> FrozenSet[str]:
    return frozenset(
        block
        for block, tail in block_tail.items()
        if is_valid_terminal(facts.opcode_of.get(tail))
    )


def classify_exit_terminals(
    facts: FactStore,
    exits: FrozenSet[str],
    block_tail: Mapping[str, str],
    violations: ViolationCollector,
) -> Dict[str, str]:
    """Label each function exit by how its tail ends control flow."""
    kinds = {}
    for block in sorted_ids(exits):
        tail = block_tail.get(block)
        opcode = facts.opcode_of.get(tail) if tail is not None else None
        kind = classify_terminal(opcode)
        if kind is None:
            violations.record(
                ViolationKind.UNCLASSIFIED_TERMINAL,
                block,
                [(block, tail or "", opcode or "")],
                "exit block does not end in a halting or private-return statement",
            )
            continue
        kinds[block] = kind
    return kinds


def find_fallback_functions(
    facts: FactStore,
    fallback_selector: str,
    violations: ViolationCollector,
) -> FrozenSet[str]:
    """Public functions whose selector is the reserved all-zero selector."""
    reserved = selector_bytes(fallback_selector)
    fallbacks = set()
    for function, selector in sorted(facts.public_function_selectors):
        raw = selector_bytes(selector)
        if raw is None:
            violations.record(
                ViolationKind.MALFORMED_SELECTOR,
                function,
                [(function, selector)],
                "selector is not a 4-byte hex string",
            )
            continue
        if raw == reserved:
            fallbacks.add(function)

    if len(fallbacks) > 1:
        violations.record(
            ViolationKind.DUPLICATE_FALLBACK,
            ",".join(sorted_ids(fallbacks)),
            [(f, fallback_selector) for f in fallbacks],
            f"{len(fallbacks)} functions carry the fallback selector",
        )
    return frozenset(fallbacks)


def classify_blocks(
    facts: FactStore,
    block_tail: Mapping[str, str],
    global_entry_block: str = DEFAULT_GLOBAL_ENTRY_BLOCK,
    fallback_selector: str = DEFAULT_FALLBACK_SELECTOR,
) -> BlockClassification:
    """
    Identify function exits, the program entry, valid program terminals
    and the fallback function.

    Function exits are computed on the local graph only; edges added by
    the global graph do not change them.
    """
    violations = ViolationCollector("block-classifier")

    exits = find_function_exits(facts)
    terminal_kinds = classify_exit_terminals(facts, exits, block_tail, violations)
    valid_terminals = find_valid_terminals(facts, block_tail)
    fallbacks = find_fallback_functions(facts, fallback_selector, violations)

    logger.info(
        "Classified blocks",
        function_exits=len(exits),
        valid_terminals=len(valid_terminals),
        fallback=sorted_ids(fallbacks),
        violations=len(violations),
    )
    return BlockClassification(
        function_exits=exits,
        global_entry_block=global_entry_block,
        valid_terminal_blocks=valid_terminals,
        terminal_kinds=terminal_kinds,
        fallback_functions=fallbacks,
        violations=violations.freeze(),
    )
