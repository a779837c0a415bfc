import dataclasses
from collections import Counter, defaultdict
from typing import Dict, List, Optional, Tuple

import structlog

from decompiler.core.fact_store import FactStore, PositionedVar
from decompiler.core.violations import Violation, ViolationCollector, ViolationKind
from decompiler.utils.evm_ops import CALLPRIVATE, RESERVED_OPERAND_SLOTS, RETURNPRIVATE

logger = structlog.get_logger()


@dataclasses.dataclass(frozen=True)
class ArgumentBindings:
    actual_args: Tuple[PositionedVar, ...]  # (callerBlock, var, position)
    formal_return_args: Tuple[PositionedVar, ...]  # (function, var, position)
    formal_args: Tuple[PositionedVar, ...]  # consumed as-is
    actual_return_args: Tuple[PositionedVar, ...]  # consumed as-is
    violations: Tuple[Violation, ...] = ()


def site_operands(facts: FactStore, stmt: str) -> List[Tuple[str, int]]:
    """Operands of a call/return site past the reserved slot, in raw positions."""
    return [
        (var, position)
        for var, position in facts.uses_by_statement.get(stmt, ())
        if position >= RESERVED_OPERAND_SLOTS
    ]


def check_site_positions(stmt: str, operands, violations: ViolationCollector) -> bool:
    """
    Validate that a site's raw operand positions are exactly 1..k.

    Returns True if the site can be bound.
    """
    counts = Counter(position for _, position in operands)
    repeated = sorted(p for p, n in counts.items() if n > 1)
    if repeated:
        violations.record(
            ViolationKind.DUPLICATE_BINDING_POSITION,
            stmt,
            [(stmt, var, str(pos)) for var, pos in operands if pos in repeated],
            f"raw position(s) {repeated} bound more than once",
        )
        return False

    positions = sorted(counts)
    expected = list(range(RESERVED_OPERAND_SLOTS, RESERVED_OPERAND_SLOTS + len(positions)))
    if positions != expected:
        violations.record(
            ViolationKind.NON_CONTIGUOUS_BINDING,
            stmt,
            [(stmt, var, str(pos)) for var, pos in operands],
            f"raw positions {positions} are not {expected}",
        )
        return False
    return True


def _bind_sites(facts, opcode, owner_of, violations) -> List[PositionedVar]:
    bindings = []
    for stmt in sorted(facts.statements_by_opcode.get(opcode, ())):
        owner = owner_of(stmt)
        if owner is None:
            # The structural violation behind this was already recorded
            continue
        operands = site_operands(facts, stmt)
        if not check_site_positions(stmt, operands, violations):
            continue
        bindings.extend(
            (owner, var, position - RESERVED_OPERAND_SLOTS) for var, position in operands
        )
    return bindings


def filter_consumed_bindings(rows, violations: ViolationCollector) -> List[PositionedVar]:
    """Keep lifter-supplied bindings whose per-site positions are 0..k-1."""
    by_site: Dict[str, List[Tuple[str, int]]] = defaultdict(list)
    for site, var, position in rows:
        by_site[site].append((var, position + RESERVED_OPERAND_SLOTS))
    kept = []
    for site in sorted(by_site):
        if check_site_positions(site, by_site[site], violations):
            kept.extend((site, var, position - RESERVED_OPERAND_SLOTS) for var, position in by_site[site])
    return kept


def bind_arguments(facts: FactStore) -> ArgumentBindings:
    """
    Rebase call/return operand slots into zero-based argument positions.

    ``CALLPRIVATE`` operands at raw slot i >= 1 become actual arguments of
    the calling block at position i - 1; ``RETURNPRIVATE`` operands become
    formal return values of the returning function likewise. Sites whose
    raw positions are not exactly 1..k are reported and produce nothing.
    """
    violations = ViolationCollector("argument-binding")

    def calling_block(stmt: str) -> Optional[str]:
        return facts.block_of.get(stmt)

    def returning_function(stmt: str) -> Optional[str]:
        block = facts.block_of.get(stmt)
        return facts.function_of.get(block) if block is not None else None

    actual_args = _bind_sites(facts, CALLPRIVATE, calling_block, violations)
    formal_return_args = _bind_sites(facts, RETURNPRIVATE, returning_function, violations)

    formal_args = filter_consumed_bindings(facts.formal_args, violations)
    actual_return_args = filter_consumed_bindings(facts.actual_return_args, violations)

    logger.info(
        "Bound call/return arguments",
        actual_args=len(actual_args),
        formal_return_args=len(formal_return_args),
        violations=len(violations),
    )
    return ArgumentBindings(
        actual_args=tuple(actual_args),
        formal_return_args=tuple(formal_return_args),
        formal_args=tuple(formal_args),
        actual_return_args=tuple(actual_return_args),
        violations=violations.freeze(),
    )
