import dataclasses
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

import structlog

from decompiler.core.fact_store import FactStore
from decompiler.core.violations import Violation, ViolationCollector, ViolationKind

logger = structlog.get_logger()


@dataclasses.dataclass(frozen=True)
class BlockBoundaries:
    head: Dict[str, str]
    tail: Dict[str, str]
    chains: Dict[str, Tuple[str, ...]]  # Block → non-PHI statements in order
    violations: Tuple[Violation, ...] = ()

    def head_of(self, block: str) -> Optional[str]:
        return self.head.get(block)

    def tail_of(self, block: str) -> Optional[str]:
        return self.tail.get(block)


def check_statement_membership(facts: FactStore, violations: ViolationCollector) -> None:
    """Record statements that have no block, or more than one."""
    for stmt in sorted(facts.statements):
        blocks = facts.statement_blocks.get(stmt, frozenset())
        if not blocks:
            violations.record(
                ViolationKind.STATEMENT_WITHOUT_BLOCK,
                stmt,
                [(stmt, facts.opcode_of.get(stmt, ""))],
                "statement has an opcode but no block",
            )
        elif len(blocks) > 1:
            violations.record(
                ViolationKind.STATEMENT_MULTIPLE_BLOCKS,
                stmt,
                [(stmt, block) for block in blocks],
                f"statement recorded in {len(blocks)} blocks",
            )


def _same_block_order(facts: FactStore):
    """
    Restrict the global statement order to pairs inside one block.

    PHI statements are not part of the order, and statements whose block
    is not unique were excluded by the fact store's block index.
    """
    successor = defaultdict(set)
    predecessor = defaultdict(set)
    phis = facts.phi_statements
    for stmt, nxt in facts.statement_next:
        if stmt in phis or nxt in phis:
            continue
        block = facts.block_of.get(stmt)
        if block is None or facts.block_of.get(nxt) != block:
            continue
        successor[stmt].add(nxt)
        predecessor[nxt].add(stmt)
    return successor, predecessor


def _walk_chain(head: str, successor, members) -> List[str]:
    chain = [head]
    seen = {head}
    current = head
    while True:
        following = successor.get(current, ())
        if len(following) != 1:
            break
        current = next(iter(following))
        if current in seen or current not in members:
            break
        seen.add(current)
        chain.append(current)
    return chain


def resolve_block_boundaries(facts: FactStore) -> BlockBoundaries:
    """
    Compute each block's first and last statement.

    Per block, the non-PHI statements under the same-block restriction of
    ``Statement_Next`` must form one linear chain. Its two ends are the
    head and the tail. Blocks that are empty or hold only PHI statements
    get neither. A block whose statements do not form a single chain is
    reported and also gets neither.

    Args:
        facts: The fact store for one contract.

    Returns:
        BlockBoundaries with the head/tail maps and the ordered chains.
    """
    violations = ViolationCollector("block-boundaries")
    check_statement_membership(facts, violations)

    successor, predecessor = _same_block_order(facts)
    phis = facts.phi_statements

    head: Dict[str, str] = {}
    tail: Dict[str, str] = {}
    chains: Dict[str, Tuple[str, ...]] = {}

    for block, statements in facts.block_statements.items():
        members = statements - phis
        if not members:
            continue

        heads = [s for s in members if not predecessor.get(s)]
        tails = [s for s in members if not successor.get(s)]
        branching = [s for s in members if len(successor.get(s, ())) > 1 or len(predecessor.get(s, ())) > 1]

        chain = _walk_chain(heads[0], successor, members) if len(heads) == 1 else []
        if len(heads) != 1 or len(tails) != 1 or branching or len(chain) != len(members):
            violations.record(
                ViolationKind.BROKEN_STATEMENT_CHAIN,
                block,
                [(block, s) for s in members],
                f"{len(heads)} chain start(s), {len(tails)} chain end(s) over {len(members)} statement(s)",
            )
            continue

        head[block] = heads[0]
        tail[block] = tails[0]
        chains[block] = tuple(chain)

    logger.info("Resolved block boundaries", blocks=len(head), violations=len(violations))
    return BlockBoundaries(head=head, tail=tail, chains=chains, violations=violations.freeze())
