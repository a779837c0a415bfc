"""Id-addressed views of statements, blocks and functions after reconstruction."""
import dataclasses
from collections import defaultdict
from typing import Dict, Optional

from decompiler.core.basic_block import BasicBlock
from decompiler.core.fact_store import FactStore
from decompiler.core.function import Function
from decompiler.core.instruction import Statement
from decompiler.reconstructor import ReconstructionResult
from decompiler.utils.ids import sorted_ids


@dataclasses.dataclass(frozen=True)
class ProgramModel:
    statements: Dict[str, Statement]
    blocks: Dict[str, BasicBlock]
    functions: Dict[str, Function]

    # None when the statement/block has no unique owner in the facts
    def block_of(self, statement_id: str) -> Optional[BasicBlock]:
        block = self.statements[statement_id].block
        return self.blocks.get(block) if block is not None else None

    def function_of(self, block_id: str) -> Optional[Function]:
        function = self.blocks[block_id].function
        return self.functions.get(function) if function is not None else None


def _chain(facts: FactStore, block: str, head, successor) -> tuple:
    if head is None:
        return ()
    chain = [head]
    while chain[-1] in successor and len(chain) <= len(facts.block_statements.get(block, ())):
        chain.append(successor[chain[-1]])
    return tuple(chain)


def build_program_model(facts: FactStore, result: ReconstructionResult) -> ProgramModel:
    """Assemble the arena of entities; every cross reference is an id."""
    statements = {
        s: Statement(id=s, opcode=facts.opcode_of.get(s), block=facts.block_of.get(s))
        for s in sorted_ids(facts.statements)
    }

    heads = dict(result.block_head)
    tails = dict(result.block_tail)
    # Same-block order between consecutive non-PHI statements
    successor = {
        s: n
        for s, n in facts.statement_next
        if facts.block_of.get(s) is not None
        and facts.block_of.get(s) == facts.block_of.get(n)
        and s not in facts.phi_statements
        and n not in facts.phi_statements
    }
    global_successors = defaultdict(list)
    for src, dst in result.global_edges:
        global_successors[src].append(dst)
    exits = set(result.function_exits)
    valid = set(result.valid_terminal_blocks)

    blocks = {}
    for block in sorted_ids(facts.blocks):
        members = facts.block_statements.get(block, frozenset())
        chain = _chain(facts, block, heads.get(block), successor) if block in tails else ()
        blocks[block] = BasicBlock(
            id=block,
            function=facts.function_of.get(block),
            statements=chain,
            phi_statements=tuple(sorted_ids(members & facts.phi_statements)),
            head=heads.get(block),
            tail=tails.get(block),
            predecessors=tuple(sorted_ids(facts.local_predecessors.get(block, ()))),
            successors=tuple(sorted_ids(facts.local_successors.get(block, ()))),
            global_successors=tuple(global_successors.get(block, ())),
            is_function_exit=block in exits,
            is_valid_terminal=block in valid,
        )

    callers = defaultdict(set)
    callees = defaultdict(set)
    for caller_block, callee in facts.call_graph_edges:
        callers[callee].add(caller_block)
        caller_function = facts.function_of.get(caller_block)
        if caller_function is not None:
            callees[caller_function].add(callee)

    formal_args = defaultdict(dict)
    for function, var, position in result.formal_args:
        formal_args[function].setdefault(position, var)
    returns = defaultdict(int)
    for function, _, position in result.formal_return_args:
        returns[function] = max(returns[function], position + 1)

    fallbacks = set(result.fallback_functions)
    functions = {}
    for function in sorted_ids(facts.functions):
        entries = facts.function_entry_blocks.get(function, frozenset())
        function_blocks = facts.function_blocks.get(function, frozenset())
        selectors = facts.selector_of.get(function)
        params = formal_args.get(function, {})
        functions[function] = Function(
            id=function,
            entry_block=next(iter(entries)) if len(entries) == 1 else None,
            exit_blocks=tuple(sorted_ids(function_blocks & exits)),
            blocks=tuple(sorted_ids(function_blocks)),
            selector=min(selectors) if selectors else None,
            name=facts.name_of.get(function),
            is_fallback=function in fallbacks,
            callers=tuple(sorted_ids(callers.get(function, ()))),
            callees=tuple(sorted_ids(callees.get(function, ()))),
            formal_args=tuple(params[p] for p in sorted(params)),
            returns=returns.get(function, 0),
        )

    return ProgramModel(statements=statements, blocks=blocks, functions=functions)
