import dataclasses
from collections import defaultdict
from functools import cached_property
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from decompiler.utils.evm_ops import is_phi

Edge = Tuple[str, str]
PositionedVar = Tuple[str, str, int]


def _pairs(rows) -> FrozenSet[Tuple[str, str]]:
    return frozenset((str(a), str(b)) for a, b in rows)


def _triples(rows) -> FrozenSet[Tuple[str, str, str]]:
    return frozenset((str(a), str(b), str(c)) for a, b, c in rows)


def _positioned(rows) -> FrozenSet[PositionedVar]:
    return frozenset((str(a), str(b), int(c)) for a, b, c in rows)


def _index(rows, key=0, value=1) -> Dict[str, FrozenSet]:
    index = defaultdict(set)
    for row in rows:
        index[row[key]].add(row[value])
    return {k: frozenset(v) for k, v in index.items()}


@dataclasses.dataclass(frozen=True)
class FactStore:
    """
    Immutable snapshot of the lifter's facts for one contract.

    Every relation is a frozenset of string tuples (positions are ints).
    The indexed views below are built lazily and are read-only; nothing in
    the reconstruction ever writes back into the store.
    """

    statement_opcode: FrozenSet[Tuple[str, str]] = frozenset()
    statement_block: FrozenSet[Tuple[str, str]] = frozenset()
    statement_next: FrozenSet[Edge] = frozenset()
    statement_uses: FrozenSet[PositionedVar] = frozenset()
    statement_defines: FrozenSet[PositionedVar] = frozenset()
    variable_value: FrozenSet[Tuple[str, str]] = frozenset()
    local_edges: FrozenSet[Edge] = frozenset()
    fallthrough_edges: FrozenSet[Edge] = frozenset()
    call_graph_edges: FrozenSet[Tuple[str, str]] = frozenset()  # (callerBlock, function)
    function_call_returns: FrozenSet[Tuple[str, str, str]] = frozenset()  # (callerBlock, function, continuation)
    function_entries: FrozenSet[str] = frozenset()
    in_function: FrozenSet[Tuple[str, str]] = frozenset()  # (block, function)
    formal_args: FrozenSet[PositionedVar] = frozenset()  # (function, var, position)
    actual_return_args: FrozenSet[PositionedVar] = frozenset()  # (callerBlock, var, position)
    public_function_selectors: FrozenSet[Tuple[str, str]] = frozenset()
    function_names: FrozenSet[Tuple[str, str]] = frozenset()
    passthrough: Mapping[str, FrozenSet[Tuple[str, ...]]] = dataclasses.field(
        default_factory=dict, hash=False
    )

    @classmethod
    def from_relations(
        cls,
        statement_opcode: Iterable = (),
        statement_block: Iterable = (),
        statement_next: Iterable = (),
        statement_uses: Iterable = (),
        statement_defines: Iterable = (),
        variable_value: Iterable = (),
        local_edges: Iterable = (),
        fallthrough_edges: Iterable = (),
        call_graph_edges: Iterable = (),
        function_call_returns: Iterable = (),
        function_entries: Iterable = (),
        in_function: Iterable = (),
        formal_args: Iterable = (),
        actual_return_args: Iterable = (),
        public_function_selectors: Iterable = (),
        function_names: Iterable = (),
        passthrough: Optional[Mapping[str, Iterable]] = None,
    ) -> "FactStore":
        """Build a store from plain iterables, normalising ids to strings."""
        return cls(
            statement_opcode=_pairs(statement_opcode),
            statement_block=_pairs(statement_block),
            statement_next=_pairs(statement_next),
            statement_uses=_positioned(statement_uses),
            statement_defines=_positioned(statement_defines),
            variable_value=_pairs(variable_value),
            local_edges=_pairs(local_edges),
            fallthrough_edges=_pairs(fallthrough_edges),
            call_graph_edges=_pairs(call_graph_edges),
            function_call_returns=_triples(function_call_returns),
            function_entries=frozenset(str(block) for block in function_entries),
            in_function=_pairs(in_function),
            formal_args=_positioned(formal_args),
            actual_return_args=_positioned(actual_return_args),
            public_function_selectors=_pairs(public_function_selectors),
            function_names=_pairs(function_names),
            passthrough={
                name: frozenset(tuple(str(part) for part in row) for row in rows)
                for name, rows in (passthrough or {}).items()
            },
        )

    # -- statement indexes -------------------------------------------------

    @cached_property
    def statements(self) -> FrozenSet[str]:
        return frozenset(s for s, _ in self.statement_opcode) | frozenset(
            s for s, _ in self.statement_block
        )

    @cached_property
    def opcode_of(self) -> Dict[str, str]:
        # A statement carries exactly one opcode; pick deterministically otherwise
        return {s: min(ops) for s, ops in _index(self.statement_opcode).items()}

    @cached_property
    def phi_statements(self) -> FrozenSet[str]:
        return frozenset(s for s, op in self.opcode_of.items() if is_phi(op))

    @cached_property
    def statement_blocks(self) -> Dict[str, FrozenSet[str]]:
        """Every block each statement is recorded in (normally exactly one)."""
        return _index(self.statement_block)

    @cached_property
    def block_of(self) -> Dict[str, str]:
        """Statement → Block, restricted to statements with a unique block."""
        return {
            s: next(iter(blocks))
            for s, blocks in self.statement_blocks.items()
            if len(blocks) == 1
        }

    @cached_property
    def block_statements(self) -> Dict[str, FrozenSet[str]]:
        index = defaultdict(set)
        for s, block in self.block_of.items():
            index[block].add(s)
        return {block: frozenset(stmts) for block, stmts in index.items()}

    @cached_property
    def uses_by_statement(self) -> Dict[str, List[Tuple[str, int]]]:
        index = defaultdict(list)
        for s, var, position in sorted(self.statement_uses, key=lambda row: (row[0], row[2], row[1])):
            index[s].append((var, position))
        return dict(index)

    @cached_property
    def statements_by_opcode(self) -> Dict[str, FrozenSet[str]]:
        return _index(self.statement_opcode, key=1, value=0)

    # -- block / function indexes -----------------------------------------

    @cached_property
    def block_functions(self) -> Dict[str, FrozenSet[str]]:
        return _index(self.in_function)

    @cached_property
    def function_of(self) -> Dict[str, str]:
        """Block → Function, restricted to blocks with a unique function."""
        return {
            block: next(iter(functions))
            for block, functions in self.block_functions.items()
            if len(functions) == 1
        }

    @cached_property
    def function_blocks(self) -> Dict[str, FrozenSet[str]]:
        index = defaultdict(set)
        for block, function in self.function_of.items():
            index[function].add(block)
        return {function: frozenset(blocks) for function, blocks in index.items()}

    @cached_property
    def functions(self) -> FrozenSet[str]:
        return (
            frozenset(f for _, f in self.in_function)
            | frozenset(f for _, f in self.call_graph_edges)
            | frozenset(f for _, f, _ in self.function_call_returns)
            | frozenset(f for f, _ in self.public_function_selectors)
        )

    @cached_property
    def blocks(self) -> FrozenSet[str]:
        """Every block the lifter knows about."""
        return (
            frozenset(b for _, b in self.statement_block)
            | frozenset(b for b, _ in self.in_function)
            | self.function_entries
            | frozenset(b for edge in self.local_edges for b in edge)
            | frozenset(b for b, _ in self.call_graph_edges)
            | frozenset(b for caller, _, cont in self.function_call_returns for b in (caller, cont))
        )

    @cached_property
    def function_entry_blocks(self) -> Dict[str, FrozenSet[str]]:
        """Function → its entry block(s), per FunctionEntry ⋈ InFunction."""
        index = defaultdict(set)
        for block in self.function_entries:
            for function in self.block_functions.get(block, ()):
                index[function].add(block)
        return {function: frozenset(blocks) for function, blocks in index.items()}

    @cached_property
    def local_successors(self) -> Dict[str, FrozenSet[str]]:
        return _index(self.local_edges)

    @cached_property
    def local_predecessors(self) -> Dict[str, FrozenSet[str]]:
        return _index(self.local_edges, key=1, value=0)

    @cached_property
    def selector_of(self) -> Dict[str, FrozenSet[str]]:
        return _index(self.public_function_selectors)

    @cached_property
    def name_of(self) -> Dict[str, str]:
        return {f: min(names) for f, names in _index(self.function_names).items()}

    def size(self) -> int:
        """Number of statements, used for the size limit."""
        return len(self.statements)

    def variables_in(self, relation: str) -> Set[str]:
        return {row[1] for row in getattr(self, relation)}
