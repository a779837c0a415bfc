import dataclasses
from collections import defaultdict
from typing import Dict, FrozenSet, Set, Tuple

import structlog

from decompiler.core.fact_store import FactStore
from decompiler.core.violations import Violation, ViolationCollector, ViolationKind

logger = structlog.get_logger()


@dataclasses.dataclass(frozen=True)
class VariableMembership:
    variables: FrozenSet[str]
    owner: Dict[str, str]  # Variable → Function
    violations: Tuple[Violation, ...] = ()

    def is_variable(self, var: str) -> bool:
        return var in self.variables

    def owner_function(self, var: str):
        return self.owner.get(var)


def check_block_membership(facts: FactStore, violations: ViolationCollector) -> None:
    """Record blocks holding statements but no function, or several functions."""
    for block in sorted(facts.block_statements):
        if block not in facts.block_functions:
            violations.record(
                ViolationKind.BLOCK_WITHOUT_FUNCTION,
                block,
                [(block, s) for s in facts.block_statements[block]],
                "block has statements but no InFunction fact",
            )
    for block, functions in sorted(facts.block_functions.items()):
        if len(functions) > 1:
            violations.record(
                ViolationKind.BLOCK_MULTIPLE_FUNCTIONS,
                block,
                [(block, f) for f in functions],
                f"block recorded in {len(functions)} functions",
            )


def resolve_variable_membership(facts: FactStore) -> VariableMembership:
    """
    Attribute every variable to the one function that owns it.

    A variable that is used or defined belongs to the function of the
    block holding the using/defining statement. A formal parameter that is
    never defined also belongs to the function declaring it. A variable
    that ends up attributed to two functions, or to none, is reported and
    left out of the ownership map.
    """
    violations = ViolationCollector("variable-membership")
    check_block_membership(facts, violations)

    variables: Set[str] = (
        facts.variables_in("statement_uses")
        | facts.variables_in("statement_defines")
        | facts.variables_in("formal_args")
    )
    defined = facts.variables_in("statement_defines")

    candidates = defaultdict(set)
    evidence = defaultdict(set)
    unresolved = defaultdict(set)
    for relation in (facts.statement_uses, facts.statement_defines):
        for stmt, var, _ in relation:
            block = facts.block_of.get(stmt)
            function = facts.function_of.get(block) if block is not None else None
            if function is None:
                unresolved[var].add((stmt, block or ""))
                continue
            candidates[var].add(function)
            evidence[var].add((stmt, block, function))

    for function, var, position in facts.formal_args:
        if var in defined:
            continue
        candidates[var].add(function)
        evidence[var].add((function, var, str(position)))

    owner: Dict[str, str] = {}
    for var, functions in candidates.items():
        if len(functions) == 1:
            owner[var] = next(iter(functions))
            continue
        violations.record(
            ViolationKind.VARIABLE_MULTIPLE_FUNCTIONS,
            var,
            evidence[var],
            f"variable attributed to {len(functions)} functions",
        )

    for var in sorted(variables - candidates.keys()):
        violations.record(
            ViolationKind.VARIABLE_WITHOUT_FUNCTION,
            var,
            unresolved[var],
            "no use or definition of the variable resolves to a function",
        )

    logger.info(
        "Resolved variable ownership",
        variables=len(variables),
        owned=len(owner),
        violations=len(violations),
    )
    return VariableMembership(variables=frozenset(variables), owner=owner, violations=violations.freeze())
