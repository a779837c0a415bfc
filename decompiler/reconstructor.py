import dataclasses
from typing import Dict, Optional, Tuple

import structlog

from decompiler.analysis.argument_binding import bind_arguments
from decompiler.analysis.block_boundaries import resolve_block_boundaries
from decompiler.analysis.block_classifier import classify_blocks
from decompiler.analysis.global_cfg import build_global_cfg
from decompiler.analysis.variable_membership import resolve_variable_membership
from decompiler.config import AnalysisConfig
from decompiler.core.errors import AnalysisAborted, FactStoreError
from decompiler.core.fact_store import FactStore
from decompiler.core.violations import Violation, merge_violations
from decompiler.utils.ids import sorted_ids, sorted_rows

logger = structlog.get_logger()


@dataclasses.dataclass(frozen=True)
class ReconstructionResult:
    """
    Every table derived for one contract, sorted for byte-stable output.

    Only ever constructed once all components have finished; a run that is
    abandoned never produces one.
    """

    contract: str
    block_head: Tuple[Tuple[str, str], ...]
    block_tail: Tuple[Tuple[str, str], ...]
    variable_function: Tuple[Tuple[str, str], ...]
    actual_args: Tuple[Tuple[str, str, int], ...]
    formal_return_args: Tuple[Tuple[str, str, int], ...]
    formal_args: Tuple[Tuple[str, str, int], ...]
    actual_return_args: Tuple[Tuple[str, str, int], ...]
    global_edges: Tuple[Tuple[str, str], ...]
    function_exits: Tuple[str, ...]
    global_entry_block: str
    valid_terminal_blocks: Tuple[str, ...]
    fallback_functions: Tuple[str, ...]
    terminal_kinds: Tuple[Tuple[str, str], ...] = ()
    passthrough: Dict[str, Tuple[tuple, ...]] = dataclasses.field(default_factory=dict, hash=False)
    violations: Tuple[Violation, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.violations)

    def head(self, block: str) -> Optional[str]:
        return dict(self.block_head).get(block)

    def tail(self, block: str) -> Optional[str]:
        return dict(self.block_tail).get(block)

    def owner_function(self, var: str) -> Optional[str]:
        return dict(self.variable_function).get(var)


class ControlFlowReconstructor:
    """
    Runs the reconstruction components over one immutable FactStore.

    None of the derivations feed into each other except that the global
    graph and the classifier read block tails, so the run is a single pass:
    boundaries, ownership, bindings, global graph, classification.
    """

    def __init__(self, facts: FactStore, config: Optional[AnalysisConfig] = None, contract: str = "contract"):
        self.facts = facts
        self.config = config or AnalysisConfig()
        self.contract = contract
        self.log = logger.bind(contract=contract)

    def check_preconditions(self) -> None:
        facts = self.facts
        limit = self.config.max_statements
        if limit and facts.size() > limit:
            raise AnalysisAborted(
                f"{self.contract}: {facts.size()} statements exceed the limit of {limit}"
            )
        if facts.statements and not facts.in_function:
            raise FactStoreError(f"{self.contract}: no function membership facts at all")

    def run(self) -> ReconstructionResult:
        """
        Derive every output table.

        Raises:
            AnalysisAborted: If the contract exceeds the configured size.
            FactStoreError: If there is no function membership data at all.
        """
        self.check_preconditions()
        facts = self.facts
        self.log.info("Starting reconstruction", statements=facts.size(), blocks=len(facts.blocks))

        boundaries = resolve_block_boundaries(facts)
        membership = resolve_variable_membership(facts)
        bindings = bind_arguments(facts)
        cfg = build_global_cfg(facts, boundaries.tail)
        classification = classify_blocks(
            facts,
            boundaries.tail,
            global_entry_block=self.config.global_entry_block,
            fallback_selector=self.config.fallback_selector,
        )

        result = ReconstructionResult(
            contract=self.contract,
            block_head=sorted_rows(boundaries.head.items()),
            block_tail=sorted_rows(boundaries.tail.items()),
            variable_function=sorted_rows(membership.owner.items()),
            actual_args=sorted_rows(bindings.actual_args),
            formal_return_args=sorted_rows(bindings.formal_return_args),
            formal_args=sorted_rows(bindings.formal_args),
            actual_return_args=sorted_rows(bindings.actual_return_args),
            global_edges=sorted_rows(cfg.edges),
            function_exits=tuple(sorted_ids(classification.function_exits)),
            global_entry_block=classification.global_entry_block,
            valid_terminal_blocks=tuple(sorted_ids(classification.valid_terminal_blocks)),
            fallback_functions=tuple(sorted_ids(classification.fallback_functions)),
            terminal_kinds=sorted_rows(classification.terminal_kinds.items()),
            passthrough={name: sorted_rows(rows) for name, rows in sorted(facts.passthrough.items())},
            violations=merge_violations(
                boundaries.violations,
                membership.violations,
                bindings.violations,
                cfg.violations,
                classification.violations,
            ),
        )
        self.log.info(
            "Finished reconstruction",
            global_edges=len(result.global_edges),
            degraded=result.degraded,
            violations=len(result.violations),
        )
        return result


def reconstruct(facts: FactStore, config: Optional[AnalysisConfig] = None, contract: str = "contract") -> ReconstructionResult:
    return ControlFlowReconstructor(facts, config, contract).run()
