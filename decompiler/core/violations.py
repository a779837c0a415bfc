import dataclasses
from enum import Enum
from typing import Iterable, List, Tuple

import structlog

logger = structlog.get_logger()


class ViolationKind(str, Enum):
    # Structural
    STATEMENT_WITHOUT_BLOCK = "statement-without-block"
    STATEMENT_MULTIPLE_BLOCKS = "statement-multiple-blocks"
    BLOCK_WITHOUT_FUNCTION = "block-without-function"
    BLOCK_MULTIPLE_FUNCTIONS = "block-multiple-functions"
    VARIABLE_WITHOUT_FUNCTION = "variable-without-function"
    VARIABLE_MULTIPLE_FUNCTIONS = "variable-multiple-functions"
    BROKEN_STATEMENT_CHAIN = "broken-statement-chain"
    FUNCTION_WITHOUT_ENTRY = "function-without-entry"
    FUNCTION_MULTIPLE_ENTRIES = "function-multiple-entries"
    # Binding
    NON_CONTIGUOUS_BINDING = "non-contiguous-binding"
    DUPLICATE_BINDING_POSITION = "duplicate-binding-position"
    # Classification
    DUPLICATE_FALLBACK = "duplicate-fallback"
    MALFORMED_SELECTOR = "malformed-selector"
    UNCLASSIFIED_TERMINAL = "unclassified-terminal"

    @property
    def category(self) -> str:
        if self in _BINDING_KINDS:
            return "binding"
        if self in _CLASSIFICATION_KINDS:
            return "classification"
        return "structural"


_BINDING_KINDS = frozenset({
    ViolationKind.NON_CONTIGUOUS_BINDING,
    ViolationKind.DUPLICATE_BINDING_POSITION,
})
_CLASSIFICATION_KINDS = frozenset({
    ViolationKind.DUPLICATE_FALLBACK,
    ViolationKind.MALFORMED_SELECTOR,
    ViolationKind.UNCLASSIFIED_TERMINAL,
})


@dataclasses.dataclass(frozen=True, order=True)
class Violation:
    """
    A non-fatal data-integrity problem found while deriving.

    The offending data is left out of the derived tables; the rest of the
    analysis carries on and the violation is reported next to the output.
    """

    kind: ViolationKind
    entity: str  # Statement/Block/Function/Variable id
    facts: Tuple[Tuple[str, ...], ...] = ()  # Offending tuples
    message: str = ""

    def as_row(self) -> Tuple[str, ...]:
        facts = ";".join(",".join(fact) for fact in self.facts)
        return (self.kind.value, self.entity, facts, self.message)

    def as_dict(self):
        return {
            "kind": self.kind.value,
            "category": self.kind.category,
            "entity": self.entity,
            "facts": [list(fact) for fact in self.facts],
            "message": self.message,
        }


class ViolationCollector:
    """Accumulates violations for one component; logs each one once."""

    def __init__(self, component: str):
        self.component = component
        self._violations: List[Violation] = []

    def record(self, kind: ViolationKind, entity, facts: Iterable[tuple] = (), message: str = "") -> None:
        violation = Violation(
            kind=kind,
            entity=str(entity),
            facts=tuple(sorted(tuple(str(part) for part in fact) for fact in facts)),
            message=message,
        )
        logger.warning(
            "Data-integrity violation",
            component=self.component,
            kind=kind.value,
            entity=violation.entity,
            detail=message,
        )
        self._violations.append(violation)

    def __len__(self):
        return len(self._violations)

    def freeze(self) -> Tuple[Violation, ...]:
        return tuple(sorted(set(self._violations)))


def merge_violations(*groups: Iterable[Violation]) -> Tuple[Violation, ...]:
    """Sorted, de-duplicated union of several components' violations."""
    merged = set()
    for group in groups:
        merged.update(group)
    return tuple(sorted(merged))
