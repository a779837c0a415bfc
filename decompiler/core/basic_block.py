import dataclasses
from typing import Optional, Tuple


@dataclasses.dataclass(frozen=True)
class BasicBlock:
    """
    Read-only view of one block after reconstruction.

    All cross references (function, statements, neighbours) are ids; look
    them up in the owning ProgramModel.
    """

    id: str
    function: Optional[str]
    statements: Tuple[str, ...] = ()  # Non-PHI statements in execution order
    phi_statements: Tuple[str, ...] = ()
    head: Optional[str] = None
    tail: Optional[str] = None
    predecessors: Tuple[str, ...] = ()  # Local graph
    successors: Tuple[str, ...] = ()  # Local graph
    global_successors: Tuple[str, ...] = ()
    is_function_exit: bool = False
    is_valid_terminal: bool = False

    @property
    def is_empty(self) -> bool:
        return self.head is None
