import dataclasses
from typing import Optional, Tuple


@dataclasses.dataclass(frozen=True)
class Function:
    id: str
    entry_block: Optional[str]
    exit_blocks: Tuple[str, ...] = ()
    blocks: Tuple[str, ...] = ()
    selector: Optional[str] = None
    name: Optional[str] = None
    is_fallback: bool = False
    callers: Tuple[str, ...] = ()  # Calling blocks
    callees: Tuple[str, ...] = ()  # Called functions
    formal_args: Tuple[str, ...] = ()  # By position
    returns: int = 0  # Values handed back through RETURNPRIVATE

    @property
    def is_public(self) -> bool:
        return self.selector is not None

    @property
    def arity(self) -> int:
        return len(self.formal_args)
