import dataclasses
from typing import Optional

from decompiler.utils.evm_ops import CALLPRIVATE, RETURNPRIVATE, is_phi


@dataclasses.dataclass(frozen=True)
class Statement:
    id: str
    opcode: Optional[str]
    block: Optional[str]  # None when the statement's block is missing or ambiguous

    @property
    def is_phi(self) -> bool:
        return is_phi(self.opcode)

    @property
    def is_private_call(self) -> bool:
        return self.opcode == CALLPRIVATE

    @property
    def is_private_return(self) -> bool:
        return self.opcode == RETURNPRIVATE
