"""Opcode names and opcode classes used by the control-flow reconstruction."""
from typing import Optional

# Pseudo-opcodes emitted by the lifter for internal procedure call/return
CALLPRIVATE = "CALLPRIVATE"
RETURNPRIVATE = "RETURNPRIVATE"

# Merge-point pseudo-instruction, excluded from the statement order
PHI = "PHI"

STOP = "STOP"
RETURN = "RETURN"
REVERT = "REVERT"
INVALID = "INVALID"
THROW = "THROW"
SELFDESTRUCT = "SELFDESTRUCT"

# A program may only end normally on one of these
VALID_TERMINAL_OPCODES = frozenset({STOP, RETURN})

# Halting opcodes that end the program abnormally (trap/revert)
ABNORMAL_TERMINAL_OPCODES = frozenset({REVERT, INVALID, THROW, SELFDESTRUCT})

# Operand slot 0 of CALLPRIVATE holds the callee, of RETURNPRIVATE the return target
RESERVED_OPERAND_SLOTS = 1


def is_phi(opcode: Optional[str]) -> bool:
    return opcode == PHI


def is_valid_terminal(opcode: Optional[str]) -> bool:
    """True for the opcodes that end the program normally (STOP, RETURN)."""
    return opcode in VALID_TERMINAL_OPCODES


def is_abnormal_terminal(opcode: Optional[str]) -> bool:
    return opcode in ABNORMAL_TERMINAL_OPCODES


def classify_terminal(opcode: Optional[str]) -> Optional[str]:
    """
    Classify the tail opcode of a block that has no local successor.

    Returns:
        "valid", "abnormal", "private-return", "private-call" (a call that
        never returns locally), or None when the opcode does not leave the
        block at all.
    """
    if is_valid_terminal(opcode):
        return "valid"
    if is_abnormal_terminal(opcode):
        return "abnormal"
    if opcode == RETURNPRIVATE:
        return "private-return"
    if opcode == CALLPRIVATE:
        return "private-call"
    return None
