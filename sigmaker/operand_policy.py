"""Which bytes of an instruction get wildcarded.

A policy takes one decoded :class:`Instruction` and returns ``(offset, length)``
of the byte range to mask, or ``None`` when nothing in it should be masked.
One policy is picked per session from the processor name of the image.
"""
from typing import Callable, Optional, Tuple

from .instruction import Instruction, OperandKind

OperandRange = Tuple[int, int]
OperandPolicy = Callable[[Instruction], Optional[OperandRange]]

ARM_MASKED_KINDS = frozenset({
    OperandKind.MEM,
    OperandKind.FAR,
    OperandKind.NEAR,
    OperandKind.PHRASE,
    OperandKind.DISPL,
    OperandKind.IMM,
})

# The decoder does not report operand field widths on ARM, so the masked
# length is guessed from the instruction size: one opcode byte stays literal.
ARM_OPERAND_LENGTHS = {
    4: 3,
    8: 7,
}


def default_operand_range(instruction: Instruction) -> Optional[OperandRange]:
    """x86/x64: mask from the first operand with a known offset to the end."""
    for op in instruction.ops:
        if op.kind == OperandKind.VOID:
            continue
        # offset 0 means unknown
        if op.offset == 0:
            continue
        return op.offset, instruction.size - op.offset
    return None


def arm_operand_range(instruction: Instruction) -> Optional[OperandRange]:
    for op in instruction.ops:
        if op.kind not in ARM_MASKED_KINDS:
            continue
        length = ARM_OPERAND_LENGTHS.get(instruction.size)
        if length is None:
            return None
        return op.offset, length
    return None


def is_arm(procname: str) -> bool:
    return procname == "ARM"


def select_operand_policy(procname: str) -> OperandPolicy:
    return arm_operand_range if is_arm(procname) else default_operand_range
