import dataclasses
from enum import Enum
from typing import List, Optional


class OperandKind(Enum):
    VOID = 0
    REG = 1
    MEM = 2      # direct or rip-relative memory reference
    PHRASE = 3   # [reg] / [base + index*scale], no displacement
    DISPL = 4    # [reg + disp]
    IMM = 5
    FAR = 6
    NEAR = 7


@dataclasses.dataclass
class Operand:

    kind: OperandKind
    # Byte offset of the operand's encoded field inside the instruction. 0 = unknown.
    offset: int = 0
    value: Optional[int] = None

    def shifted(self, delta: int) -> "Operand":
        if self.offset == 0:
            return self
        return Operand(self.kind, self.offset + delta, self.value)


@dataclasses.dataclass
class Instruction:

    address: int
    size: int
    mnemonic: str
    operands: str
    bytes: bytes
    is_error: bool = False
    ops: List[Operand] = dataclasses.field(default_factory=list)

    def __str__(self):

        hex_bytes = ' '.join(f'{b:02x}' for b in self.bytes)
        return f"0x{self.address:08x}: {hex_bytes:<24} {self.mnemonic} {self.operands}"
