from typing import Optional
from . import x86_opcodes as isa
from .instruction import Instruction
from .x86_opcodes import Prefixes

# Longest legal x86 instruction.
MAX_INSTRUCTION_LENGTH = 15

class Disassembler:

    def __init__(self, bytecode: bytes, base_address: int = 0, mode64: bool = True):
        self.bytecode = bytecode
        self.offset = 0
        self.base_address = base_address
        self.mode64 = mode64

    def disassemble(self) -> list[Instruction]:
        """Linear sweep over the whole buffer; undecodable bytes become ``db`` entries."""
        instructions = []
        self.offset = 0
        while self.offset < len(self.bytecode):
            instr = self._decode_one()
            if instr.size == 0:
                break
            instructions.append(instr)
            self.offset += instr.size
        return instructions

    def decode(self, address: int) -> Optional[Instruction]:
        """Decodes the instruction at ``address``; ``None`` if it is not a known instruction."""
        offset = address - self.base_address
        if offset < 0 or offset >= len(self.bytecode):
            return None
        self.offset = offset
        instr = self._decode_one()
        if instr.mnemonic == "db" or instr.size == 0:
            return None
        return instr

    def _decode_one(self) -> Instruction:

        address = self.base_address + self.offset

        prefixes = self._parse_prefixes()

        code_offset = self.offset + prefixes.size
        if code_offset >= len(self.bytecode):

            size = len(self.bytecode) - self.offset
            if size == 0:
                return Instruction(address, 0, "db", "EOF", b'', is_error=True)

            bytes_slice = self.bytecode[self.offset : self.offset + size]
            operands = ', '.join(f'0x{b:02x}' for b in bytes_slice)
            return Instruction(address, size, "db", operands, bytes_slice)

        parser = None
        code_to_parse = self.bytecode[code_offset:code_offset + MAX_INSTRUCTION_LENGTH]
        opcode = code_to_parse[0]

        is_two_byte_opcode = False
        if opcode == 0x0F:
            if len(code_to_parse) > 1:
                is_two_byte_opcode = True
                opcode2 = code_to_parse[1]
                parser = isa.TWO_BYTE_OPCODE_MAP.get(opcode2)
        else:
            parser = isa.OPCODE_MAP.get(opcode)

        if parser:
            instr = parser(code_to_parse, address, prefixes)
            if instr:
                # Parsers work on the bytes after the prefixes.
                total_size = prefixes.size + instr.size
                instr.bytes = self.bytecode[self.offset : self.offset + total_size]
                instr.size = total_size
                instr.ops = [op.shifted(prefixes.size) for op in instr.ops]
                return instr

        num_opcode_bytes = 2 if is_two_byte_opcode else 1
        size = prefixes.size + num_opcode_bytes
        size = min(size, len(self.bytecode) - self.offset)

        bytes_slice = self.bytecode[self.offset : self.offset + size]
        operands = ', '.join(f'0x{b:02x}' for b in bytes_slice)
        return Instruction(address, size, "db", operands, bytes_slice)

    def _parse_prefixes(self) -> Prefixes:

        p = Prefixes(mode64=self.mode64)
        temp_offset = 0

        legacy_prefixes_end = False
        while not legacy_prefixes_end and (self.offset + temp_offset) < len(self.bytecode):
            byte = self.bytecode[self.offset + temp_offset]

            is_legacy_prefix = True
            if byte == 0x66:
                p.operand_size_override = True
            elif byte == 0x67:
                p.address_size_override = True
            elif byte == 0xF0:
                p.lock = True
            elif byte == 0xF2:
                p.repne = True
            elif byte == 0xF3:
                p.rep = True
            elif byte in isa.SEG_PREFIX_MAP:
                p.segment_override = byte
            else:
                is_legacy_prefix = False

            if is_legacy_prefix:
                temp_offset += 1
            else:
                legacy_prefixes_end = True

        if self.mode64 and (self.offset + temp_offset) < len(self.bytecode):
            byte = self.bytecode[self.offset + temp_offset]
            if 0x40 <= byte <= 0x4F:
                p.rex = isa.RexPrefix(
                    w=(byte & 0x08) != 0,
                    r=(byte & 0x04) != 0,
                    x=(byte & 0x02) != 0,
                    b=(byte & 0x01) != 0,
                )
                temp_offset += 1

        p.size = temp_offset
        return p


class ImageDecoder:
    """Instruction decoder over every segment of a :class:`BinaryImage`."""

    def __init__(self, image, mode64: Optional[bool] = None):
        if mode64 is None:
            mode64 = image.bitness == 64
        self.image = image
        self._disassemblers = [
            Disassembler(seg.data, base_address=seg.start, mode64=mode64)
            for seg in image.segments
        ]

    def decode(self, address: int) -> Optional[Instruction]:
        for dis in self._disassemblers:
            if dis.base_address <= address < dis.base_address + len(dis.bytecode):
                return dis.decode(address)
        return None

    def sweep_code(self) -> list[Instruction]:
        """Linear sweep of all executable segments, in address order."""
        instructions = []
        for seg, dis in zip(self.image.segments, self._disassemblers):
            if seg.executable:
                instructions.extend(dis.disassemble())
        return instructions
