import pytest

from sigmaker.disassembler import Disassembler, ImageDecoder
from sigmaker.image import BinaryImage, Segment
from sigmaker.instruction import OperandKind
from sigmaker.operand_policy import default_operand_range


def decode(hex_bytes, address=0, mode64=True):
    code = bytes.fromhex(hex_bytes)
    return Disassembler(code, base_address=address, mode64=mode64).decode(address)


def kinds(instr):
    return [op.kind for op in instr.ops]


def test_displacement_operand():
    instr = decode("8B 45 08")
    assert instr.mnemonic == "mov"
    assert "rbp + 0x8" in instr.operands
    assert kinds(instr) == [OperandKind.REG, OperandKind.DISPL]
    assert instr.ops[1].offset == 2
    assert default_operand_range(instr) == (2, 1)


def test_register_only_instruction_has_nothing_to_mask():
    instr = decode("48 89 E5")
    assert instr.size == 3
    assert instr.operands == "rbp, rsp"
    assert default_operand_range(instr) is None


def test_rip_relative_operand_is_shifted_past_rex():
    instr = decode("48 8B 05 10 00 00 00", address=0x1000)
    assert instr.size == 7
    mem = instr.ops[1]
    assert mem.kind == OperandKind.MEM
    assert mem.offset == 3
    assert mem.value == 0x1017
    assert default_operand_range(instr) == (3, 4)


def test_relative_call_target():
    instr = decode("E8 1B 00 00 00")
    assert instr.mnemonic == "call"
    assert kinds(instr) == [OperandKind.NEAR]
    assert instr.ops[0].offset == 1
    assert instr.ops[0].value == 0x20


def test_memory_operand_with_immediate():
    # cmp dword ptr [rbp-4], 5
    instr = decode("83 7D FC 05")
    assert instr.mnemonic == "cmp"
    assert [(op.kind, op.offset) for op in instr.ops] == [(OperandKind.DISPL, 2), (OperandKind.IMM, 3)]
    assert default_operand_range(instr) == (2, 2)


@pytest.mark.parametrize("hex_bytes, expected", [
    ("C7 45 F8 0A 00 00 00", (2, 5)),   # mov dword ptr [rbp-8], 10
    ("B9 05 00 00 00", (1, 4)),         # mov ecx, 5
    ("C3", None),
])
def test_operand_ranges(hex_bytes, expected):
    assert default_operand_range(decode(hex_bytes)) == expected


def test_indirect_call_through_import_slot():
    instr = decode("FF 15 00 10 00 00", address=0x2000)
    assert instr.mnemonic == "call"
    assert instr.ops[0].kind == OperandKind.MEM
    assert instr.ops[0].offset == 2
    assert instr.ops[0].value == 0x3006


def test_32bit_absolute_memory_operand():
    instr = decode("8B 0D 00 20 40 00", mode64=False)
    assert instr.ops[1].kind == OperandKind.MEM
    assert instr.ops[1].offset == 2
    assert instr.ops[1].value == 0x402000


def test_rex_bytes_are_inc_in_32bit_mode():
    instr = decode("40", mode64=False)
    assert (instr.mnemonic, instr.operands) == ("inc", "eax")


def test_unknown_opcode_is_not_decoded():
    assert decode("06") is None
    assert decode("90", address=0x10) is not None


def test_linear_sweep_emits_db_for_unknown_bytes():
    listing = Disassembler(bytes.fromhex("55 06 C3")).disassemble()
    assert [i.mnemonic for i in listing] == ["push", "db", "ret"]
    assert sum(i.size for i in listing) == 3


def test_image_decoder_routes_to_segment():
    image = BinaryImage([
        Segment(".text", 0x1000, bytes.fromhex("55 C3"), executable=True),
        Segment(".data", 0x2000, bytes.fromhex("90 90"), executable=False),
    ], bitness=32)
    decoder = ImageDecoder(image)

    assert decoder.decode(0x1001).mnemonic == "ret"
    assert decoder.decode(0x2000).mnemonic == "nop"
    assert decoder.decode(0x3000) is None
    # only executable segments are swept
    assert [i.address for i in decoder.sweep_code()] == [0x1000, 0x1001]
    assert decoder.decode(0x1000).operands == "ebp"
