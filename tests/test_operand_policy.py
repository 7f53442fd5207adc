from sigmaker.instruction import Instruction, Operand, OperandKind
from sigmaker.operand_policy import (
    arm_operand_range,
    default_operand_range,
    select_operand_policy,
)


def make_instr(size, *ops):
    return Instruction(0x1000, size, "op", "", b"\x00" * size, ops=list(ops))


def test_default_uses_first_operand_with_known_offset():
    instr = make_instr(7, Operand(OperandKind.REG), Operand(OperandKind.MEM, 3, 0x2000))
    assert default_operand_range(instr) == (3, 4)


def test_default_skips_void_and_unknown_offsets():
    instr = make_instr(
        6,
        Operand(OperandKind.VOID, 2),
        Operand(OperandKind.PHRASE, 0),
        Operand(OperandKind.IMM, 2, 5),
    )
    assert default_operand_range(instr) == (2, 4)


def test_default_without_operands():
    assert default_operand_range(make_instr(1)) is None
    assert default_operand_range(make_instr(3, Operand(OperandKind.REG), Operand(OperandKind.REG))) is None


def test_arm_four_byte_instruction_masks_three_bytes():
    instr = make_instr(4, Operand(OperandKind.REG), Operand(OperandKind.IMM, 0, 0x10))
    assert arm_operand_range(instr) == (0, 3)


def test_arm_eight_byte_instruction_masks_seven_bytes():
    instr = make_instr(8, Operand(OperandKind.NEAR, 1, 0x4000))
    assert arm_operand_range(instr) == (1, 7)


def test_arm_other_lengths_have_no_rule():
    assert arm_operand_range(make_instr(2, Operand(OperandKind.IMM, 0, 1))) is None
    assert arm_operand_range(make_instr(6, Operand(OperandKind.DISPL, 2))) is None


def test_arm_never_masks_registers():
    assert arm_operand_range(make_instr(4, Operand(OperandKind.REG), Operand(OperandKind.REG))) is None


def test_policy_selected_by_processor_name():
    assert select_operand_policy("ARM") is arm_operand_range
    assert select_operand_policy("metapc") is default_operand_range
