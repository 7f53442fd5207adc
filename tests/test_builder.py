from unittest import mock

import pytest

from sigmaker.analyzer import FoundFunction, FunctionResolver, XrefIndex
from sigmaker.builder import append_instruction, build_range_signature, grow_unique_signature
from sigmaker.disassembler import ImageDecoder
from sigmaker.errors import (
    AbortedError,
    DecodeFailedError,
    InvalidAddressError,
    LeftFunctionScopeError,
    LengthExceededError,
    NotCodeError,
    NotUniqueError,
)
from sigmaker.image import BADADDR, BinaryImage, Segment
from sigmaker.instruction import Instruction, Operand, OperandKind
from sigmaker.operand_policy import arm_operand_range, default_operand_range
from sigmaker.session import Answer, Session
from sigmaker.signature import Signature, SignatureByte, build_ida_signature_string

# Two copies of the same small function that only differ in one displacement:
#   push rbp / mov rbp, rsp / mov eax, [rbp+disp8] / pop rbp / ret
TWO_FUNCTIONS = bytes.fromhex("55 48 89 E5 8B 45 08 5D C3" "55 48 89 E5 8B 45 10 5D C3")


def make_session(image, functions=(), policy=default_operand_range, **ports):
    return Session(
        image,
        ImageDecoder(image),
        FunctionResolver(functions),
        XrefIndex({}),
        policy,
        **ports,
    )


def ida(sig):
    return build_ida_signature_string(sig)


def test_wildcarded_growth_stops_at_function_end():
    session = Session.from_image(BinaryImage.from_bytes(TWO_FUNCTIONS))
    assert session.functions.function_containing(0).end == 9

    with pytest.raises(LeftFunctionScopeError):
        grow_unique_signature(session, 0, wildcard_operands=True, continue_outside_function=False)


def test_literal_growth_is_unique_inside_function():
    session = Session.from_image(BinaryImage.from_bytes(TWO_FUNCTIONS))
    sig = grow_unique_signature(session, 0, wildcard_operands=False, continue_outside_function=False)
    assert ida(sig) == "55 48 89 E5 8B 45 08"


def test_growth_may_continue_into_next_function():
    session = Session.from_image(BinaryImage.from_bytes(TWO_FUNCTIONS))
    sig = grow_unique_signature(session, 0, wildcard_operands=True, continue_outside_function=True)
    assert ida(sig) == "55 48 89 E5 8B 45 ? 5D C3 55"


def test_result_matches_exactly_once():
    image = BinaryImage.from_bytes(TWO_FUNCTIONS)
    session = Session.from_image(image)
    sig = grow_unique_signature(session, 9, wildcard_operands=False, continue_outside_function=False)
    assert image.find_occurrences(ida(sig)) == [9]
    assert not sig[-1].is_wildcard


def test_every_shorter_prefix_was_ambiguous():
    image = BinaryImage.from_bytes(TWO_FUNCTIONS)
    session = Session.from_image(image)
    searches = []
    real_find = image.find_occurrences

    def recording_find(pattern, limit=None):
        hits = real_find(pattern, limit)
        searches.append((pattern, hits))
        return hits

    with mock.patch.object(image, "find_occurrences", side_effect=recording_find):
        sig = grow_unique_signature(session, 0, wildcard_operands=True, continue_outside_function=True)

    *earlier, (last_pattern, last_hits) = searches
    assert last_pattern == ida(sig)
    assert last_hits == [0]
    assert [len(p.split()) for p, _ in earlier] == [1, 4, 7, 8, 9]
    assert all(len(hits) > 1 for _, hits in earlier)


def test_invalid_addresses():
    session = make_session(BinaryImage.from_bytes(b"\x90\xc3", base=0x1000))
    for ea in (BADADDR, 0x0FFF, 0x1002):
        with pytest.raises(InvalidAddressError):
            grow_unique_signature(session, ea, True, False)


def test_data_address_is_rejected():
    image = BinaryImage([Segment(".data", 0x2000, b"\x90\xc3", executable=False)])
    with pytest.raises(NotCodeError):
        grow_unique_signature(make_session(image), 0x2000, True, False)


def test_undecodable_first_instruction():
    session = make_session(BinaryImage.from_bytes(b"\x06\x90\xc3"))
    with pytest.raises(DecodeFailedError):
        grow_unique_signature(session, 0, True, False)


def test_running_off_decodable_code_keeps_partial_signature():
    session = make_session(BinaryImage.from_bytes(bytes.fromhex("90 C3 06 90 C3 06")))
    with pytest.raises(NotUniqueError) as excinfo:
        grow_unique_signature(session, 3, True, False)
    assert ida(excinfo.value.signature) == "90 C3"


class TestOverflowPrompt:

    NOPS = BinaryImage.from_bytes(b"\x90" * 40)

    def test_answer_no_stops_with_not_unique(self):
        confirm = mock.Mock(return_value=Answer.NO)
        session = make_session(self.NOPS, confirm_continue=confirm)
        with pytest.raises(NotUniqueError) as excinfo:
            grow_unique_signature(session, 0, True, False, max_length=4)
        confirm.assert_called_once_with("Signature is already at 5 bytes. Continue?")
        assert len(excinfo.value.signature) == 5

    def test_answer_yes_resets_the_budget(self):
        confirm = mock.Mock(return_value=Answer.YES)
        session = make_session(self.NOPS, confirm_continue=confirm)
        sig = grow_unique_signature(session, 0, True, False, max_length=4)
        assert len(sig) == 40
        assert confirm.call_count == 7

    def test_cancel_aborts(self):
        session = make_session(self.NOPS, confirm_continue=lambda message: Answer.CANCEL)
        with pytest.raises(AbortedError):
            grow_unique_signature(session, 0, True, False, max_length=4)

    def test_no_prompt_raises_length_exceeded(self):
        confirm = mock.Mock()
        session = make_session(self.NOPS, confirm_continue=confirm)
        with pytest.raises(LengthExceededError):
            grow_unique_signature(session, 0, True, False, max_length=4, prompt_on_overflow=False)
        confirm.assert_not_called()


def test_cancellation_is_checked_before_each_instruction():
    session = make_session(BinaryImage.from_bytes(TWO_FUNCTIONS), is_cancelled=lambda: True)
    with pytest.raises(AbortedError):
        grow_unique_signature(session, 0, True, False)


def test_append_masks_operand_tail():
    # mov eax, [rip+0x10]
    image = BinaryImage.from_bytes(bytes.fromhex("48 8B 05 10 00 00 00"), base=0x1000)
    session = make_session(image)
    sig = Signature()
    append_instruction(session, sig, session.decoder.decode(0x1000), wildcard_operands=True)
    assert ida(sig) == "48 8B 05 ? ? ? ?"

    sig = Signature()
    append_instruction(session, sig, session.decoder.decode(0x1000), wildcard_operands=False)
    assert ida(sig) == "48 8B 05 10 00 00 00"


def test_append_operand_at_offset_zero_keeps_trailing_opcode():
    image = BinaryImage.from_bytes(bytes.fromhex("01 02 03 E5"), procname="ARM")
    session = make_session(image, policy=arm_operand_range)
    instr = Instruction(0, 4, "mov", "r0, #1", image.read_bytes(0, 4), ops=[Operand(OperandKind.IMM, 0, 1)])

    sig = Signature()
    append_instruction(session, sig, instr, wildcard_operands=True)
    assert ida(sig) == "? ? ? E5"
    assert [b.value for b in sig] == [0x01, 0x02, 0x03, 0xE5]


class TestRangeSignature:

    def test_data_range_is_copied_without_searching(self):
        image = BinaryImage([Segment(".rdata", 0x3000, b"\x01\x02\x03\x04\x05\x06", executable=False)])
        session = make_session(image)
        with mock.patch.object(BinaryImage, "find_occurrences", side_effect=AssertionError("searched")):
            sig = build_range_signature(session, 0x3000, 0x3005, wildcard_operands=True)
        assert sig == [SignatureByte(v) for v in (1, 2, 3, 4, 5)]

    def test_trailing_wildcards_are_trimmed(self):
        session = make_session(BinaryImage.from_bytes(bytes.fromhex("55 E8 10 00 00 00 C3")))
        sig = build_range_signature(session, 0, 6, wildcard_operands=True)
        assert ida(sig) == "55 E8"

    def test_last_instruction_may_run_past_end(self):
        session = make_session(BinaryImage.from_bytes(bytes.fromhex("55 E8 10 00 00 00 C3")))
        sig = build_range_signature(session, 0, 2, wildcard_operands=False)
        assert ida(sig) == "55 E8 10 00 00 00"

    def test_undecodable_tail_is_copied_literally(self):
        session = make_session(BinaryImage.from_bytes(bytes.fromhex("90 90 06 07 08 09")))
        sig = build_range_signature(session, 0, 5, wildcard_operands=True)
        assert ida(sig) == "90 90 06 07 08"

    def test_undecodable_start(self):
        session = make_session(BinaryImage.from_bytes(b"\x06\x07"))
        with pytest.raises(DecodeFailedError):
            build_range_signature(session, 0, 2, True)

    def test_empty_or_reversed_range_is_invalid(self):
        session = make_session(BinaryImage.from_bytes(b"\x90" * 4))
        for start, end in ((2, 2), (3, 1), (BADADDR, 2), (0, BADADDR)):
            with pytest.raises(InvalidAddressError):
                build_range_signature(session, start, end, True)

    def test_range_past_segment_end_is_invalid(self):
        image = BinaryImage([
            Segment(".rdata", 0x3000, b"\x01\x02\x03\x04", executable=False),
            Segment(".data", 0x3004, b"\x05\x06", executable=False),
        ])
        session = make_session(image)
        with pytest.raises(InvalidAddressError):
            build_range_signature(session, 0x3002, 0x3006, True)
        assert len(build_range_signature(session, 0x3002, 0x3004, True)) == 2


class FixedWidthDecoder:
    """Every 4 bytes are one instruction with an immediate in its low three bytes."""

    def __init__(self, image):
        self.image = image

    def decode(self, address):
        data = self.image.read_bytes(address, 4)
        if len(data) < 4:
            return None
        return Instruction(address, 4, "op", "", data, ops=[Operand(OperandKind.IMM, 0, 0)])

    def sweep_code(self):
        return [
            self.decode(address)
            for seg in self.image.segments if seg.executable
            for address in range(seg.start, seg.end - 3, 4)
        ]


ARM_CODE = bytes.fromhex("08009FE5 000000EB 0000A0E1")


def test_arm_image_needs_its_own_decoder():
    image = BinaryImage.from_bytes(ARM_CODE, procname="ARM", bitness=32)
    with pytest.raises(ValueError):
        Session.from_image(image)


def test_arm_image_with_decoder_uses_arm_policy():
    image = BinaryImage.from_bytes(ARM_CODE, procname="ARM", bitness=32)
    session = Session.from_image(image, decoder=FixedWidthDecoder(image))
    assert session.operand_policy is arm_operand_range

    sig = grow_unique_signature(session, 0, wildcard_operands=True, continue_outside_function=True)
    assert ida(sig) == "? ? ? E5"
