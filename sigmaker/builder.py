"""Signature builders: grow-until-unique from one address, and fixed ranges."""
import logging

from .errors import (
    AbortedError,
    DecodeFailedError,
    InvalidAddressError,
    LeftFunctionScopeError,
    LengthExceededError,
    NotCodeError,
    NotUniqueError,
)
from .image import BADADDR, BinaryImage
from .instruction import Instruction
from .session import Answer, Session
from .signature import Signature, build_ida_signature_string

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIGNATURE_LENGTH = 1000


def add_bytes_to_signature(image: BinaryImage, signature: Signature, address: int, count: int, wildcard: bool) -> None:
    signature.add_bytes(image.read_bytes(address, count), wildcard)


def append_instruction(session: Session, signature: Signature, instruction: Instruction, wildcard_operands: bool) -> None:
    """Appends one instruction, masking its operand bytes when the policy finds any."""
    address = instruction.address
    size = instruction.size
    image = session.image

    operand = session.operand_policy(instruction) if wildcard_operands else None
    if operand and operand[1] > 0:
        offset, length = operand
        add_bytes_to_signature(image, signature, address, offset, False)
        add_bytes_to_signature(image, signature, address + offset, length, True)
        # Operand on the left side: keep the opcode bytes that follow it.
        if offset == 0:
            add_bytes_to_signature(image, signature, address + length, size - length, False)
    else:
        add_bytes_to_signature(image, signature, address, size, False)


def find_signature_occurrences(image: BinaryImage, ida_signature: str) -> list[int]:
    return image.find_occurrences(ida_signature)


def is_signature_unique(image: BinaryImage, ida_signature: str) -> bool:
    # Two hits are enough to know it is not unique.
    return len(image.find_occurrences(ida_signature, limit=2)) == 1


def _report_not_unique(ea: int, signature: Signature) -> None:
    logger.warning("NOT UNIQUE Signature for %X: %s", ea, build_ida_signature_string(signature))


def grow_unique_signature(
    session: Session,
    ea: int,
    wildcard_operands: bool,
    continue_outside_function: bool,
    max_length: int = DEFAULT_MAX_SIGNATURE_LENGTH,
    prompt_on_overflow: bool = True,
) -> Signature:
    """Appends instructions starting at ``ea`` until the signature matches exactly once.

    Bytes are never removed once appended; after every instruction the whole
    image is searched again. Raises a :class:`~sigmaker.errors.SignatureError`
    subclass when no unique signature can be produced.
    """
    image = session.image
    if ea == BADADDR or not image.contains(ea):
        raise InvalidAddressError()
    if not image.is_code(ea):
        raise NotCodeError()

    signature = Signature()
    sig_part_length = 0

    current_function = session.functions.function_containing(ea)

    current_address = ea
    while True:
        if session.is_cancelled():
            raise AbortedError()

        instruction = session.decoder.decode(current_address)
        if instruction is None:
            if not signature:
                raise DecodeFailedError()

            logger.info("Signature reached end of executable code @ %X", current_address)
            _report_not_unique(ea, signature)
            raise NotUniqueError(signature)

        if sig_part_length > max_length:
            if not prompt_on_overflow:
                raise LengthExceededError()

            answer = session.confirm_continue(f"Signature is already at {len(signature)} bytes. Continue?")
            if answer == Answer.YES:
                sig_part_length = 0
            elif answer == Answer.NO:
                _report_not_unique(ea, signature)
                raise NotUniqueError(signature)
            else:
                raise AbortedError()

        sig_part_length += instruction.size

        append_instruction(session, signature, instruction, wildcard_operands)

        current_sig = build_ida_signature_string(signature)
        logger.debug("Trying %X: %s", ea, current_sig)
        if is_signature_unique(image, current_sig):
            return signature.trim()

        current_address += instruction.size

        if not continue_outside_function and current_function and session.functions.function_containing(current_address) != current_function:
            raise LeftFunctionScopeError()


def build_range_signature(session: Session, start: int, end: int, wildcard_operands: bool) -> Signature:
    """Signature of the bytes in ``[start, end)``; no uniqueness check.

    Data is copied literally. Code is appended instruction by instruction
    (the last one may run past ``end``); if decoding stops early the rest of
    the range is copied literally.
    """
    image = session.image
    if start == BADADDR or end == BADADDR or start >= end or not image.contains(start):
        raise InvalidAddressError()
    # A range never spans two segments.
    if end > image.segment_at(start).end:
        raise InvalidAddressError()

    signature = Signature()

    if not image.is_code(start):
        add_bytes_to_signature(image, signature, start, end - start, False)
        return signature

    current_address = start
    while True:
        if session.is_cancelled():
            raise AbortedError()

        instruction = session.decoder.decode(current_address)
        if instruction is None:
            if not signature:
                raise DecodeFailedError()

            logger.info("Signature reached end of executable code @ %X", current_address)
            if current_address < end:
                add_bytes_to_signature(image, signature, current_address, end - current_address, False)
            return signature.trim()

        append_instruction(session, signature, instruction, wildcard_operands)
        current_address += instruction.size

        if current_address >= end:
            return signature.trim()
