from .disassembler import Disassembler, ImageDecoder
from .instruction import Instruction, Operand, OperandKind
from .analyzer import find_functions, FoundFunction, find_xrefs, FunctionResolver, XrefIndex
from .image import BinaryImage, Segment, BADADDR
from .signature import (
    Signature,
    SignatureByte,
    SignatureType,
    build_ida_signature_string,
    format_signature,
)
from .operand_policy import default_operand_range, arm_operand_range, select_operand_policy
from .session import Session, Answer
from .builder import grow_unique_signature, build_range_signature, append_instruction
from .xref_ranker import rank_xref_signatures
from .codec import parse_signature_text, search_signature
from .errors import (
    SignatureError,
    InvalidAddressError,
    NotCodeError,
    DecodeFailedError,
    NotUniqueError,
    LengthExceededError,
    LeftFunctionScopeError,
    AbortedError,
    FormatUnrecognizedError,
    FormatMismatchError,
)

__all__ = [
    "Disassembler",
    "ImageDecoder",
    "Instruction",
    "Operand",
    "OperandKind",
    "find_functions",
    "FoundFunction",
    "find_xrefs",
    "FunctionResolver",
    "XrefIndex",
    "BinaryImage",
    "Segment",
    "BADADDR",
    "Signature",
    "SignatureByte",
    "SignatureType",
    "build_ida_signature_string",
    "format_signature",
    "default_operand_range",
    "arm_operand_range",
    "select_operand_policy",
    "Session",
    "Answer",
    "grow_unique_signature",
    "build_range_signature",
    "append_instruction",
    "rank_xref_signatures",
    "parse_signature_text",
    "search_signature",
    "SignatureError",
    "InvalidAddressError",
    "NotCodeError",
    "DecodeFailedError",
    "NotUniqueError",
    "LengthExceededError",
    "LeftFunctionScopeError",
    "AbortedError",
    "FormatUnrecognizedError",
    "FormatMismatchError",
]
