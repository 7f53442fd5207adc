"""Turns pasted signature text of any supported dialect into a :class:`Signature`.

Detection order, first match wins:

1. an ``x``/``?`` mask string ("xx??x") next to ``\\xNN`` or ``0xNN`` bytes,
2. a ``0b`` bitmask (lowest bit = first byte) next to the same kinds of bytes,
3. IDA / x64dbg text ("48 8B ? ?", "48 8B ?? ??"), brackets ignored,
4. ``\\xNN`` or ``0xNN`` bytes with no mask, all literal.
"""
import re
from typing import List, Optional, Tuple

from .errors import FormatMismatchError, FormatUnrecognizedError
from .image import BinaryImage
from .signature import Signature, SignatureByte, build_ida_signature_string

# A mask always starts with x and covers more than one byte.
MASK_PATTERN = re.compile(r'x(?:x|\?)+')
BITMASK_PATTERN = re.compile(r'0b(?:[01])+')
ESCAPED_BYTE_PATTERN = re.compile(r'\\x([0-9A-Fa-f]{2})')
C_BYTE_PATTERN = re.compile(r'0x([0-9A-Fa-f]{2})')
BYTE_PATTERNS = (ESCAPED_BYTE_PATTERN, C_BYTE_PATTERN)

BRACKETS_PATTERN = re.compile(r'[\)\(\[\]]+')
TRAILING_WILDCARDS_PATTERN = re.compile(r'[?\s]+$')
IDA_SIGNATURE_PATTERN = re.compile(r'(?:(?:[0-9A-Fa-f]{2}\s+)|(?:\?\s+))+')


def detect_mask(text: str) -> Optional[str]:
    """Returns the mask as an ``x``/``?`` string, converting a bitmask if needed."""
    match = MASK_PATTERN.search(text)
    if match:
        return match.group(0)

    match = BITMASK_PATTERN.search(text)
    if match:
        bits = match.group(0)[2:]
        return "".join('x' if b == '1' else '?' for b in reversed(bits))
    return None


def _signature_from_mask(text: str, mask: str) -> Signature:
    for pattern in BYTE_PATTERNS:
        raw_bytes = pattern.findall(text)
        if raw_bytes and len(raw_bytes) == len(mask):
            signature = Signature()
            for value, mask_char in zip(raw_bytes, mask):
                signature.append(SignatureByte(int(value, 16), mask_char == '?'))
            return signature
    raise FormatMismatchError(mask)


def _normalize_ida_text(text: str) -> str:
    text = BRACKETS_PATTERN.sub("", text)
    text = text.lstrip()
    # One separator after every token, so "??" can be told apart from "?".
    text = TRAILING_WILDCARDS_PATTERN.sub("", text) + " "
    return text.replace("?? ", "? ")


def _signature_from_ida_text(text: str) -> Signature:
    signature = Signature()
    for token in text.split():
        if token == '?':
            signature.append(SignatureByte(0, True))
        else:
            signature.append(SignatureByte(int(token, 16)))
    return signature


def parse_signature_text(text: str) -> Signature:
    """Parses signature text of any supported dialect.

    Raises :class:`FormatMismatchError` when a mask was found but the bytes
    do not line up with it, :class:`FormatUnrecognizedError` when nothing fits.
    """
    mask = detect_mask(text)
    if mask:
        return _signature_from_mask(text, mask)

    normalized = _normalize_ida_text(text)
    if IDA_SIGNATURE_PATTERN.fullmatch(normalized):
        return _signature_from_ida_text(normalized)

    for pattern in BYTE_PATTERNS:
        raw_bytes = pattern.findall(normalized)
        if len(raw_bytes) > 1:
            signature = Signature()
            signature.add_bytes((int(value, 16) for value in raw_bytes), False)
            return signature

    raise FormatUnrecognizedError()


def search_signature(image: BinaryImage, text: str) -> Tuple[Signature, List[int]]:
    """Parses ``text`` and returns it with every address in ``image`` it matches."""
    signature = parse_signature_text(text)
    return signature, image.find_occurrences(build_ida_signature_string(signature))
