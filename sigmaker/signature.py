import dataclasses
from enum import Enum
from typing import Iterable, List


@dataclasses.dataclass(frozen=True)
class SignatureByte:
    # The original byte is kept even for wildcards so it can be printed again as a literal.
    value: int
    is_wildcard: bool = False


class Signature(List[SignatureByte]):
    """Ordered byte/wildcard sequence; builders only ever append to it."""

    def add_bytes(self, data: Iterable[int], wildcard: bool) -> None:
        self.extend(SignatureByte(b, wildcard) for b in data)

    def trim(self) -> "Signature":
        """Drops trailing wildcards in place and returns ``self``."""
        while self and self[-1].is_wildcard:
            self.pop()
        return self

    def trimmed(self) -> "Signature":
        return Signature(self).trim()

    @property
    def wildcard_mask(self) -> str:
        return "".join("?" if b.is_wildcard else "x" for b in self)


class SignatureType(Enum):
    IDA_STYLE = "ida"
    X64DBG_STYLE = "x64dbg"
    C_BYTE_ARRAY_WITH_MASK = "mask"
    C_RAW_BYTES_WITH_BITMASK = "bitmask"


def build_ida_signature_string(signature: Iterable[SignatureByte], double_qm: bool = False) -> str:
    wildcard = "??" if double_qm else "?"
    return " ".join(wildcard if b.is_wildcard else f"{b.value:02X}" for b in signature)

def build_byte_array_with_mask_signature_string(signature: Signature) -> str:
    if not signature:
        return ""
    pattern = "".join(f"\\x{b.value:02X}" for b in signature)
    return f"{pattern} {signature.wildcard_mask}"

def build_bytes_with_bitmask_signature_string(signature: Signature) -> str:
    """``0xNN, 0xNN 0b...``; the bitmask is reversed so the first byte is the lowest bit."""
    if not signature:
        return ""
    pattern = ", ".join(f"0x{b.value:02X}" for b in signature)
    bits = "".join("0" if b.is_wildcard else "1" for b in reversed(signature))
    return f"{pattern} 0b{bits}"

def format_signature(signature: Signature, sig_type: SignatureType) -> str:
    if sig_type == SignatureType.IDA_STYLE:
        return build_ida_signature_string(signature)
    if sig_type == SignatureType.X64DBG_STYLE:
        return build_ida_signature_string(signature, double_qm=True)
    if sig_type == SignatureType.C_BYTE_ARRAY_WITH_MASK:
        return build_byte_array_with_mask_signature_string(signature)
    if sig_type == SignatureType.C_RAW_BYTES_WITH_BITMASK:
        return build_bytes_with_bitmask_signature_string(signature)
    raise ValueError(f"Unsupported signature type: {sig_type}")
