from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .signature import Signature


class SignatureError(Exception):
    """Base class for every recoverable signature failure."""


class InvalidAddressError(SignatureError):
    def __init__(self, message: str = "Invalid address"):
        super().__init__(message)


class NotCodeError(SignatureError):
    def __init__(self, message: str = "Can not create code signature for data"):
        super().__init__(message)


class DecodeFailedError(SignatureError):
    def __init__(self, message: str = "Failed to decode first instruction"):
        super().__init__(message)


class NotUniqueError(SignatureError):
    """Growth stopped before the signature became unique.

    ``signature`` holds what was built so far, for diagnostic output.
    """

    def __init__(self, signature: Optional["Signature"] = None, message: str = "Signature not unique"):
        super().__init__(message)
        self.signature = signature


class LengthExceededError(SignatureError):
    def __init__(self, message: str = "Signature exceeded maximum length"):
        super().__init__(message)


class LeftFunctionScopeError(SignatureError):
    def __init__(self, message: str = "Signature left function scope"):
        super().__init__(message)


class AbortedError(SignatureError):
    def __init__(self, message: str = "Aborted"):
        super().__init__(message)


class FormatUnrecognizedError(SignatureError):
    def __init__(self, message: str = "Unrecognized signature type"):
        super().__init__(message)


class FormatMismatchError(SignatureError):
    """A mask was detected but the byte tokens do not line up with it."""

    def __init__(self, mask: str):
        super().__init__(f'Detected mask "{mask}" but failed to match corresponding bytes')
        self.mask = mask
