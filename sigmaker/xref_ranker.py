import logging
from typing import List, Tuple

from .builder import grow_unique_signature
from .errors import AbortedError, SignatureError
from .session import Session
from .signature import Signature

logger = logging.getLogger(__name__)

DEFAULT_XREF_MAX_LENGTH = 250
DEFAULT_XREF_TOP_COUNT = 5

XrefSignature = Tuple[int, Signature]


def rank_xref_signatures(
    session: Session,
    ea: int,
    wildcard_operands: bool,
    continue_outside_function: bool,
    max_length: int = DEFAULT_XREF_MAX_LENGTH,
) -> List[XrefSignature]:
    """Unique signatures for every code location referencing ``ea``, shortest first.

    Length is the byte count of the signature, wildcards included. A reference
    that does not yield a unique signature is left out.
    """
    origins = [origin for origin in session.xrefs.incoming_far_references(ea) if session.image.is_code(origin)]
    xref_count = len(origins)

    xref_signatures: List[XrefSignature] = []
    for i, origin in enumerate(origins):
        if session.is_cancelled():
            raise AbortedError()

        session.report_progress(i + 1, xref_count)

        try:
            signature = grow_unique_signature(
                session, origin, wildcard_operands, continue_outside_function,
                max_length=max_length, prompt_on_overflow=False,
            )
        except AbortedError:
            raise
        except SignatureError as e:
            logger.debug("No signature for xref @ %X: %s", origin, e)
            continue

        xref_signatures.append((origin, signature))

    xref_signatures.sort(key=lambda item: len(item[1]))
    return xref_signatures
