import re
from typing import List, Optional, Sequence, TYPE_CHECKING

from .errors import FormatUnrecognizedError

if TYPE_CHECKING:
    from .image import Segment

_HEX_TOKEN = re.compile(r'[0-9A-Fa-f]{2}')
_WILDCARD_TOKENS = ('?', '??')

def pattern_to_regex(pattern: str) -> re.Pattern:
    """Compiles an IDA-style pattern ("48 8B ? ? 90") into a byte regex.

    The body sits in a lookahead so that ``finditer`` reports overlapping hits.
    """
    tokens = pattern.split()
    if not tokens:
        raise FormatUnrecognizedError("Empty signature")

    regex_pattern = b''
    for token in tokens:
        if token in _WILDCARD_TOKENS:
            regex_pattern += b'.'
        elif _HEX_TOKEN.fullmatch(token):
            regex_pattern += re.escape(bytes([int(token, 16)]))
        else:
            raise FormatUnrecognizedError(f"Invalid signature token '{token}'")
    return re.compile(b'(?=' + regex_pattern + b')', re.DOTALL)

def find_occurrences(segments: Sequence["Segment"], pattern: str, limit: Optional[int] = None) -> List[int]:
    """Returns every address where ``pattern`` matches, in ascending order.

    Each segment is scanned on its own; matches never span two segments.
    With ``limit`` the scan stops once that many hits were collected.
    """
    regex = pattern_to_regex(pattern)

    results = []
    for seg in sorted(segments, key=lambda s: s.start):
        for match in regex.finditer(seg.data):
            results.append(seg.start + match.start())
            if limit is not None and len(results) >= limit:
                return results
    return results
