"""Everything a signature search needs from the outside world.

The builders never talk to the user or to the binary directly; they go
through a :class:`Session`. Tests build one from fakes, the application
builds one from a loaded image with :meth:`Session.from_image`.
"""
import dataclasses
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .analyzer import FunctionResolver, XrefIndex, find_functions
from .disassembler import ImageDecoder
from .image import BinaryImage
from .operand_policy import OperandPolicy, is_arm, select_operand_policy

logger = logging.getLogger(__name__)


class Answer(Enum):
    YES = 1
    NO = 0
    CANCEL = -1


def _always_continue(message: str) -> Answer:
    return Answer.YES

def _ignore_progress(current: int, total: int) -> None:
    pass

def _never_cancelled() -> bool:
    return False


@dataclasses.dataclass
class Session:
    image: BinaryImage
    decoder: Any
    functions: FunctionResolver
    xrefs: XrefIndex
    operand_policy: OperandPolicy
    confirm_continue: Callable[[str], Answer] = _always_continue
    report_progress: Callable[[int, int], None] = _ignore_progress
    is_cancelled: Callable[[], bool] = _never_cancelled

    @classmethod
    def from_image(
        cls,
        image: BinaryImage,
        settings: Optional[Dict] = None,
        decoder: Any = None,
        **ports,
    ) -> "Session":
        """Decodes the executable segments once and derives functions and xrefs from them.

        The built-in decoder only understands x86/x64; other processors need
        a ``decoder`` with the same ``decode``/``sweep_code`` interface.
        """
        settings = settings or {}
        if decoder is None:
            if is_arm(image.procname):
                raise ValueError(f"No instruction decoder for {image.procname} images")
            decoder = ImageDecoder(image)
        instructions = decoder.sweep_code()
        logger.debug("Linear sweep decoded %d instructions", len(instructions))

        functions = find_functions(
            instructions,
            entry_point=image.entry_point,
            use_prologues=settings.get("use_prologue_heuristic", True),
            use_separators=settings.get("use_separator_heuristic", True),
            use_padding=settings.get("use_padding_heuristic", True),
        )
        logger.debug("Found %d functions", len(functions))

        return cls(
            image=image,
            decoder=decoder,
            functions=FunctionResolver(functions),
            xrefs=XrefIndex.from_instructions(instructions, image),
            operand_policy=select_operand_policy(image.procname),
            **ports,
        )
