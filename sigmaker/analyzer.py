import bisect
import dataclasses
from .instruction import Instruction, OperandKind
from typing import List, Set, Dict, Iterator, Optional, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from .image import BinaryImage

# Operand kinds that reference another address: branches first, then data.
CODE_REF_KINDS = (OperandKind.NEAR, OperandKind.FAR)
DATA_REF_KINDS = (OperandKind.MEM, OperandKind.IMM)

@dataclasses.dataclass
class FoundFunction:

    address: int
    end: int
    name: str

    def __contains__(self, address: int) -> bool:
        return self.address <= address < self.end


def _branch_target(instr: Instruction) -> Optional[int]:
    for op in instr.ops:
        if op.kind in CODE_REF_KINDS:
            return op.value
    return None

def _collect_jump_targets(instructions: List[Instruction]) -> Set[int]:

    targets = set()
    for instr in instructions:
        if instr.mnemonic.startswith('j'):
            target_addr = _branch_target(instr)
            if target_addr is not None:
                targets.add(target_addr)
    return targets

def _find_call_targets(instructions: List[Instruction], valid_addresses: Set[int]) -> Set[int]:

    entry_points = set()
    for instr in instructions:
        if instr.mnemonic == "call":
            target_addr = _branch_target(instr)
            if target_addr in valid_addresses:
                entry_points.add(target_addr)
    return entry_points

def _find_after_flow_separators(instructions: List[Instruction]) -> Set[int]:

    entry_points = set()
    separator_mnemonics = {'jmp', 'ret', 'retn', 'retf', 'iret', 'iretd', 'iretq'}

    for i in range(len(instructions) - 1):
        current_instr = instructions[i]
        next_instr = instructions[i+1]

        is_separator = current_instr.mnemonic in separator_mnemonics
        is_next_separator = next_instr.mnemonic in separator_mnemonics

        if is_separator and not is_next_separator and next_instr.mnemonic not in ('db', 'int', 'nop'):
            entry_points.add(next_instr.address)

    return entry_points

def _find_standard_prologues(instructions: List[Instruction]) -> Set[int]:
    """``push rbp; mov rbp, rsp`` pairs and large ``sub rsp, N`` stack frames."""
    entry_points = set()
    processed_addresses = set()

    for i in range(len(instructions)):
        if instructions[i].address in processed_addresses:
            continue

        if i + 1 < len(instructions):
            instr1, instr2 = instructions[i], instructions[i+1]
            ops = [o.strip() for o in instr2.operands.split(',')]
            is_classic_prologue = (
                instr1.mnemonic == "push" and instr1.operands in ('rbp', 'ebp') and
                instr2.mnemonic == "mov" and len(ops) == 2 and
                ops[0] == instr1.operands and ops[1] in ('rsp', 'esp')
            )
            if is_classic_prologue:
                entry_points.add(instr1.address)
                processed_addresses.add(instr1.address)
                processed_addresses.add(instr2.address)

                if i + 2 < len(instructions):
                    third_instr = instructions[i+2]
                    if third_instr.mnemonic == 'sub' and third_instr.operands.startswith(('rsp,', 'esp,')):
                        processed_addresses.add(third_instr.address)
                continue

        instr = instructions[i]
        if instr.mnemonic == 'sub' and instr.operands.startswith(('rsp,', 'esp,')):
            try:
                val_str = instr.operands.split(',')[1].strip()
                val = int(val_str, 16)
                if val >= 0x20:
                    entry_points.add(instr.address)
                    processed_addresses.add(instr.address)
            except (ValueError, IndexError):
                pass

    return entry_points

def _find_after_padding_blocks(instructions: List[Instruction]) -> Set[int]:

    entry_points = set()
    padding_bytes = {b'\xcc', b'\x90'}
    flow_terminators = {'ret', 'retn', 'jmp', 'iret'}

    i = 0
    while i < len(instructions):
        if instructions[i].bytes in padding_bytes:
            block_start_index = i
            while i < len(instructions) and instructions[i].bytes in padding_bytes:
                i += 1
            block_size = i - block_start_index

            is_valid_candidate = False
            if block_size >= 2:
                is_valid_candidate = True
            elif block_size == 1 and block_start_index > 0:
                prev_instr = instructions[block_start_index - 1]
                if prev_instr.mnemonic in flow_terminators:
                    is_valid_candidate = True

            if is_valid_candidate and i < len(instructions):
                if instructions[i].mnemonic != 'db':
                    entry_points.add(instructions[i].address)
        else:
            i += 1

    return entry_points

def find_xrefs(
    instructions: List[Instruction],
    valid_addr_range: Optional[tuple[int, int]] = None
) -> Dict[int, Set[int]]:
    """Maps each referenced address to the set of instruction addresses referencing it.

    Covers branch targets (calls, jumps) and far data references: memory
    operands and immediates that hold an address.
    """
    xrefs: Dict[int, Set[int]] = {}

    for instr in instructions:
        for op in instr.ops:
            if op.kind not in CODE_REF_KINDS + DATA_REF_KINDS or op.value is None:
                continue
            target_addr = op.value
            if valid_addr_range and not (valid_addr_range[0] <= target_addr < valid_addr_range[1]):
                continue
            xrefs.setdefault(target_addr, set()).add(instr.address)
    return xrefs

def find_functions(
    instructions: List[Instruction],
    entry_point: Optional[int] = None,
    user_labels: Optional[Dict[int, str]] = None,
    use_prologues: bool = True,
    use_separators: bool = True,
    use_padding: bool = True,
) -> List[FoundFunction]:
    """Heuristic function discovery over a linear-sweep listing.

    A function runs from its start up to the next function start, or to the
    end of the contiguous run of instructions it belongs to.
    """
    if not instructions:
        return []

    entry_points = set()

    if entry_point:
        entry_points.add(entry_point)

    valid_addresses = {instr.address for instr in instructions}

    entry_points.update(_find_call_targets(instructions, valid_addresses))

    # Jump targets are usually inside a function, never the start of one.
    jmp_targets = _collect_jump_targets(instructions)

    if use_prologues:
        prologue_candidates = _find_standard_prologues(instructions)
        entry_points.update(p for p in prologue_candidates if p not in jmp_targets)

    if use_separators:
        separator_candidates = _find_after_flow_separators(instructions)
        entry_points.update(s for s in separator_candidates if s not in jmp_targets)

    if use_padding:
        padding_candidates = _find_after_padding_blocks(instructions)
        entry_points.update(p for p in padding_candidates if p not in jmp_targets)

    if user_labels is None:
        user_labels = {}

    sorted_starts = sorted(addr for addr in entry_points if addr in valid_addresses)

    # End of each contiguous run of instructions (one per swept segment).
    run_end: Dict[int, int] = {}
    run_start = instructions[0].address
    for prev, instr in zip(instructions, instructions[1:]):
        if prev.address + prev.size != instr.address:
            run_end[run_start] = prev.address + prev.size
            run_start = instr.address
    run_end[run_start] = instructions[-1].address + instructions[-1].size
    run_starts = sorted(run_end)

    found_functions = []
    for i, start_addr in enumerate(sorted_starts):
        name = user_labels.get(start_addr, f"sub_{start_addr:x}")
        limit = run_end[run_starts[bisect.bisect_right(run_starts, start_addr) - 1]]
        end_addr_exclusive = sorted_starts[i+1] if (i + 1) < len(sorted_starts) else limit
        found_functions.append(FoundFunction(address=start_addr, end=min(end_addr_exclusive, limit), name=name))

    return found_functions


class FunctionResolver:
    """Answers "which function contains this address"."""

    def __init__(self, functions: Sequence[FoundFunction]):
        self.functions = sorted(functions, key=lambda f: f.address)
        self._starts = [f.address for f in self.functions]

    def function_containing(self, address: int) -> Optional[FoundFunction]:
        idx = bisect.bisect_right(self._starts, address) - 1
        if idx >= 0 and address in self.functions[idx]:
            return self.functions[idx]
        return None


class XrefIndex:
    """Incoming references per target address."""

    def __init__(self, xrefs: Dict[int, Set[int]]):
        self.xrefs = xrefs

    @classmethod
    def from_instructions(cls, instructions: List[Instruction], image: "BinaryImage") -> "XrefIndex":
        return cls(find_xrefs(instructions, (image.min_ea, image.max_ea)))

    def incoming_far_references(self, address: int) -> Iterator[int]:
        yield from sorted(self.xrefs.get(address, ()))
