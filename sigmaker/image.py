import bisect
import dataclasses
from typing import List, Optional, TYPE_CHECKING

from . import scanner

if TYPE_CHECKING:
    import pefile

# "No such address" sentinel, same value IDA uses for 64-bit databases.
BADADDR = 0xFFFFFFFFFFFFFFFF

ARM_MACHINE_NAMES = (
    "IMAGE_FILE_MACHINE_ARM",
    "IMAGE_FILE_MACHINE_THUMB",
    "IMAGE_FILE_MACHINE_ARMNT",
    "IMAGE_FILE_MACHINE_ARM64",
)
# The only machines the instruction decoder understands.
X86_MACHINE_NAMES = (
    "IMAGE_FILE_MACHINE_I386",
    "IMAGE_FILE_MACHINE_AMD64",
)


def machine_name(pe: "pefile.PE") -> str:
    import pefile

    machine = pe.FILE_HEADER.Machine
    return pefile.MACHINE_TYPE.get(machine, f"0x{machine:x}")

def is_x86_machine(pe: "pefile.PE") -> bool:
    return machine_name(pe) in X86_MACHINE_NAMES

@dataclasses.dataclass
class Segment:
    name: str
    start: int
    data: bytes
    executable: bool = False

    @property
    def end(self) -> int:
        return self.start + len(self.data)

    def __contains__(self, address: int) -> bool:
        return self.start <= address < self.end


class BinaryImage:
    """A loaded binary: a set of non-overlapping segments in virtual address space."""

    def __init__(self, segments: List[Segment], procname: str = "metapc", bitness: int = 64, entry_point: Optional[int] = None):
        self.segments = sorted(segments, key=lambda s: s.start)
        self._starts = [seg.start for seg in self.segments]
        self.procname = procname
        self.bitness = bitness
        self.entry_point = entry_point

    @classmethod
    def from_bytes(cls, data: bytes, base: int = 0, executable: bool = True, procname: str = "metapc", bitness: int = 64) -> "BinaryImage":
        return cls([Segment(".flat", base, bytes(data), executable)], procname=procname, bitness=bitness)

    @classmethod
    def from_pe(cls, pe: "pefile.PE") -> "BinaryImage":
        """Maps every section of a parsed PE at ``ImageBase + VirtualAddress``."""
        import pefile

        image_base = pe.OPTIONAL_HEADER.ImageBase
        exec_flags = (pefile.SECTION_CHARACTERISTICS['IMAGE_SCN_MEM_EXECUTE']
                      | pefile.SECTION_CHARACTERISTICS['IMAGE_SCN_CNT_CODE'])

        segments = []
        for section in pe.sections:
            data = section.get_data()
            length = section.Misc_VirtualSize or len(data)
            if not length:
                continue
            segments.append(Segment(
                name=section.Name.decode(errors='ignore').strip('\x00'),
                start=image_base + section.VirtualAddress,
                data=data[:length].ljust(length, b'\x00'),
                executable=bool(section.Characteristics & exec_flags),
            ))

        arm_machines = {pefile.MACHINE_TYPE[name] for name in ARM_MACHINE_NAMES if name in pefile.MACHINE_TYPE}
        procname = "ARM" if pe.FILE_HEADER.Machine in arm_machines else "metapc"
        bitness = 64 if pe.OPTIONAL_HEADER.Magic == pefile.OPTIONAL_HEADER_MAGIC_PE_PLUS else 32
        entry_point = image_base + pe.OPTIONAL_HEADER.AddressOfEntryPoint
        return cls(segments, procname=procname, bitness=bitness, entry_point=entry_point)

    @property
    def min_ea(self) -> int:
        return self.segments[0].start if self.segments else 0

    @property
    def max_ea(self) -> int:
        return max((seg.end for seg in self.segments), default=0)

    def segment_at(self, address: int) -> Optional[Segment]:
        idx = bisect.bisect_right(self._starts, address) - 1
        if idx >= 0 and address in self.segments[idx]:
            return self.segments[idx]
        return None

    def contains(self, address: int) -> bool:
        return self.segment_at(address) is not None

    def is_code(self, address: int) -> bool:
        seg = self.segment_at(address)
        return seg is not None and seg.executable

    def read_bytes(self, address: int, count: int) -> bytes:
        """Reads up to ``count`` bytes; the read stops at the end of the segment."""
        seg = self.segment_at(address)
        if seg is None or count <= 0:
            return b''
        offset = address - seg.start
        return seg.data[offset:offset + count]

    def find_occurrences(self, pattern: str, limit: Optional[int] = None) -> List[int]:
        return scanner.find_occurrences(self.segments, pattern, limit)
