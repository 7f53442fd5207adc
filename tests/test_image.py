from types import SimpleNamespace

import pefile
import pytest

from sigmaker.errors import FormatUnrecognizedError
from sigmaker.image import BinaryImage, Segment
from sigmaker.scanner import find_occurrences, pattern_to_regex


def make_section(name, rva, data, characteristics, virtual_size=None):
    return SimpleNamespace(
        Name=name.encode().ljust(8, b"\x00"),
        VirtualAddress=rva,
        Misc_VirtualSize=len(data) if virtual_size is None else virtual_size,
        Characteristics=characteristics,
        get_data=lambda: data,
    )


def make_pe(machine="IMAGE_FILE_MACHINE_AMD64", magic=pefile.OPTIONAL_HEADER_MAGIC_PE_PLUS):
    code = pefile.SECTION_CHARACTERISTICS["IMAGE_SCN_CNT_CODE"] | pefile.SECTION_CHARACTERISTICS["IMAGE_SCN_MEM_EXECUTE"]
    data = pefile.SECTION_CHARACTERISTICS["IMAGE_SCN_CNT_INITIALIZED_DATA"]
    return SimpleNamespace(
        OPTIONAL_HEADER=SimpleNamespace(ImageBase=0x140000000, AddressOfEntryPoint=0x1000, Magic=magic),
        FILE_HEADER=SimpleNamespace(Machine=pefile.MACHINE_TYPE[machine]),
        sections=[
            make_section(".text", 0x1000, b"\x55\xc3", code),
            make_section(".data", 0x2000, b"\x01\x02", data, virtual_size=6),
        ],
    )


class TestSegments:

    image = BinaryImage([
        Segment(".data", 0x3000, b"\x00" * 4),
        Segment(".text", 0x1000, b"\x90\x90\xc3", executable=True),
    ])

    def test_segments_are_sorted(self):
        assert [s.name for s in self.image.segments] == [".text", ".data"]
        assert self.image.min_ea == 0x1000
        assert self.image.max_ea == 0x3004

    def test_lookup(self):
        assert self.image.segment_at(0x1002).name == ".text"
        assert self.image.segment_at(0x1003) is None
        assert self.image.segment_at(0x0FFF) is None
        assert self.image.contains(0x3003)
        assert not self.image.contains(0x2000)

    def test_code_flag(self):
        assert self.image.is_code(0x1000)
        assert not self.image.is_code(0x3000)
        assert not self.image.is_code(0x5000)

    def test_reads_stop_at_segment_end(self):
        assert self.image.read_bytes(0x1001, 10) == b"\x90\xc3"
        assert self.image.read_bytes(0x2000, 4) == b""
        assert self.image.read_bytes(0x1000, 0) == b""


def test_from_pe_maps_sections():
    image = BinaryImage.from_pe(make_pe())
    text, data = image.segments
    assert (text.name, text.start, text.executable) == (".text", 0x140001000, True)
    assert (data.name, data.executable) == (".data", False)
    # padded up to the virtual size
    assert data.data == b"\x01\x02\x00\x00\x00\x00"
    assert image.entry_point == 0x140001000
    assert image.procname == "metapc"
    assert image.bitness == 64


def test_from_pe_detects_arm_and_32bit():
    image = BinaryImage.from_pe(make_pe("IMAGE_FILE_MACHINE_ARM64"))
    assert image.procname == "ARM"

    image = BinaryImage.from_pe(make_pe("IMAGE_FILE_MACHINE_I386", pefile.OPTIONAL_HEADER_MAGIC_PE))
    assert image.procname == "metapc"
    assert image.bitness == 32


def test_pattern_to_regex_rejects_bad_tokens():
    with pytest.raises(FormatUnrecognizedError):
        pattern_to_regex("48 8B ZZ")
    with pytest.raises(FormatUnrecognizedError):
        pattern_to_regex("   ")


def test_matches_overlap_and_wildcard_matches_newline():
    segments = [Segment(".text", 0x100, b"\xaa\xaa\xaa\x0a\xbb")]
    assert find_occurrences(segments, "AA AA") == [0x100, 0x101]
    assert find_occurrences(segments, "AA ? BB") == [0x102]


def test_matches_do_not_cross_segments_and_respect_limit():
    image = BinaryImage([
        Segment("a", 0x0, b"\x90\x90\xcc"),
        Segment("b", 0x3, b"\xcc\x90\x90"),
    ])
    assert image.find_occurrences("CC CC") == []
    assert image.find_occurrences("90") == [0x0, 0x1, 0x4, 0x5]
    assert image.find_occurrences("90", limit=2) == [0x0, 0x1]
