"""Helpers to build a minimal PE32 image carrying a CodeView record."""

from __future__ import annotations

import struct

GUID_BYTES = bytes(range(1, 17))
GUID_HEX = "0403020106050807090A0B0C0D0E0F10"

SECTION_RVA = 0x1000
SECTION_OFFSET = 0x200
DEBUG_DIRECTORY_SIZE = 28
RECORD_OFFSET = SECTION_OFFSET + DEBUG_DIRECTORY_SIZE


def cv_record(name: bytes = b"ntdll.pdb", guid: bytes = GUID_BYTES, age: int = 3,
              magic: bytes = b"RSDS") -> bytes:
    """Build a CodeView record with a zero padded 255 byte name field."""
    return magic + guid + struct.pack("<I", age) + name.ljust(255, b"\x00")


def build_pe(record: bytes | None = None, debug_type: int = 2) -> bytes:
    """Build a one-section PE32 image whose debug directory points at `record`."""
    image = bytearray(0x400)
    image[0:2] = b"MZ"
    struct.pack_into("<I", image, 0x3C, 0x40)
    image[0x40:0x44] = b"PE\x00\x00"
    # FILE_HEADER
    struct.pack_into("<HHIIIHH", image, 0x44, 0x14C, 1, 0, 0, 0, 0xE0, 0x0102)
    # OPTIONAL_HEADER (PE32)
    struct.pack_into(
        "<HBB9I6H4I2H6I", image, 0x58,
        0x10B, 14, 0,
        0x200, 0x200, 0, 0x1000, 0x1000, 0x1000, 0x400000, 0x1000, 0x200,
        6, 0, 0, 0, 6, 0,
        0, 0x2000, 0x200, 0,
        3, 0,
        0x100000, 0x1000, 0x100000, 0x1000, 0, 16,
    )
    if record is not None:
        # IMAGE_DIRECTORY_ENTRY_DEBUG
        struct.pack_into("<II", image, 0xB8 + 6 * 8, SECTION_RVA, DEBUG_DIRECTORY_SIZE)
    struct.pack_into(
        "<8sIIIIIIHHI", image, 0x138,
        b".rdata", 0x200, SECTION_RVA, 0x200, SECTION_OFFSET, 0, 0, 0, 0, 0x40000040,
    )
    if record is not None:
        struct.pack_into(
            "<IIHHIIII", image, SECTION_OFFSET,
            0, 0, 0, 0, debug_type, len(record),
            SECTION_RVA + DEBUG_DIRECTORY_SIZE, RECORD_OFFSET,
        )
        image[RECORD_OFFSET:RECORD_OFFSET + len(record)] = record
    return bytes(image)


