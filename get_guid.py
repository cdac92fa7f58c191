import sys, struct, ntpath, logging, argparse

import pefile

from pdb_meta import (
    MICROSOFT_SYMBOL_STORE,
    MIN_PDB_NAME_LEN,
    MalformedImage,
    NameDecodeFailure,
    NameTooShort,
    PdbIdentifier,
)

IMAGE_DEBUG_TYPE_CODEVIEW = pefile.DEBUG_TYPE["IMAGE_DEBUG_TYPE_CODEVIEW"]
CV_RSDS_MAGIC = b"RSDS"
# magic, guid, age
CV_HEADER = struct.Struct("<4s16sI")
# the name field may be cut short by the end of the file, it only has to hold
# the terminating zero
CV_NAME_SIZE = 255

log = logging.getLogger(__name__)


def encode_guid(raw):
    """Reorder a GUID as stored by the linker into the symbol server's hex form."""
    if len(raw) != 16:
        raise ValueError("GUID must be 16 bytes, got %d" % len(raw))
    d1, d2, d3 = struct.unpack("<IHH", raw[:8])
    return "%08X%04X%04X%s" % (d1, d2, d3, bytes(raw[8:]).hex().upper())


def extract_debug_name(field):
    end = field.find(b"\x00")
    if end < 0:
        raise NameDecodeFailure("pdb name is not null-terminated")
    try:
        return bytes(field[:end]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise NameDecodeFailure(f"pdb name is not valid UTF-8: {e}") from e


def parse_debug_record(data, offset, strict=False):
    """Decode the CodeView record found at file offset `offset` of `data`.

    Raises MalformedImage (or one of its subclasses) when the record cannot
    describe a PDB.
    """
    if offset < 0 or offset + CV_HEADER.size > len(data):
        raise MalformedImage("debug record offset 0x%X is out of bounds" % offset)
    magic, guid, age = CV_HEADER.unpack_from(data, offset)
    if strict and magic != CV_RSDS_MAGIC:
        raise MalformedImage("unexpected codeview magic %r" % magic)
    start = offset + CV_HEADER.size
    # linkers may store the full build path, only the file name is used
    name = ntpath.basename(extract_debug_name(data[start:start + CV_NAME_SIZE]))
    if name in ("", ".", ".."):
        raise MalformedImage("pdb name %r is not a file name" % name)
    if len(name) < MIN_PDB_NAME_LEN:
        raise NameTooShort("pdb name %r is too short" % name)
    return PdbIdentifier(name, encode_guid(guid), age)


def codeview_offset(pe):
    for dbg in getattr(pe, "DIRECTORY_ENTRY_DEBUG", ()):
        if dbg.struct.Type == IMAGE_DEBUG_TYPE_CODEVIEW:
            return dbg.struct.PointerToRawData
    raise MalformedImage("no codeview debug directory")


def get_pdb_identifier(path, strict=False):
    """Return the PdbIdentifier embedded in the PE file at `path`, or None."""
    try:
        pe = pefile.PE(path, fast_load=True)
    except (pefile.PEFormatError, OSError) as e:
        log.info("[x] not a PE image : %s (%s)" % (path, e))
        return None
    try:
        pe.parse_data_directories(directories=[pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_DEBUG"]])
        pdb = parse_debug_record(pe.__data__, codeview_offset(pe), strict)
    except pefile.PEFormatError as e:
        log.info("[x] not a PE image : %s (%s)" % (path, e))
        return None
    except MalformedImage as e:
        log.warning("[x] no pdb for %s : %s" % (path, e))
        return None
    finally:
        pe.close()
    log.debug("[+] %s : name %s guid %s age %d" % (path, pdb.name, pdb.guid, pdb.age))
    return pdb


def main(argv=None):
    p = argparse.ArgumentParser("print the symbol server id of PE files")
    p.add_argument("files", nargs="+")
    p.add_argument("--url", type=str, default=MICROSOFT_SYMBOL_STORE)
    p.add_argument("--strict", action="store_true", help="require an RSDS codeview record")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    missing = 0
    for path in args.files:
        pdb = get_pdb_identifier(path, strict=args.strict)
        if pdb is None:
            print("%s: no pdb" % path, file=sys.stderr)
            missing += 1
            continue
        print(pdb.name, pdb.symbol_id, pdb.url(args.url))
    return 1 if missing == len(args.files) else 0


if __name__ == '__main__':
    sys.exit(main())
