"""Reading and writing indexes: the native format and the MMI format."""

from __future__ import annotations

import struct
import sys
from array import array
from pathlib import Path
from typing import BinaryIO, Iterable

from seedmap.index import Bucket, Index, IndexSeq

MAGIC_NATIVE = b"MM2RSIDX\0"
MAGIC_MMI = b"MMI\x02"
NATIVE_VERSION = 1
_MAX_MMI_NAME = 255
_U32 = 0xFFFFFFFF


class IndexFormatError(ValueError):
    """Raised when an index file is malformed or truncated."""


def _u64s(values: Iterable[int]) -> bytes:
    values = list(values)
    return struct.pack(f"<{len(values)}Q", *values)


def _words(packed: array) -> bytes:
    copy = array("I", packed)
    if sys.byteorder == "big":
        copy.byteswap()
    return copy.tobytes()


def _table(table: dict[int, int]) -> bytes:
    return _u64s(v for item in table.items() for v in item)


def _decode_name(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return "*"


class _Reader:
    """Little-endian reads that fail loudly on a short file."""

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle

    def read(self, n: int) -> bytes:
        data = self._handle.read(n)
        if len(data) != n:
            raise IndexFormatError("unexpected end of index file")
        return data

    def unpack(self, fmt: str) -> tuple:
        layout = struct.Struct(fmt)
        return layout.unpack(self.read(layout.size))

    def one(self, fmt: str) -> int:
        return self.unpack(fmt)[0]

    def u64s(self, n: int) -> list[int]:
        if n == 0:
            return []
        return list(struct.unpack(f"<{n}Q", self.read(8 * n)))

    def words(self, n: int) -> array:
        packed = array("I")
        packed.frombytes(self.read(4 * n))
        if sys.byteorder == "big":
            packed.byteswap()
        return packed

    def table(self, n: int) -> dict[int, int]:
        flat = self.u64s(2 * n)
        return dict(zip(flat[0::2], flat[1::2]))


def _empty_index(w: int, k: int, b: int, flag: int) -> Index:
    index = Index(w, k, 0, flag)
    index.b = b
    return index


def save_native(index: Index, path: str | Path) -> None:
    """Write ``index`` in the native format, sequence metadata included."""
    with open(path, "wb") as out:
        out.write(MAGIC_NATIVE)
        out.write(struct.pack("<I", NATIVE_VERSION))
        out.write(struct.pack("<iiiiI", index.w, index.k, index.b, index.flag, index.n_seq))
        out.write(struct.pack("<I", len(index.seq)))
        for s in index.seq:
            if s.name is None:
                out.write(b"\0")
            else:
                raw = s.name.encode("utf-8")
                out.write(struct.pack("<BI", 1, len(raw)))
                out.write(raw)
            out.write(struct.pack("<QIB", s.offset, s.len, int(s.is_alt)))
        out.write(struct.pack("<Q", len(index.packed)))
        out.write(_words(index.packed))
        out.write(struct.pack("<I", len(index.buckets)))
        for bucket in index.buckets:
            out.write(struct.pack("<Q", len(bucket.p)))
            out.write(_u64s(bucket.p))
            if bucket.h is None:
                out.write(b"\0")
            else:
                out.write(struct.pack("<BQ", 1, len(bucket.h)))
                out.write(_table(bucket.h))


def load_native(path: str | Path) -> Index:
    """Read an index written by :func:`save_native`."""
    with open(path, "rb") as handle:
        reader = _Reader(handle)
        if reader.read(len(MAGIC_NATIVE)) != MAGIC_NATIVE:
            raise IndexFormatError("invalid index file magic")
        reader.one("<I")
        w, k, b, flag, n_seq_decl = reader.unpack("<iiiiI")
        index = _empty_index(w, k, b, flag)
        index.n_seq = n_seq_decl
        for _ in range(reader.one("<I")):
            name = None
            if reader.one("<B"):
                name = _decode_name(reader.read(reader.one("<I")))
            offset, length, is_alt = reader.unpack("<QIB")
            index.seq.append(IndexSeq(name, offset, length, bool(is_alt)))
        index.packed = reader.words(reader.one("<Q"))
        buckets = []
        for _ in range(reader.one("<I")):
            positions = reader.u64s(reader.one("<Q"))
            table = reader.table(reader.one("<Q")) if reader.one("<B") else None
            buckets.append(Bucket(p=positions, h=table))
        index.buckets = buckets
    return index


def save_mmi(index: Index, path: str | Path) -> None:
    """Write ``index`` in the MMI layout; names are capped at 255 bytes."""
    total_len = sum(s.len for s in index.seq)
    words = (total_len + 7) // 8
    if len(index.packed) < words:
        raise ValueError("packed sequence is shorter than the sequences it holds")
    with open(path, "wb") as out:
        out.write(MAGIC_MMI)
        header = (index.w, index.k, index.b, len(index.seq), index.flag)
        out.write(struct.pack("<5I", *(v & _U32 for v in header)))
        for s in index.seq:
            raw = s.name.encode("utf-8")[:_MAX_MMI_NAME] if s.name is not None else b""
            out.write(struct.pack("<B", len(raw)))
            out.write(raw)
            out.write(struct.pack("<I", s.len))
        for bucket in index.buckets[: 1 << index.b]:
            out.write(struct.pack("<I", len(bucket.p)))
            out.write(_u64s(bucket.p))
            table = bucket.h or {}
            out.write(struct.pack("<I", len(table)))
            out.write(_table(table))
        out.write(_words(index.packed[:words]))


def load_mmi(path: str | Path) -> Index:
    """Read an index written by :func:`save_mmi`."""
    with open(path, "rb") as handle:
        reader = _Reader(handle)
        if reader.read(len(MAGIC_MMI)) != MAGIC_MMI:
            raise IndexFormatError("invalid MMI magic")
        w, k, b, n_seq, flag = reader.unpack("<iiiIi")
        if b < 0:
            raise IndexFormatError("negative bucket bits in MMI header")
        index = _empty_index(w, k, b, flag)
        index.n_seq = n_seq
        offset = 0
        for _ in range(n_seq):
            name_len = reader.one("<B")
            name = _decode_name(reader.read(name_len)) if name_len else None
            length = reader.one("<I")
            index.seq.append(IndexSeq(name, offset, length, False))
            offset += length
        buckets = []
        for _ in range(1 << b):
            positions = reader.u64s(reader.one("<I"))
            size = reader.one("<I")
            buckets.append(Bucket(p=positions, h=reader.table(size) if size else None))
        index.buckets = buckets
        index.packed = reader.words((offset + 7) // 8)
    return index