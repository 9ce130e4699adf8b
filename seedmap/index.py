"""Minimizer index over a set of reference sequences."""

from __future__ import annotations

import struct
from array import array
from dataclasses import dataclass, field
from itertools import groupby
from operator import attrgetter
from pathlib import Path
from typing import Iterator, NamedTuple

from seedmap.nt4 import nt4
from seedmap.sketch import Minimizer, sketch_sequence

I32_MAX = (1 << 31) - 1
_LOW32 = 0xFFFFFFFF
_DECODE = b"ACGT"


def _roundup_pow2(x: int) -> int:
    """Smallest power of two not below ``x``; zero stays zero."""
    if x <= 0:
        return 0
    return 1 << (x - 1).bit_length()


def _seq4_set(packed: array, offset: int, code: int) -> None:
    word = offset >> 3
    shift = (offset & 7) << 2
    packed[word] = (packed[word] & ~(0xF << shift) & _LOW32) | ((code & 0xF) << shift)


def _seq4_get(packed: array, offset: int) -> int:
    return (packed[offset >> 3] >> ((offset & 7) << 2)) & 0xF


def _as_f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


@dataclass
class IndexSeq:
    """A reference sequence: its name, offset into the packed array and length."""

    name: str | None
    offset: int
    len: int
    is_alt: bool = False


@dataclass
class Bucket:
    """One hash bucket: pending minimizers, the position array and the key table."""

    a: list[Minimizer] = field(default_factory=list)
    p: list[int] = field(default_factory=list)
    h: dict[int, int] | None = None


class Occurrences(NamedTuple):
    """Reference positions of a minimizer; ``single`` marks a key seen once."""

    positions: tuple[int, ...]
    single: bool


class Index:
    """Minimizers of reference sequences bucketed by the low ``b`` bits of their key."""

    def __init__(self, w: int, k: int, b: int, flag: int) -> None:
        self.w = w
        self.k = k
        self.b = b
        self.flag = flag
        self.n_seq = 0
        self.seq: list[IndexSeq] = []
        self.packed: array = array("I")
        self.buckets: list[Bucket] = [Bucket() for _ in range(1 << b)]

    @property
    def _mask(self) -> int:
        return (1 << self.b) - 1

    def get_ref_subseq(self, rid: int, st: int, en: int) -> bytes:
        """Bases ``st``..``en`` of reference ``rid`` as upper-case ACGTN."""
        if rid < 0 or rid >= len(self.seq):
            return b""
        s = self.seq[rid]
        start = max(st, 0)
        end = max(min(en, s.len), 0)
        if start >= end:
            return b""
        return bytes(
            _DECODE[c] if c < 4 else ord("N")
            for c in (_seq4_get(self.packed, o) for o in range(start + s.offset, end + s.offset))
        )

    def add_minimizers(self, minimizers) -> None:
        """Queue minimizers into their buckets; call ``post_process`` afterwards."""
        mask = self._mask
        for m in minimizers:
            self.buckets[(m.key_span >> 8) & mask].a.append(m)

    def post_process(self) -> None:
        """Turn the queued minimizers of every bucket into its lookup table."""
        for bucket in self.buckets:
            if not bucket.a:
                continue
            bucket.a.sort(key=attrgetter("key"))
            positions: list[int] = []
            table: dict[int, int] = {}
            for key, group in groupby(bucket.a, key=attrgetter("key")):
                members = [m.rid_pos_strand for m in group]
                key_top = (key >> self.b) << 1
                if len(members) == 1:
                    table[key_top | 1] = members[0]
                else:
                    table[key_top] = (len(positions) << 32) | len(members)
                    positions.extend(sorted(members))
            bucket.p = positions
            bucket.h = table
            bucket.a.clear()

    def _occurrence_counts(self) -> Iterator[int]:
        for bucket in self.buckets:
            if bucket.h is None:
                continue
            for key, value in bucket.h.items():
                yield 1 if key & 1 else value & _LOW32

    def stats(self) -> tuple[int, float, float, int]:
        """Distinct minimizers, average occurrences, average spacing, total length."""
        counts = list(self._occurrence_counts())
        n_keys = len(counts)
        sum_occ = sum(counts)
        total_len = sum(s.len for s in self.seq)
        avg_occ = sum_occ / n_keys if n_keys else 0.0
        avg_spacing = total_len / sum_occ if sum_occ else 0.0
        return n_keys, avg_occ, avg_spacing, total_len

    def calc_mid_occ(self, frac: float) -> int:
        """Occurrence threshold above which the top ``frac`` of minimizers lie."""
        counts = sorted(self._occurrence_counts())
        if not counts:
            return I32_MAX
        n = len(counts)
        pos = min(int((1.0 - _as_f32(frac)) * n), n - 1)
        return counts[pos] + 1

    def get(self, minier: int) -> Occurrences | None:
        """Look up the reference occurrences of hashed key ``minier``."""
        bucket = self.buckets[minier & self._mask]
        if bucket.h is None:
            return None
        key = (minier >> self.b) << 1
        value = bucket.h.get(key | 1)
        if value is not None:
            return Occurrences((value,), True)
        value = bucket.h.get(key)
        if value is not None:
            off = value >> 32
            n = value & _LOW32
            return Occurrences(tuple(bucket.p[off : off + n]), False)
        return None


def read_fasta(path: str | Path) -> Iterator[tuple[str, bytes]]:
    """Yield ``(name, sequence)`` for every record of a FASTA file."""
    name: str | None = None
    parts: list[bytes] = []
    with open(path, "rb") as handle:
        for raw in handle:
            line = raw.rstrip(b"\r\n")
            if line.startswith(b">"):
                if name is not None:
                    yield name, b"".join(parts)
                fields = line[1:].split(None, 1)
                if not fields:
                    raise ValueError("FASTA record has no name")
                try:
                    name = fields[0].decode("utf-8")
                except UnicodeDecodeError:
                    name = "*"
                parts = []
            elif not line.strip():
                continue
            elif name is None:
                raise ValueError("FASTA data found before the first header line")
            else:
                parts.append(line.strip())
    if name is not None:
        yield name, b"".join(parts)


def build_index_from_fasta(path: str | Path, w: int, k: int, b: int, flag: int) -> Index:
    """Build an index of every record of a FASTA file."""
    index = Index(w, k, b, flag)
    records = list(read_fasta(path))
    index.n_seq = len(records)
    is_hpc = bool(flag & 1)
    total_len = sum(len(seq) for _, seq in records)
    index.packed = array("I", bytes(4 * _roundup_pow2((total_len + 7) // 8)))
    offset = 0
    for rid, (name, seq) in enumerate(records):
        for j, ch in enumerate(seq):
            _seq4_set(index.packed, offset + j, nt4(ch))
        index.seq.append(IndexSeq(name, offset, len(seq), False))
        if seq:
            index.add_minimizers(sketch_sequence(seq, w, k, rid, is_hpc))
        offset += len(seq)
    index.post_process()
    return index