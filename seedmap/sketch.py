"""Minimizer sketching of nucleotide sequences."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from itertools import chain
from typing import Iterator

from seedmap.nt4 import nt4

U64_MAX = (1 << 64) - 1
_EMPTY = (U64_MAX, U64_MAX)


def hash64(key: int, mask: int) -> int:
    """Invertible integer hash restricted to the bits of ``mask``."""
    key = (~key + (key << 21)) & mask
    key ^= key >> 24
    key = (key + (key << 3) + (key << 8)) & mask
    key ^= key >> 14
    key = (key + (key << 2) + (key << 4)) & mask
    key ^= key >> 28
    key = (key + (key << 31)) & mask
    return key


@dataclass(frozen=True)
class Minimizer:
    """A minimizer: ``key_span`` is key<<8|span, ``rid_pos_strand`` is rid<<32|pos<<1|strand."""

    key_span: int
    rid_pos_strand: int

    @property
    def key(self) -> int:
        return self.key_span >> 8

    @property
    def span(self) -> int:
        return self.key_span & 0xFF

    @property
    def rid(self) -> int:
        return self.rid_pos_strand >> 32

    @property
    def pos(self) -> int:
        return (self.rid_pos_strand >> 1) & 0xFFFFFFFF

    @property
    def strand(self) -> int:
        return self.rid_pos_strand & 1


def _ring(start: int, size: int, through: int) -> Iterator[int]:
    """Slots of a ring buffer from ``start`` to the end, then from 0 up to ``through``."""
    return chain(range(start, size), range(through))


def sketch_sequence(
    seq: bytes | str, w: int, k: int, rid: int = 0, is_hpc: bool = False
) -> list[Minimizer]:
    """Return the (w, k)-minimizers of ``seq`` in the order they are found."""
    if isinstance(seq, str):
        seq = seq.encode("ascii", errors="replace")
    if not seq:
        raise ValueError("sequence must not be empty")
    if not 0 < w < 256:
        raise ValueError("w must be in 1..255")
    if not 0 < k <= 28:
        raise ValueError("k must be in 1..28")

    codes = [nt4(b) for b in seq]
    n = len(codes)
    shift1 = 2 * (k - 1)
    mask = (1 << (2 * k)) - 1
    fwd = rev = 0
    length = 0
    buf_pos = 0
    min_pos = 0
    kmer_span = 0
    buf = [_EMPTY] * w
    best = _EMPTY
    runs: deque[int] = deque()
    out: list[Minimizer] = []

    def emit_ties(through: int) -> None:
        for j in _ring(buf_pos + 1, w, through):
            key_span, rps = buf[j]
            if key_span == best[0] and rps != best[1]:
                out.append(Minimizer(key_span, rps))

    for i, c in enumerate(codes):
        info = _EMPTY
        if c < 4:
            if is_hpc:
                skip_len = 1
                if i + 1 < n and codes[i + 1] == c:
                    t = i + 2
                    while t < n and codes[t] == c:
                        t += 1
                    skip_len = t - i
                runs.append(skip_len)
                kmer_span += skip_len
                if len(runs) > k:
                    kmer_span -= runs.popleft()
            else:
                kmer_span = min(length + 1, k)
            fwd = ((fwd << 2) | c) & mask
            rev = (rev >> 2) | ((3 ^ c) << shift1)
            if fwd != rev:
                z = 0 if fwd < rev else 1
                length += 1
                if length >= k and kmer_span < 256:
                    canonical = rev if z else fwd
                    info = (
                        (hash64(canonical, mask) << 8) | kmer_span,
                        (rid << 32) | (i << 1) | z,
                    )
        else:
            length = 0
            runs.clear()
            kmer_span = 0

        buf[buf_pos] = info
        if length == w + k - 1 and best[0] != U64_MAX:
            emit_ties(buf_pos)
        if info[0] <= best[0]:
            if length >= w + k and best[0] != U64_MAX:
                out.append(Minimizer(*best))
            best = info
            min_pos = buf_pos
        elif buf_pos == min_pos:
            if length >= w + k - 1 and best[0] != U64_MAX:
                out.append(Minimizer(*best))
            best = (U64_MAX, best[1])
            for j in _ring(buf_pos + 1, w, buf_pos + 1):
                if best[0] >= buf[j][0]:
                    best = buf[j]
                    min_pos = j
            if length >= w + k - 1 and best[0] != U64_MAX:
                emit_ties(buf_pos + 1)
        buf_pos = (buf_pos + 1) % w

    if best[0] != U64_MAX:
        out.append(Minimizer(*best))
    return out