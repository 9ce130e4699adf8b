"""Seeding: query minimizers and anchors against an index."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from seedmap.index import I32_MAX, Index
from seedmap.sketch import Minimizer, sketch_sequence

_U64 = (1 << 64) - 1
_LOW32 = 0xFFFFFFFF


@dataclass(frozen=True, order=True)
class Anchor:
    """A seed hit: ``x`` is rev<<63|rid<<32|rpos, ``y`` is qspan<<32|qpos."""

    x: int
    y: int

    @property
    def rid(self) -> int:
        return (self.x >> 32) & 0x7FFFFFFF

    @property
    def is_rev(self) -> bool:
        return bool(self.x >> 63)

    @property
    def rpos(self) -> int:
        return self.x & _LOW32

    @property
    def qpos(self) -> int:
        return self.y & _LOW32

    @property
    def qspan(self) -> int:
        return (self.y >> 32) & 0xFF


def collect_query_minimizers(seq: bytes | str, w: int, k: int) -> list[Minimizer]:
    """Minimizers of a query sequence, without homopolymer compression."""
    return sketch_sequence(seq, w, k, 0, False)


def filter_query_minimizers(
    minimizers: list[Minimizer], q_occ_max: int, q_occ_frac: float
) -> list[Minimizer]:
    """Drop minimizers whose key repeats too often within the query."""
    if not minimizers or q_occ_frac <= 0.0 or q_occ_max <= 0:
        return list(minimizers)
    if len(minimizers) <= q_occ_max:
        return list(minimizers)
    counts = Counter(m.key for m in minimizers)
    cutoff = int(len(minimizers) * q_occ_frac)
    return [m for m in minimizers if not (counts[m.key] > q_occ_max and counts[m.key] > cutoff)]


def _anchor(r: int, m: Minimizer, qlen: int) -> Anchor:
    rid = (r >> 32) & _LOW32
    rpos = (r >> 1) & _LOW32
    qpos = m.pos
    qspan = m.span
    if (r & 1) == m.strand:
        return Anchor((rid << 32) | rpos, (qspan << 32) | qpos)
    qp = (qlen - (qpos + 1 - qspan) - 1) & _U64
    return Anchor((1 << 63) | (rid << 32) | rpos, (qspan << 32) | qp)


def build_anchors_filtered(
    index: Index, minimizers: list[Minimizer], qlen: int, mid_occ: int
) -> list[Anchor]:
    """Anchors of the query minimizers, skipping keys seen more than ``mid_occ`` times."""
    anchors: list[Anchor] = []
    for m in minimizers:
        occ = index.get(m.key)
        if occ is None:
            continue
        if not occ.single and len(occ.positions) > mid_occ:
            continue
        anchors.extend(_anchor(r, m, qlen) for r in occ.positions)
    anchors.sort()
    return anchors


def build_anchors(index: Index, minimizers: list[Minimizer], qlen: int) -> list[Anchor]:
    """Anchors of the query minimizers with no occurrence limit."""
    return build_anchors_filtered(index, minimizers, qlen, I32_MAX)