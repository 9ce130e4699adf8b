"""PAF records built from chains of anchors."""

from __future__ import annotations

import struct
from bisect import bisect_left
from dataclasses import dataclass

from seedmap.index import Index
from seedmap.seeds import Anchor, collect_query_minimizers


@dataclass
class PafRecord:
    """One line of PAF output with its optional tags."""

    qname: str
    qlen: int
    qstart: int
    qend: int
    strand: str
    tname: str
    tlen: int
    tstart: int
    tend: int
    nm: int
    blen: int
    mapq: int = 60
    tp: str = "P"
    cm: int = 0
    s1: int = 0
    s2: int = 0
    dv: float = 0.0
    rl: int = 0


def _i32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _as_f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _estimate_dv(
    index: Index,
    anchors: list[Anchor],
    chain: list[int],
    qseq: bytes | str,
    strand: str,
    bounds: tuple[int, int, int, int],
    tlen: int,
) -> float:
    """Divergence estimated from the fraction of query minimizers the chain hits."""
    qlen = len(qseq)
    qs, qe, ts, te = bounds
    minimizers = collect_query_minimizers(qseq, index.w, index.k)
    mini_pos = [_i32(m.pos) for m in minimizers]
    if minimizers:
        avg_k = _as_f32(sum(m.span for m in minimizers) / len(minimizers))
    else:
        avg_k = float(index.k)

    def forward_pos(a: Anchor) -> int:
        qp = _i32(a.qpos)
        return qlen - 1 - (qp + 1 - a.qspan) if a.is_rev else qp

    ordered = reversed(chain) if strand == "-" else chain
    chain_pos = [forward_pos(anchors[i]) for i in ordered]
    if not mini_pos or not chain_pos:
        return 0.0
    first = chain_pos[0]
    st = bisect_left(mini_pos, first)
    if st >= len(mini_pos) or mini_pos[st] != first:
        return 0.0

    j = en = st
    k = 1
    n_match = 1
    while j + 1 < len(mini_pos) and k < len(chain_pos):
        j += 1
        if mini_pos[j] == chain_pos[k]:
            n_match += 1
            en = j
            k += 1
    n_tot = en - st + 1

    q_start = qlen - qe if strand == "-" else qs
    q_end = qlen - qs if strand == "-" else qe
    edge = int(avg_k)
    if q_start > edge and ts > edge:
        n_tot += 1
    if qlen - q_end > edge and tlen - te > edge:
        n_tot += 1
    frac = n_match / n_tot
    if frac >= 1.0:
        return 0.0
    return _as_f32(1.0 - frac ** (1.0 / max(avg_k, 1.0)))


def paf_from_chain_with_primary(
    index: Index,
    anchors: list[Anchor],
    chain: list[int],
    qname: str,
    qseq: bytes | str,
    is_primary: bool,
) -> PafRecord | None:
    """Build a record spanning the anchors of ``chain``; ``None`` for an empty chain."""
    if not chain:
        return None
    members = [anchors[i] for i in chain]
    head = members[0]
    strand = "-" if head.is_rev else "+"
    qs = max(min(_i32(a.qpos) - (a.qspan - 1) for a in members), 0)
    qe = max(_i32(a.qpos) + 1 for a in members)
    ts = max(min(_i32(a.rpos) - (a.qspan - 1) for a in members), 0)
    te = max(_i32(a.rpos) + 1 for a in members)
    target = index.seq[head.rid]
    tname = target.name if target.name is not None else "*"
    dv = _estimate_dv(index, anchors, chain, qseq, strand, (qs, qe, ts, te), target.len)
    return PafRecord(
        qname=qname,
        qlen=len(qseq),
        qstart=qs,
        qend=qe,
        strand=strand,
        tname=tname,
        tlen=target.len,
        tstart=ts,
        tend=te,
        nm=max(qe - qs, 0),
        blen=max(te - ts, 0),
        mapq=60,
        tp="P" if is_primary else "S",
        cm=len(chain),
        dv=dv,
    )


def paf_from_chain(
    index: Index, anchors: list[Anchor], chain: list[int], qname: str, qseq: bytes | str
) -> PafRecord | None:
    """Build a primary record for ``chain``."""
    return paf_from_chain_with_primary(index, anchors, chain, qname, qseq, True)


def write_paf(record: PafRecord) -> str:
    """Format a record as one PAF line; reverse-strand query coordinates are flipped."""
    if record.strand == "-":
        qs, qe = record.qlen - record.qend, record.qlen - record.qstart
    else:
        qs, qe = record.qstart, record.qend
    fields = [
        record.qname,
        record.qlen,
        qs,
        qe,
        record.strand,
        record.tname,
        record.tlen,
        record.tstart,
        record.tend,
        record.nm,
        record.blen,
        record.mapq,
        f"tp:A:{record.tp}",
        f"cm:i:{record.cm}",
        f"s1:i:{record.s1}",
        f"s2:i:{record.s2}",
        f"dv:f:{record.dv:.4f}",
        f"rl:i:{record.rl}",
    ]
    return "\t".join(str(f) for f in fields)


def write_paf_many_with_scores(
    index: Index,
    anchors: list[Anchor],
    chains: list[list[int]],
    top_s1: int,
    top_s2: int,
    qname: str,
    qseq: bytes | str,
) -> list[str]:
    """PAF lines for ``chains``, the first primary, all carrying the given s1/s2 scores."""
    lines = []
    for ci, chain in enumerate(chains):
        record = paf_from_chain_with_primary(index, anchors, chain, qname, qseq, ci == 0)
        if record is not None:
            record.s1 = max(top_s1, 0)
            record.s2 = max(top_s2, 0)
            lines.append(write_paf(record))
    return lines


def write_paf_many(
    index: Index, anchors: list[Anchor], chains: list[list[int]], qname: str, qseq: bytes | str
) -> list[str]:
    """PAF lines for ``chains``, the first marked primary."""
    lines = []
    for ci, chain in enumerate(chains):
        record = paf_from_chain_with_primary(index, anchors, chain, qname, qseq, ci == 0)
        if record is not None:
            lines.append(write_paf(record))
    return lines