"""Colinear chaining of anchors and selection of the chains to report."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, replace

from seedmap.seeds import Anchor

I32_MAX = (1 << 31) - 1


def _i32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def _qpos(a: Anchor) -> int:
    return _i32(a.qpos)


def _rpos(a: Anchor) -> int:
    return _i32(a.rpos)


def _same_target(a: Anchor, b: Anchor) -> bool:
    return a.rid == b.rid and a.is_rev == b.is_rev


def _log2(x: int) -> float:
    return 0.0 if x <= 1 else _f32(math.log(x) / math.log(2.0))


@dataclass
class ChainParams:
    """Parameters of the chaining dynamic programme and the long-join rescue."""

    max_dist_x: int
    max_dist_y: int
    bw: int
    max_chain_iter: int
    min_chain_score: int
    min_cnt: int
    chn_pen_gap: float
    chn_pen_skip: float
    max_chain_skip: int
    max_drop: int
    bw_long: int
    rmq_rescue_size: int
    rmq_rescue_ratio: float


def _score(ai: Anchor, aj: Anchor, max_dist_x: int, max_dist_y: int, params: ChainParams) -> int | None:
    """Score of extending a chain ending at ``aj`` with ``ai``; ``None`` if not allowed."""
    dq = _qpos(ai) - _qpos(aj)
    if dq <= 0 or dq > max_dist_x:
        return None
    dr = _rpos(ai) - _rpos(aj)
    if dr == 0 or dq > max_dist_y:
        return None
    dd = abs(dr - dq)
    if dd > params.bw:
        return None
    dg = min(dr, dq)
    q_span = aj.qspan
    sc = min(q_span, dg)
    if dd != 0 or dg > q_span:
        lin_pen = _f32(
            _f32(_f32(params.chn_pen_gap) * dd) + _f32(_f32(params.chn_pen_skip) * dg)
        )
        log_pen = _log2(dd + 1) if dd >= 1 else 0.0
        sc -= int(_f32(lin_pen + 0.5 * log_pen))
    return sc


def _chain_ends(anchors: list[Anchor], chain: list[int], pos) -> tuple[int, int]:
    start, end = I32_MAX, -1
    for i in chain:
        a = anchors[i]
        start = min(start, pos(a) - (a.qspan - 1))
        end = max(end, pos(a) + 1)
    return max(start, 0), end


def _qrange(anchors: list[Anchor], chain: list[int]) -> tuple[int, int]:
    return _chain_ends(anchors, chain, _qpos)


def _trange(anchors: list[Anchor], chain: list[int]) -> tuple[int, int]:
    return _chain_ends(anchors, chain, _rpos)


def _backtrack_end(
    i0: int, score: int, f: list[int], pprev: list[int], t: list[int], max_drop: int
) -> int:
    """Find where backtracking from ``i0`` stops; marks visited anchors in ``t`` and clears them."""
    i = i0
    end_i = -1
    max_s = 0
    max_i = i
    if i >= 0 and t[i] == 0:
        while True:
            t[i] = 2
            end_i = pprev[i]
            s = score if end_i < 0 else score - f[end_i]
            if s > max_s:
                max_s = s
                max_i = end_i
            elif max_s - s > max_drop:
                break
            if not (i >= 0 and t[i] == 0 and end_i >= 0):
                break
            i = end_i
        ii = i0
        while ii >= 0 and ii != end_i:
            t[ii] = 0
            ii = pprev[ii]
    return max_i


def chain_dp_all(anchors: list[Anchor], params: ChainParams) -> tuple[list[list[int]], list[int]]:
    """All chains of ``anchors`` with their scores, best first."""
    n = len(anchors)
    if n == 0:
        return [], []
    max_dist_x = max(params.max_dist_x, params.bw)
    max_dist_y = max(params.max_dist_y, params.bw)

    f = [0] * n
    v = [0] * n
    t = [0] * n
    pprev = [-1] * n
    st = 0
    for i, ai in enumerate(anchors):
        while st < i and (
            not _same_target(anchors[st], ai) or _rpos(ai) > _rpos(anchors[st]) + max_dist_x
        ):
            st += 1
        max_j = -1
        max_f = ai.qspan
        start_j = max(i - params.max_chain_iter, st)
        n_skip = 0
        for j in range(i - 1, start_j - 1, -1):
            aj = anchors[j]
            if not _same_target(aj, ai):
                continue
            sc0 = _score(ai, aj, max_dist_x, max_dist_y, params)
            if sc0 is None:
                continue
            sc = sc0 + f[j]
            if sc > max_f:
                max_f = sc
                max_j = j
                if n_skip > 0:
                    n_skip -= 1
            elif t[j] == i:
                n_skip += 1
                if n_skip > params.max_chain_skip:
                    break
            if pprev[j] >= 0:
                t[pprev[j]] = i
        f[i] = max_f
        pprev[i] = max_j
        v[i] = v[max_j] if max_j >= 0 and v[max_j] > max_f else max_f

    z = sorted(((f[i], i) for i in range(n) if f[i] > 0), key=lambda item: item[0])
    if not z:
        return [], []

    chains: list[list[int]] = []
    scores: list[int] = []
    t = [0] * n
    for score, i0 in reversed(z):
        if t[i0] != 0:
            continue
        end_i = _backtrack_end(i0, score, f, pprev, t, params.max_drop)
        members: list[int] = []
        i = i0
        while i >= 0 and i != end_i:
            members.append(i)
            t[i] = 1
            i = pprev[i]
        sc = score if i < 0 else score - f[i]
        if sc >= params.min_chain_score and len(members) >= params.min_cnt:
            members.reverse()
            chains.append(members)
            scores.append(sc)

    if not chains:
        best_i = max(range(n), key=lambda idx: (f[idx], idx))
        members = []
        i = best_i
        while i >= 0:
            members.append(i)
            i = pprev[i]
        members.reverse()
        chains.append(members)
        scores.append(v[best_i])

    return sort_chains_stable(anchors, chains, scores)


def chain_dp(anchors: list[Anchor], params: ChainParams) -> list[int]:
    """Anchor indices of the best chain, or an empty list."""
    chains, _ = chain_dp_all(anchors, params)
    return chains[0] if chains else []


def sort_chains_stable(
    anchors: list[Anchor], chains: list[list[int]], scores: list[int]
) -> tuple[list[list[int]], list[int]]:
    """Order chains by score descending, then query start, then target start."""
    order = sorted(
        range(len(chains)),
        key=lambda i: (-scores[i], _qrange(anchors, chains[i])[0], _trange(anchors, chains[i])[0]),
    )
    return [list(chains[i]) for i in order], [scores[i] for i in order]


def select_primary_secondary(
    anchors: list[Anchor], chains: list[list[int]], scores: list[int], mask_level: float
) -> list[bool]:
    """Flag chains whose query range is not largely covered by an earlier primary."""
    primaries: list[tuple[int, int]] = []
    flags: list[bool] = []
    mask = _f32(mask_level)
    for chain in chains:
        qs, qe = _qrange(anchors, chain)
        length = max(qe - qs, 1)
        overlapped = any(
            _f32(max(min(qe, pqe) - max(qs, pqs), 0) / length) >= mask for pqs, pqe in primaries
        )
        flags.append(not overlapped)
        if not overlapped:
            primaries.append((qs, qe))
    return flags


def select_and_filter_chains(
    anchors: list[Anchor],
    chains: list[list[int]],
    scores: list[int],
    mask_level: float,
    pri_ratio: float,
    best_n: int,
) -> tuple[list[list[int]], list[int], list[bool], int, int]:
    """Keep the best chain and up to ``best_n`` good secondaries; also return s1 and s2."""
    if not chains:
        return [], [], [], 0, 0
    chains, scores = sort_chains_stable(anchors, chains, scores)
    is_primary = select_primary_secondary(anchors, chains, scores, mask_level)
    s1 = scores[0]
    s2 = 0
    threshold = _f32(_f32(pri_ratio) * s1)
    out_chains = [list(chains[0])]
    out_scores = [s1]
    out_primary = [True]
    kept = 0
    for chain, score, primary in zip(chains[1:], scores[1:], is_primary[1:]):
        if not primary:
            continue
        if score >= threshold and kept < best_n:
            out_chains.append(list(chain))
            out_scores.append(score)
            out_primary.append(False)
            kept += 1
        if s2 == 0:
            s2 = score
    return out_chains, out_scores, out_primary, s1, s2


def _merge(anchors: list[Anchor], chains: list[list[int]], joinable) -> list[list[int]]:
    order = sorted(range(len(chains)), key=lambda i: _qrange(anchors, chains[i])[0])
    merged: list[list[int]] = []
    for idx in order:
        chain = chains[idx]
        if merged:
            last = merged[-1]
            if _same_target(anchors[last[-1]], anchors[chain[0]]) and joinable(last, chain):
                last.extend(chain)
                continue
        merged.append(list(chain))
    return merged


def merge_adjacent_chains(anchors: list[Anchor], chains: list[list[int]]) -> list[list[int]]:
    """Merge chains on the same target and strand whose query ranges touch or overlap."""
    return _merge(
        anchors,
        chains,
        lambda last, chain: _qrange(anchors, chain)[0] <= _qrange(anchors, last)[1],
    )


def merge_adjacent_chains_with_gap(
    anchors: list[Anchor], chains: list[list[int]], max_gap_q: int, max_gap_t: int
) -> list[list[int]]:
    """Merge chains separated by non-negative gaps no larger than the given limits."""

    def joinable(last: list[int], chain: list[int]) -> bool:
        q_gap = _qrange(anchors, chain)[0] - _qrange(anchors, last)[1]
        t_gap = _trange(anchors, chain)[0] - _trange(anchors, last)[1]
        return 0 <= q_gap <= max_gap_q and 0 <= t_gap <= max_gap_t

    return _merge(anchors, chains, joinable)


def chain_query_coverage(anchors: list[Anchor], chain: list[int]) -> int:
    """Length of the query range spanned by ``chain``."""
    qs, qe = _qrange(anchors, chain)
    return max(qe - qs, 0)


def rescue_long_join(
    anchors: list[Anchor],
    chains: list[list[int]],
    scores: list[int],
    params: ChainParams,
    qlen: int,
) -> tuple[list[list[int]], list[int]]:
    """Rechain with the long bandwidth when the best chain leaves much of the query uncovered."""
    if not chains:
        return [list(c) for c in chains], list(scores)
    best_cov = chain_query_coverage(anchors, chains[0])
    uncovered = max(qlen - best_cov, 0)
    limit = _f32(_f32(float(qlen)) * _f32(1.0 - _f32(params.rmq_rescue_ratio)))
    if not (uncovered > params.rmq_rescue_size or best_cov < limit):
        return [list(c) for c in chains], list(scores)
    return chain_dp_all(anchors, replace(params, bw=params.bw_long))