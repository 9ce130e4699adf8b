"""Command-line front end: build indexes, list anchors, chain and map a query."""

from __future__ import annotations

import argparse
import re
import struct
import sys
from pathlib import Path
from typing import TextIO

from seedmap.index import Index, build_index_from_fasta, read_fasta
from seedmap.indexio import load_mmi, load_native, save_mmi, save_native
from seedmap.lchain import (
    ChainParams,
    chain_dp,
    chain_dp_all,
    merge_adjacent_chains_with_gap,
    rescue_long_join,
    select_and_filter_chains,
)
from seedmap.paf import paf_from_chain, write_paf, write_paf_many_with_scores
from seedmap.seeds import (
    Anchor,
    build_anchors_filtered,
    collect_query_minimizers,
    filter_query_minimizers,
)

DEFAULT_BUCKET_BITS = 14
DEFAULT_MID_OCC_FRAC = 2e-4
MIN_MID_OCC = 10
Q_OCC_MAX = 10
Q_OCC_FRAC = 0.01
CHAIN_GAP_SCALE = 0.8
MAX_SHOWN_ANCHORS = 10

_PRESETS = {
    "map-ont": (10, 15),
    "map-hifi": (10, 19),
    "lr:hq": (10, 19),
    "sr": (11, 21),
}
_INT = re.compile(r"[+-]?\d+")


def _f32(value: float) -> float:
    return struct.unpack("<f", struct.pack("<f", value))[0]


def read_fasta_first(path: str | Path) -> tuple[str, bytes]:
    """Name and sequence of the first FASTA record, or ``("*", b"")`` if there is none."""
    records = read_fasta(path)
    try:
        return next(records, ("*", b""))
    finally:
        records.close()


def default_chain_params(k: int) -> ChainParams:
    """Chaining parameters used unless options override them."""
    chn_pen_gap = _f32(_f32(_f32(0.01) * _f32(CHAIN_GAP_SCALE)) * float(k))
    return ChainParams(
        max_dist_x=5000,
        max_dist_y=5000,
        bw=500,
        max_chain_iter=5000,
        min_chain_score=40,
        min_cnt=3,
        chn_pen_gap=chn_pen_gap,
        chn_pen_skip=0.0,
        max_chain_skip=25,
        max_drop=500,
        bw_long=20000,
        rmq_rescue_size=1000,
        rmq_rescue_ratio=0.1,
    )


def apply_preset(preset: str, w: int, k: int) -> tuple[int, int]:
    """Return ``(w, k)`` after applying a named preset; unknown presets change nothing."""
    return _PRESETS.get(preset, (w, k))


def load_index_auto(path: str | Path, w: int, k: int, b: int, flag: int) -> Index:
    """Load an ``.mmi`` or native index, or build one from FASTA when loading fails."""
    if str(path).endswith(".mmi"):
        return load_mmi(path)
    try:
        return load_native(path)
    except (OSError, ValueError):
        return build_index_from_fasta(path, w, k, b, flag)


def _query_anchors(index: Index, query: bytes, w: int, k: int, frac: float) -> list[Anchor]:
    minimizers = collect_query_minimizers(query, w, k)
    minimizers = filter_query_minimizers(minimizers, Q_OCC_MAX, Q_OCC_FRAC)
    mid_occ = max(index.calc_mid_occ(frac), MIN_MID_OCC)
    return build_anchors_filtered(index, minimizers, len(query), mid_occ)


def _format_anchor(a: Anchor) -> str:
    return f"x=0x{a.x:016x} y=0x{a.y:016x}"


def _parse_bandwidths(spec: str | None, params: ChainParams) -> None:
    if not spec:
        return
    parts = spec.split(",")
    if _INT.fullmatch(parts[0]):
        params.bw = int(parts[0])
    if len(parts) > 1 and _INT.fullmatch(parts[1]):
        params.bw_long = int(parts[1])


def _run_index(args: argparse.Namespace, out: TextIO) -> None:
    flag = 1 if args.hpc else 0
    index = build_index_from_fasta(args.fasta, args.w, args.k, args.bucket_bits, flag)
    n_keys, avg_occ, avg_spacing, total_len = index.stats()
    print(f"kmer size: {args.k}; skip: {args.w}; is_hpc: {flag}; #seq: {index.n_seq}", file=out)
    print(
        f"distinct minimizers: {n_keys} (avg occ {avg_occ:.2f}) "
        f"avg spacing {avg_spacing:.3f} total length {total_len}",
        file=out,
    )
    if args.dump:
        if args.dump.endswith(".mmi"):
            save_mmi(index, args.dump)
        else:
            save_native(index, args.dump)


def _run_anchors(args: argparse.Namespace, out: TextIO) -> None:
    index = load_index_auto(args.ref_fasta, args.w, args.k, DEFAULT_BUCKET_BITS, int(args.hpc))
    _, query = read_fasta_first(args.qry_fasta)
    anchors = _query_anchors(index, query, args.w, args.k, DEFAULT_MID_OCC_FRAC)
    print(f"anchors: {len(anchors)}", file=out)
    for a in anchors[:MAX_SHOWN_ANCHORS]:
        print(_format_anchor(a), file=out)


def _run_chain(args: argparse.Namespace, out: TextIO) -> None:
    index = load_index_auto(args.ref_fasta, args.w, args.k, DEFAULT_BUCKET_BITS, int(args.hpc))
    _, query = read_fasta_first(args.qry_fasta)
    anchors = _query_anchors(index, query, args.w, args.k, DEFAULT_MID_OCC_FRAC)
    params = default_chain_params(args.k)
    params.bw = args.bw
    chain = chain_dp(anchors, params)
    print(f"best_chain_len: {len(chain)}", file=out)
    if chain:
        print(f"start: {_format_anchor(anchors[chain[0]])}", file=out)
        print(f"end:   {_format_anchor(anchors[chain[-1]])}", file=out)


def _run_align(args: argparse.Namespace, out: TextIO) -> None:
    w, k = args.w, args.k
    if args.preset is not None:
        w, k = apply_preset(args.preset, w, k)
    index = load_index_auto(args.ref_fasta, w, k, DEFAULT_BUCKET_BITS, int(args.hpc))
    qname, query = read_fasta_first(args.qry_fasta)
    anchors = _query_anchors(index, query, w, k, args.frac_top_repetitive)
    params = default_chain_params(k)
    params.max_dist_x = params.max_dist_y = args.max_gap
    params.min_cnt = args.min_cnt
    params.min_chain_score = args.min_chain_score
    _parse_bandwidths(args.r, params)

    chains_all, scores_all = chain_dp_all(anchors, params)
    lines: list[str] = []
    if not chains_all:
        record = paf_from_chain(index, anchors, chain_dp(anchors, params), qname, query)
        if record is not None:
            lines.append(write_paf(record))
    else:
        chains, scores = rescue_long_join(anchors, chains_all, scores_all, params, len(query))
        merged = merge_adjacent_chains_with_gap(
            anchors, chains, params.max_dist_y, params.max_dist_y
        )
        selected, _, _, s1, s2 = select_and_filter_chains(
            anchors, merged, scores, args.mask_level, args.pri_ratio, args.best_n
        )
        lines.extend(write_paf_many_with_scores(index, anchors, selected, s1, s2, qname, query))

    if args.output and args.output != "-":
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.writelines(f"{line}\n" for line in lines)
    else:
        for line in lines:
            print(line, file=out)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-w", dest="w", type=int, default=10, help="minimizer window size")
    parser.add_argument("-k", dest="k", type=int, default=15, help="k-mer size")
    parser.add_argument("-H", "--hpc", action="store_true", help="homopolymer-compressed k-mers")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="seedmap", description="Minimizer-based sequence mapper")
    sub = parser.add_subparsers(dest="command", required=True)

    p_index = sub.add_parser("index", help="build an index and print statistics")
    p_index.add_argument("fasta")
    _add_common(p_index)
    p_index.add_argument("-b", dest="bucket_bits", type=int, default=DEFAULT_BUCKET_BITS)
    p_index.add_argument("-d", "--dump", default=None, help="write the index to this file")
    p_index.set_defaults(run=_run_index)

    p_anchors = sub.add_parser("anchors", help="list seed anchors of the first query")
    p_anchors.add_argument("ref_fasta")
    p_anchors.add_argument("qry_fasta")
    _add_common(p_anchors)
    p_anchors.set_defaults(run=_run_anchors)

    p_chain = sub.add_parser("chain", help="report the best chain of the first query")
    p_chain.add_argument("ref_fasta")
    p_chain.add_argument("qry_fasta")
    _add_common(p_chain)
    p_chain.add_argument("-r", dest="bw", type=int, default=5000, help="chaining bandwidth")
    p_chain.set_defaults(run=_run_chain)

    p_align = sub.add_parser("align", help="map the first query and write PAF")
    p_align.add_argument("ref_fasta")
    p_align.add_argument("qry_fasta")
    _add_common(p_align)
    p_align.add_argument("-f", dest="frac_top_repetitive", type=float, default=DEFAULT_MID_OCC_FRAC)
    p_align.add_argument("-g", dest="max_gap", type=int, default=5000)
    p_align.add_argument("-r", dest="r", default=None, help="NUM[,NUM] bandwidths")
    p_align.add_argument("-n", dest="min_cnt", type=int, default=3)
    p_align.add_argument("-m", dest="min_chain_score", type=int, default=40)
    p_align.add_argument("-M", "--mask-level", dest="mask_level", type=float, default=0.5)
    p_align.add_argument("-p", "--pri-ratio", dest="pri_ratio", type=float, default=0.8)
    p_align.add_argument("-N", "--best-n", dest="best_n", type=int, default=5)
    p_align.add_argument("-x", dest="preset", default=None)
    p_align.add_argument("-a", dest="out_sam", action="store_true", help="accepted; output is PAF")
    p_align.add_argument("-o", dest="output", default=None)
    p_align.set_defaults(run=_run_align)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the command line; return the exit status."""
    args = _build_parser().parse_args(argv)
    try:
        args.run(args, sys.stdout)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())