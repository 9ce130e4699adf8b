import pytest

from seedmap.lchain import (
    ChainParams,
    chain_dp,
    chain_dp_all,
    chain_query_coverage,
    merge_adjacent_chains,
    merge_adjacent_chains_with_gap,
    rescue_long_join,
    select_and_filter_chains,
    select_primary_secondary,
    sort_chains_stable,
)
from seedmap.seeds import Anchor


def make_anchor(rid, rpos, qpos, qspan=15, rev=False):
    x = ((1 << 63) if rev else 0) | (rid << 32) | rpos
    y = (qspan << 32) | qpos
    return Anchor(x, y)


def collinear(n, rid=0, rstart=100, qstart=50, step=10, rev=False):
    return [make_anchor(rid, rstart + step * i, qstart + step * i, rev=rev) for i in range(n)]


@pytest.fixture
def params():
    return ChainParams(
        max_dist_x=5000,
        max_dist_y=5000,
        bw=500,
        max_chain_iter=5000,
        min_chain_score=40,
        min_cnt=3,
        chn_pen_gap=0.01 * 0.8 * 15,
        chn_pen_skip=0.0,
        max_chain_skip=25,
        max_drop=500,
        bw_long=20000,
        rmq_rescue_size=1000,
        rmq_rescue_ratio=0.1,
    )


def test_empty_anchors(params):
    assert chain_dp_all([], params) == ([], [])
    assert chain_dp([], params) == []


def test_collinear_anchors_form_one_chain(params):
    anchors = collinear(6)
    assert chain_dp(anchors, params) == list(range(6))


def test_collinear_chain_score_matches_coverage(params):
    anchors = collinear(6)
    chains, scores = chain_dp_all(anchors, params)
    assert len(chains) == len(scores) == 1
    assert scores[0] == chain_query_coverage(anchors, chains[0])


def test_chain_stays_on_one_reference(params):
    anchors = collinear(3, rid=0) + collinear(5, rid=1)
    chain = chain_dp(anchors, params)
    assert chain == [3, 4, 5, 6, 7]
    assert all(anchors[i].rid == 1 for i in chain)


def test_chain_stays_on_one_strand(params):
    anchors = collinear(4) + collinear(2, rev=True)
    chain = chain_dp(anchors, params)
    assert chain == [0, 1, 2, 3]
    assert not any(anchors[i].is_rev for i in chain)


def test_single_anchor(params):
    anchors = [make_anchor(0, 200, 30)]
    chains, scores = chain_dp_all(anchors, params)
    assert chains == [[0]]
    assert scores == [15]


def test_sort_chains_by_score_then_query_start():
    anchors = [make_anchor(0, 100, 200), make_anchor(0, 300, 50), make_anchor(0, 500, 400)]
    chains, scores = sort_chains_stable(anchors, [[0], [1], [2]], [10, 10, 30])
    assert scores == [30, 10, 10]
    assert chains == [[2], [1], [0]]


def test_select_primary_secondary_overlap():
    anchors = [make_anchor(0, 100, 50), make_anchor(1, 900, 52), make_anchor(0, 700, 500)]
    flags = select_primary_secondary(anchors, [[0], [1], [2]], [30, 20, 10], 0.5)
    assert flags == [True, False, True]


def test_select_and_filter_empty():
    assert select_and_filter_chains([], [], [], 0.5, 0.8, 5) == ([], [], [], 0, 0)


def test_select_and_filter_keeps_best_and_secondary():
    anchors = [make_anchor(0, 100, 50), make_anchor(0, 700, 500), make_anchor(1, 100, 900)]
    chains, scores, primary, s1, s2 = select_and_filter_chains(
        anchors, [[0], [1], [2]], [100, 90, 10], 0.5, 0.8, 5
    )
    assert chains == [[0], [1]]
    assert scores == [100, 90]
    assert primary == [True, False]
    assert s1 == 100
    assert s2 == 90


def test_select_and_filter_respects_best_n():
    anchors = [make_anchor(0, 100, 50), make_anchor(0, 700, 500), make_anchor(1, 100, 900)]
    chains, _, _, s1, s2 = select_and_filter_chains(
        anchors, [[0], [1], [2]], [100, 95, 90], 0.5, 0.8, 1
    )
    assert chains == [[0], [1]]
    assert (s1, s2) == (100, 95)


def test_merge_adjacent_touching_chains():
    anchors = collinear(4)
    merged = merge_adjacent_chains(anchors, [[2, 3], [0, 1]])
    assert merged == [[0, 1, 2, 3]]


def test_merge_adjacent_different_reference_kept_apart():
    anchors = collinear(2, rid=0) + collinear(2, rid=1, qstart=60)
    merged = merge_adjacent_chains(anchors, [[0, 1], [2, 3]])
    assert merged == [[0, 1], [2, 3]]


def test_merge_with_gap_thresholds():
    anchors = collinear(2) + collinear(2, rstart=400, qstart=350)
    chains = [[0, 1], [2, 3]]
    assert merge_adjacent_chains_with_gap(anchors, chains, 5000, 5000) == [[0, 1, 2, 3]]
    assert merge_adjacent_chains_with_gap(anchors, chains, 10, 10) == [[0, 1], [2, 3]]


def test_merge_with_gap_rejects_overlap():
    anchors = collinear(4)
    assert merge_adjacent_chains_with_gap(anchors, [[0, 1], [1, 2]], 5000, 5000) == [[0, 1], [1, 2]]


def test_coverage_of_single_anchor_is_span():
    anchors = [make_anchor(0, 100, 40, qspan=17)]
    assert chain_query_coverage(anchors, [0]) == 17


def test_rescue_not_needed_returns_input(params):
    anchors = collinear(5)
    cov = chain_query_coverage(anchors, [0, 1, 2, 3, 4])
    chains, scores = rescue_long_join(anchors, [[0, 1, 2, 3, 4]], [7], params, cov)
    assert chains == [[0, 1, 2, 3, 4]]
    assert scores == [7]


def test_rescue_rechains_when_query_uncovered(params):
    anchors = collinear(5)
    chains, scores = rescue_long_join(anchors, [[0]], [7], params, 100000)
    assert chains == [[0, 1, 2, 3, 4]]
    assert scores[0] == chain_query_coverage(anchors, chains[0])


def test_rescue_with_no_chains(params):
    assert rescue_long_join(collinear(3), [], [], params, 100000) == ([], [])