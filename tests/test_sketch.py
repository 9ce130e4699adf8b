import random

import pytest

from seedmap.sketch import Minimizer, hash64, sketch_sequence


def _random_seq(n, seed):
    rng = random.Random(seed)
    return "".join(rng.choice("ACGT") for _ in range(n))


def test_hash64_stays_within_mask():
    mask = (1 << 30) - 1
    for key in (0, 1, 12345, mask):
        assert 0 <= hash64(key, mask) <= mask


def test_hash64_is_bijection_on_small_space():
    mask = 0xFF
    assert len({hash64(x, mask) for x in range(256)}) == 256


def test_empty_sequence_raises():
    with pytest.raises(ValueError):
        sketch_sequence(b"", 10, 15)


@pytest.mark.parametrize("w,k", [(0, 15), (256, 15), (10, 0), (10, 29)])
def test_bad_parameters_raise(w, k):
    with pytest.raises(ValueError):
        sketch_sequence(b"ACGTACGTACGT", w, k)


def test_sequence_shorter_than_k_gives_nothing():
    assert sketch_sequence(b"ACG", 1, 5) == []


def test_all_ambiguous_gives_nothing():
    assert sketch_sequence(b"NNNNNNNNNN", 2, 3) == []


def test_palindromic_kmer_is_skipped():
    assert sketch_sequence(b"ACGT", 1, 4) == []


def test_reverse_complement_kmer_has_same_key_other_strand():
    fwd = sketch_sequence(b"AAAC", 1, 4)
    rev = sketch_sequence(b"GTTT", 1, 4)
    assert len(fwd) == len(rev) == 1
    assert fwd[0].key == rev[0].key
    assert {fwd[0].strand, rev[0].strand} == {0, 1}


def test_string_and_bytes_agree():
    seq = _random_seq(200, 1)
    assert sketch_sequence(seq, 5, 11) == sketch_sequence(seq.encode(), 5, 11)


def test_lowercase_matches_uppercase():
    seq = _random_seq(150, 2)
    assert sketch_sequence(seq.lower(), 5, 11) == sketch_sequence(seq, 5, 11)


def test_minimizer_fields_are_consistent():
    seq = _random_seq(500, 3)
    w, k = 10, 15
    result = sketch_sequence(seq, w, k, rid=2)
    assert result
    for m in result:
        assert m.span == k
        assert m.rid == 2
        assert k - 1 <= m.pos < len(seq)
        assert m.strand in (0, 1)
        assert m.key <= (1 << (2 * k)) - 1


def test_every_window_is_covered():
    seq = _random_seq(1000, 4)
    w, k = 10, 15
    positions = sorted({m.pos for m in sketch_sequence(seq, w, k)})
    assert positions[0] <= k - 1 + w - 1
    assert positions[-1] >= len(seq) - w
    for a, b in zip(positions, positions[1:]):
        assert b - a <= w


def test_w1_emits_every_kmer():
    seq = _random_seq(60, 5)
    k = 7
    result = sketch_sequence(seq, 1, k)
    positions = {m.pos for m in result}
    assert positions <= set(range(k - 1, len(seq)))
    assert len(positions) >= len(seq) - k + 1 - 2


def test_ambiguous_base_breaks_kmers():
    k = 5
    left = _random_seq(30, 6)
    right = _random_seq(30, 7)
    seq = left + "N" + right
    positions = [m.pos for m in sketch_sequence(seq, 3, k)]
    assert positions
    assert any(p < len(left) for p in positions)
    assert any(p >= len(left) + k for p in positions)
    assert [p for p in positions if len(left) <= p < len(left) + k] == []


def test_hpc_spans_are_at_least_k():
    seq = "AAAACCCGGTTTTACGGGAAACCCTTTGGGAAATTTCCCGGGAAAATTTT" * 3
    k = 5
    result = sketch_sequence(seq, 4, k, is_hpc=True)
    assert result
    assert all(k <= m.span < 256 for m in result)
    assert any(m.span > k for m in result)