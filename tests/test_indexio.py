import random
import struct

import pytest

from seedmap.index import Index, IndexSeq, build_index_from_fasta
from seedmap.indexio import (
    IndexFormatError,
    load_mmi,
    load_native,
    save_mmi,
    save_native,
)


def _random_seq(rng, n):
    return "".join(rng.choice("ACGT") for _ in range(n))


@pytest.fixture
def index(tmp_path):
    rng = random.Random(11)
    fasta = tmp_path / "ref.fa"
    fasta.write_text(f">chr1\n{_random_seq(rng, 1500)}\n>chr2\n{_random_seq(rng, 700)}\n")
    return build_index_from_fasta(fasta, 10, 15, 4, 0)


def _all_keys(index):
    for i, bucket in enumerate(index.buckets):
        for key in bucket.h or {}:
            yield ((key >> 1) << index.b) | i


def test_native_starts_with_magic(index, tmp_path):
    path = tmp_path / "idx.bin"
    save_native(index, path)
    assert path.read_bytes()[:9] == b"MM2RSIDX\0"


def test_native_round_trip(index, tmp_path):
    path = tmp_path / "idx.bin"
    save_native(index, path)
    loaded = load_native(path)
    assert (loaded.w, loaded.k, loaded.b, loaded.flag) == (index.w, index.k, index.b, index.flag)
    assert loaded.n_seq == index.n_seq
    assert loaded.seq == index.seq
    assert loaded.packed == index.packed
    assert loaded.buckets == index.buckets


def test_native_round_trip_lookups(index, tmp_path):
    path = tmp_path / "idx.bin"
    save_native(index, path)
    loaded = load_native(path)
    keys = list(_all_keys(index))
    assert keys
    for key in keys:
        assert loaded.get(key) == index.get(key)


def test_native_keeps_missing_name(tmp_path):
    index = Index(10, 15, 2, 0)
    index.seq.append(IndexSeq(None, 0, 0, True))
    path = tmp_path / "idx.bin"
    save_native(index, path)
    loaded = load_native(path)
    assert loaded.seq == [IndexSeq(None, 0, 0, True)]


def test_native_bad_magic(tmp_path):
    path = tmp_path / "bad.bin"
    path.write_bytes(b"NOTANIDX\0" + b"\0" * 32)
    with pytest.raises(IndexFormatError):
        load_native(path)


def test_native_truncated(index, tmp_path):
    path = tmp_path / "idx.bin"
    save_native(index, path)
    data = path.read_bytes()
    path.write_bytes(data[: len(data) // 2])
    with pytest.raises(IndexFormatError):
        load_native(path)


def test_mmi_header(index, tmp_path):
    path = tmp_path / "idx.mmi"
    save_mmi(index, path)
    data = path.read_bytes()
    assert data[:4] == b"MMI\x02"
    assert struct.unpack("<5I", data[4:24]) == (index.w, index.k, index.b, len(index.seq), index.flag)


def test_mmi_round_trip(index, tmp_path):
    path = tmp_path / "idx.mmi"
    save_mmi(index, path)
    loaded = load_mmi(path)
    assert (loaded.w, loaded.k, loaded.b, loaded.flag) == (index.w, index.k, index.b, index.flag)
    assert loaded.seq == index.seq
    assert loaded.buckets == index.buckets
    assert loaded.packed == index.packed[: len(loaded.packed)]
    for rid, s in enumerate(index.seq):
        assert loaded.get_ref_subseq(rid, 0, s.len) == index.get_ref_subseq(rid, 0, s.len)


def test_mmi_round_trip_lookups(index, tmp_path):
    path = tmp_path / "idx.mmi"
    save_mmi(index, path)
    loaded = load_mmi(path)
    for key in _all_keys(index):
        assert loaded.get(key) == index.get(key)


def test_mmi_caps_long_names(tmp_path):
    index = Index(10, 15, 2, 0)
    index.seq.append(IndexSeq("n" * 300, 0, 0))
    path = tmp_path / "idx.mmi"
    save_mmi(index, path)
    loaded = load_mmi(path)
    assert loaded.seq[0].name == "n" * 255


def test_mmi_empty_name_loads_as_none(tmp_path):
    index = Index(10, 15, 2, 0)
    index.seq.append(IndexSeq(None, 0, 0))
    path = tmp_path / "idx.mmi"
    save_mmi(index, path)
    assert load_mmi(path).seq[0].name is None


def test_mmi_bad_magic(tmp_path):
    path = tmp_path / "bad.mmi"
    path.write_bytes(b"MMI\x01" + b"\0" * 20)
    with pytest.raises(IndexFormatError):
        load_mmi(path)


def test_mmi_truncated(index, tmp_path):
    path = tmp_path / "idx.mmi"
    save_mmi(index, path)
    data = path.read_bytes()
    path.write_bytes(data[:-3])
    with pytest.raises(IndexFormatError):
        load_mmi(path)