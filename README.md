# seedmap

seedmap maps a query sequence onto reference sequences using minimizers. It
works in four steps: minimizer sketching, a bucketed minimizer index, anchor
collection and colinear chaining. Each reported chain becomes one PAF line.
The package is pure Python and has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the test suite, install the test extra and run pytest:

```
pip install ".[test]"
pytest
```

## Command line

The `seedmap` command has four subcommands. Every subcommand accepts `-w`
(window size, default 10), `-k` (k-mer size, default 15) and `-H`/`--hpc`
(homopolymer-compressed k-mers).

Build an index from a FASTA file and print its statistics. `-b` sets the
number of bucket bits (default 14). With `-d`, the index is also saved: a path
ending in `.mmi` is written in the MMI layout, any other path in the package's
own index format.

```
seedmap index ref.fa -k 15 -w 10 -b 14 -d ref.mmi
```

Count the anchors between the first query record and the reference, and show
the first ten:

```
seedmap anchors ref.fa query.fa
```

Report the length and the end anchors of the best chain (`-r` sets the
bandwidth, default 5000):

```
seedmap chain ref.fa query.fa -r 500
```

Map the first query record and write PAF to standard output, or to the file
given with `-o` (`-o -` also means standard output):

```
seedmap align ref.fa query.fa -x map-ont -o out.paf
```

`align` accepts these options:

- `-f`: fraction of the most repetitive minimizers to ignore (default 2e-4)
- `-g`: maximum gap (default 5000)
- `-r NUM[,NUM]`: bandwidth, and optionally the long-join bandwidth
- `-n`: minimum anchor count of a chain (default 3)
- `-m`: minimum chain score (default 40)
- `-M`/`--mask-level`: mask level (default 0.5)
- `-p`/`--pri-ratio`: secondary-to-primary score ratio (default 0.8)
- `-N`/`--best-n`: maximum number of secondary chains (default 5)
- `-x`: preset setting `w` and `k`: `map-ont`, `map-hifi`, `lr:hq` or `sr`
- `-a`: accepted and ignored; output is always PAF

The reference argument of `anchors`, `chain` and `align` can be a FASTA file,
an index saved with `-d`, or a `.mmi` file. An index saved with `-d` keeps the
`w`, `k` and bucket bits it was built with.

## Library use

```python
from seedmap.index import build_index_from_fasta
from seedmap.seeds import collect_query_minimizers, filter_query_minimizers, build_anchors_filtered
from seedmap.lchain import chain_dp_all, select_and_filter_chains
from seedmap.paf import write_paf_many_with_scores
from seedmap.cli import default_chain_params, read_fasta_first

index = build_index_from_fasta("ref.fa", 10, 15, 14, 0)
qname, qseq = read_fasta_first("query.fa")
mins = filter_query_minimizers(collect_query_minimizers(qseq, 10, 15), 10, 0.01)
anchors = build_anchors_filtered(index, mins, len(qseq), max(index.calc_mid_occ(2e-4), 10))
chains, scores = chain_dp_all(anchors, default_chain_params(15))
chains, _, _, s1, s2 = select_and_filter_chains(anchors, chains, scores, 0.5, 0.8, 5)
for line in write_paf_many_with_scores(index, anchors, chains, s1, s2, qname, qseq):
    print(line)
```

The modules are:

- `seedmap.nt4`: `nt4`, the 2-bit code of a base
- `seedmap.sketch`: `Minimizer`, `hash64` and `sketch_sequence`
- `seedmap.index`: `Index`, `IndexSeq`, `Bucket`, `read_fasta` and `build_index_from_fasta`
- `seedmap.seeds`: `Anchor` and the query minimizer and anchor functions
- `seedmap.lchain`: `ChainParams`, chaining (`chain_dp`, `chain_dp_all`), chain
  ordering, selection, merging and `rescue_long_join`
- `seedmap.paf`: `PafRecord` and the functions that build and format PAF lines
- `seedmap.indexio`: `save_native` and `load_native` for the package's own
  format, `save_mmi` and `load_mmi` for the MMI layout; malformed or truncated
  files raise `IndexFormatError`
- `seedmap.cli`: the command line, `main`

## What it does not do

- There is no base-level alignment: no CIGAR strings and no SAM output. PAF
  coordinates are the bounds of the chained anchors.
- The residue-match column holds the query span of the chain, the mapping
  quality is always 60, and `dv` is estimated from minimizer hits.
- Only the first record of the query FASTA file is mapped.
- The MMI layout stores names of at most 255 bytes and no alternate-contig flag.