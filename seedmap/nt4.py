"""Mapping of nucleotide characters to 2-bit codes."""

from __future__ import annotations

_CODES = {
    ord("A"): 0,
    ord("a"): 0,
    ord("C"): 1,
    ord("c"): 1,
    ord("G"): 2,
    ord("g"): 2,
    ord("T"): 3,
    ord("t"): 3,
}

AMBIGUOUS = 4


def nt4(base: int | str) -> int:
    """Return 0-3 for A/C/G/T (either case) and 4 for anything else.

    ``base`` may be a byte value or a one-character string.
    """
    if isinstance(base, str):
        if len(base) != 1:
            return AMBIGUOUS
        base = ord(base)
    return _CODES.get(base, AMBIGUOUS)