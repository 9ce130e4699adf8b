"""Minimizer sketching, indexing, seeding, chaining and PAF output for sequence mapping."""

__version__ = "0.1.0"