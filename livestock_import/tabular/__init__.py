"""Tabular pipeline: decoding, header resolution, coercion, row building
and transaction aggregation. Pure in-memory transforms, no I/O except the
source readers.
"""
