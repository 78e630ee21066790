"""Livestock programme tabular import & normalization pipeline.

CSV, XLSX and JSON exports are resolved against keyword column roles,
coerced, grouped into transactions and written to a document store in
bounded, sequential chunks.
"""

__version__ = "0.1.0"
