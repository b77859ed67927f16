"""Dense matrix-multiply micro-benchmark.

This package times alternative matrix-multiply kernels (a naive triple loop and
a cache-blocked variant) against a reference kernel, rejects outlier runtimes
iteratively, checks output buffers for overruns, and writes CSV runtimes, a
schema-validated `results.json` and a Markdown report.
"""

from __future__ import annotations
