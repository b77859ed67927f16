"""CPU micro-benchmarks (Python orchestrator + numba-compiled kernels)."""
