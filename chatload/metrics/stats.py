"""Mean and nearest-rank percentile over latency samples.

Samples are re-sorted on every call. That is O(n log n) per call, which is fine
because percentiles are only computed on the reporting cadence.
"""

import math
from collections.abc import Sequence

import numpy as np


def mean(samples: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    if len(samples) == 0:
        return 0.0
    return float(np.mean(np.asarray(samples, dtype=float)))


def percentile(samples: Sequence[float], pct: float) -> float:
    """Nearest-rank percentile: the sorted value at ``ceil(pct/100 * n) - 1``.

    No interpolation, so the result is always one of the samples. The rank is
    clamped to the valid range so ``pct=0`` is the minimum and ``pct=100`` the
    maximum. An empty sequence yields 0.0.
    """
    n = len(samples)
    if n == 0:
        return 0.0
    ordered = np.sort(np.asarray(samples, dtype=float))
    rank = math.ceil((pct / 100.0) * n) - 1
    rank = min(max(rank, 0), n - 1)
    return float(ordered[rank])
