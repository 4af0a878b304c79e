from dataclasses import dataclass
from typing import Optional

import numpy as np

from .config import TOLERANCE


class VerificationMismatch(Exception):
    def __init__(self, index, expected, actual):
        super().__init__(f"mismatch at index {index}: expected {expected}, got {actual}")
        self.index = index
        self.expected = expected
        self.actual = actual


@dataclass
class VerificationResult:
    ok: bool
    index: Optional[int] = None
    expected: Optional[float] = None
    actual: Optional[float] = None
    max_abs_diff: float = 0.0


###############################################################################
def verify(expected, actual, eps=TOLERANCE):
    """
    Element-wise |expected[i] - actual[i]| <= eps over two flat buffers.
    A slot where both values are NaN (or the same infinity) counts as a match.
    On failure the result carries the lowest failing index and both values.
    max_abs_diff is the largest non-NaN difference and can be inf.
    """
    a = np.asarray(expected).ravel()
    b = np.asarray(actual).ravel()
    if a.size != b.size:
        raise ValueError(f"buffers differ in length: {a.size} vs {b.size}")
    if a.size == 0:
        return VerificationResult(ok=True)

    a64 = a.astype(np.float64)
    b64 = b.astype(np.float64)
    diff = np.abs(a64 - b64)
    both_nan = np.isnan(a64) & np.isnan(b64)
    # equal infinities give a nan difference
    bad = ~(diff <= eps) & ~both_nan & ~(a64 == b64)
    # nan slots are dropped; an inf difference stays and gives max_abs_diff = inf
    comparable = diff[~np.isnan(diff)]
    max_abs_diff = float(comparable.max()) if comparable.size else 0.0

    if not bad.any():
        return VerificationResult(ok=True, max_abs_diff=max_abs_diff)
    i = int(np.argmax(bad))
    return VerificationResult(
        ok=False,
        index=i,
        expected=float(a[i]),
        actual=float(b[i]),
        max_abs_diff=max_abs_diff,
    )


def verify_or_raise(expected, actual, eps=TOLERANCE):
    res = verify(expected, actual, eps)
    if not res.ok:
        raise VerificationMismatch(res.index, res.expected, res.actual)
    return res
