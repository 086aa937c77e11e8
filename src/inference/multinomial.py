"""
Multinomial Sampler Module
==========================

Seeded categorical sampling from unnormalized log-probabilities.

Method (per batch row):
    m      = max_c logit[c]
    cdf[c] = sum_{k<=c} exp(logit[k] - m)      (non-decreasing)
    u      ~ U[0, cdf[-1])
    sample = smallest c with cdf[c] > u

Each call to Multinomial.sample consumes exactly one uniform draw from the
sampler's own generator, so a fixed seed and a fixed call order reproduce
the same samples.

Author: MARL Inference Team
"""

import numpy as np
from typing import Optional

from .errors import (
    NullBufferError,
    ShapeMismatchError,
    TypeMismatchError,
    UnsupportedTypeError,
)
from .tensor import TensorProxy, TensorType


class Multinomial:
    """
    Draws class indices from a cumulative (unnormalized) distribution.

    Attributes:
        seed: Seed the generator was created with
        draws: Number of uniform draws consumed so far

    Example:
        >>> m = Multinomial(seed=42)
        >>> m.sample(np.array([1.0, 2.0, 3.0]))  # in {0, 1, 2}
    """

    def __init__(self, seed: int = 0):
        self.seed = seed
        self._rng = np.random.RandomState(seed)
        self.draws = 0

    def sample(self, cdf: np.ndarray) -> int:
        """
        Sample one class from a non-decreasing cumulative array.

        Args:
            cdf: Cumulative unnormalized probabilities, shape (C,)

        Returns:
            Class index in [0, C)
        """
        total = cdf[-1]
        u = self._rng.random_sample() * total
        self.draws += 1
        cls = int(np.searchsorted(cdf, u, side="right"))
        # u can round up to total in float32
        return min(cls, len(cdf) - 1)

    @staticmethod
    def compute_cdf(logits: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Max-shifted cumulative sum of exponentiated logits.

        Args:
            logits: Log-probabilities for one row, shape (C,)
            out: Optional working buffer of shape (C,) to fill

        Returns:
            cdf, shape (C,); cdf[-1] is the unnormalized total
        """
        max_logit = np.max(logits)
        shifted = np.exp(logits - max_logit)
        if out is None:
            return np.cumsum(shifted)
        np.cumsum(shifted, out=out)
        return out


def eval_multinomial(src: TensorProxy, dst: TensorProxy, multinomial: Multinomial):
    """
    Draw samples for every row of src into dst.

    All preconditions are checked before dst is touched.

    Args:
        src: Log-probabilities, shape (batch, num_classes), floating point
        dst: Allocated output, shape (batch, num_samples)
        multinomial: Sampler whose stream is advanced batch * num_samples times

    Raises:
        UnsupportedTypeError: src is not floating point
        TypeMismatchError: src and dst value types differ
        NullBufferError: src or dst has no data
        ShapeMismatchError: batch sizes differ
    """
    if src.value_type != TensorType.FLOATING_POINT:
        raise UnsupportedTypeError("Only floating point tensors are currently supported")

    if src.value_type != dst.value_type:
        raise TypeMismatchError("Source and destination tensors have different types!")

    if src.data is None or dst.data is None:
        raise NullBufferError("Source and destination tensors must both be allocated")

    if src.data.shape[0] != dst.data.shape[0]:
        raise ShapeMismatchError("Batch size for input and output data is different!")

    batch_size, num_classes = src.data.shape[0], src.data.shape[-1]
    num_samples = dst.data.shape[-1]

    # Reused for every row
    cdf = np.empty(num_classes, dtype=np.float64)

    for batch in range(batch_size):
        Multinomial.compute_cdf(src.data[batch].astype(np.float64), out=cdf)
        for sample in range(num_samples):
            dst.data[batch, sample] = multinomial.sample(cdf)


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_multinomial() -> dict:
    """Run verification tests."""
    results = {}

    # Test 1: Dominant class always wins
    m = Multinomial(seed=0)
    cdf = Multinomial.compute_cdf(np.array([100.0, -100.0]))
    draws = [m.sample(cdf) for _ in range(200)]
    results["test_dominant_class"] = {
        "unique": sorted(set(draws)),
        "pass": set(draws) == {0}
    }

    # Test 2: Equal logits split roughly evenly
    m = Multinomial(seed=1)
    cdf = Multinomial.compute_cdf(np.array([0.0, 0.0]))
    draws = np.array([m.sample(cdf) for _ in range(10000)])
    frac = float(np.mean(draws == 0))
    results["test_even_split"] = {
        "fraction_class_0": frac,
        "pass": abs(frac - 0.5) < 0.03
    }

    # Test 3: CDF is monotone, last element is the total
    logits = np.array([0.5, -1.0, 2.0, 0.0])
    cdf = Multinomial.compute_cdf(logits)
    total = float(np.sum(np.exp(logits - logits.max())))
    results["test_cdf"] = {
        "monotone": bool(np.all(np.diff(cdf) >= 0)),
        "last": float(cdf[-1]),
        "expected_last": total,
        "pass": bool(np.all(np.diff(cdf) >= 0)) and np.isclose(cdf[-1], total)
    }

    # Test 4: Same seed, same sequence
    a, b = Multinomial(seed=7), Multinomial(seed=7)
    seq_a = [a.sample(cdf) for _ in range(50)]
    seq_b = [b.sample(cdf) for _ in range(50)]
    results["test_determinism"] = {
        "pass": seq_a == seq_b
    }

    return results


if __name__ == "__main__":
    print("=" * 60)
    print("Multinomial Sampler Verification")
    print("=" * 60)

    results = verify_multinomial()

    all_passed = True
    for test_name, result in results.items():
        print(f"\n{test_name}:")
        for k, v in result.items():
            print(f"  {k}: {v}")
        if not result.get("pass", False):
            all_passed = False

    print("\n" + "=" * 60)
    print("PASSED" if all_passed else "FAILED")
    print("=" * 60)
