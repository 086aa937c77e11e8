"""
Tensor Module
=============

Batch-major tensor handles and the scratch allocator used by the appliers.

Layout:
    Every tensor is [batch, ...features]. Row i belongs to agent_ids[i];
    the trailing dimension is the feature (or class) count.

Author: MARL Inference Team
"""

from collections import defaultdict
from contextlib import contextmanager
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import torch


class TensorType(Enum):
    """Element type tag carried by a tensor handle."""
    INTEGER = "integer"
    FLOATING_POINT = "floating_point"


class TensorNames:
    """Names of the tensors exchanged with the forward pass."""

    # Inputs
    OBSERVATION = "obs"
    RECURRENT_INPUT = "recurrent_in"

    # Outputs
    CONTINUOUS_ACTION_OUTPUT = "continuous_actions"
    DISCRETE_ACTION_OUTPUT = "discrete_actions"
    DISCRETE_ACTION_PROBS_OUTPUT = "discrete_action_probs"
    RECURRENT_OUTPUT = "recurrent_out"

    @staticmethod
    def recurrent_input_block(index: int) -> str:
        return f"{TensorNames.RECURRENT_INPUT}_{index}"

    @staticmethod
    def recurrent_output_block(index: int) -> str:
        return f"{TensorNames.RECURRENT_OUTPUT}_{index}"


class TensorProxy:
    """
    Named view over a batch-major numeric buffer.

    The proxy never copies on construction; appliers read it through
    `tensor.data[row, col]` and must not keep it after `apply` returns.

    Attributes:
        name: Tensor name from the model output contract
        value_type: INTEGER or FLOATING_POINT
        shape: Full shape, batch first
        data: Backing array, or None when unallocated

    Example:
        >>> t = TensorProxy("continuous_actions", data=np.zeros((4, 2)))
        >>> t.batch_size, t.feature_count
        (4, 2)
    """

    def __init__(
        self,
        name: str = "",
        value_type: Optional[TensorType] = None,
        shape: Optional[Sequence[int]] = None,
        data: Optional[np.ndarray] = None
    ):
        if value_type is None:
            value_type = _value_type_of(data) if data is not None else TensorType.FLOATING_POINT
        if shape is None and data is not None:
            shape = data.shape

        self.name = name
        self.value_type = value_type
        self.shape: Tuple[int, ...] = tuple(int(d) for d in shape) if shape is not None else ()
        self.data = data

    @property
    def batch_size(self) -> int:
        return self.shape[0] if self.shape else 0

    @property
    def feature_count(self) -> int:
        return self.shape[-1] if self.shape else 0

    @classmethod
    def from_torch(cls, name: str, tensor: torch.Tensor) -> "TensorProxy":
        """Wrap a (detached) torch tensor, flattening trailing dims to 2-D."""
        array = tensor.detach().cpu().numpy()
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        elif array.ndim > 2:
            array = array.reshape(array.shape[0], -1)
        return cls(name, data=array)

    def __repr__(self) -> str:
        return (f"TensorProxy(name={self.name!r}, value_type={self.value_type.name}, "
                f"shape={self.shape})")


def _value_type_of(data: np.ndarray) -> TensorType:
    if np.issubdtype(data.dtype, np.floating):
        return TensorType.FLOATING_POINT
    return TensorType.INTEGER


def cum_sum(sizes: Sequence[int]) -> np.ndarray:
    """
    Exclusive prefix sum of branch sizes.

    Args:
        sizes: Branch sizes, e.g. [2, 3]

    Returns:
        Start offsets with one extra trailing total, e.g. [0, 2, 5]
    """
    offsets = np.zeros(len(sizes) + 1, dtype=np.int64)
    np.cumsum(sizes, out=offsets[1:])
    return offsets


class TensorAllocator:
    """
    Pooling allocator for scratch tensors.

    Released arrays are kept per (shape, dtype) and handed out again, zeroed.
    `live_count` is the number of arrays handed out and not yet released.

    Example:
        >>> allocator = TensorAllocator()
        >>> with allocator.scoped((4, 3)) as scratch:
        ...     scratch[:] = 1.0
        >>> allocator.live_count
        0
    """

    def __init__(self, dtype: np.dtype = np.float32):
        self.dtype = np.dtype(dtype)
        self._pool: Dict[Tuple[Tuple[int, ...], np.dtype], List[np.ndarray]] = defaultdict(list)
        self._live: Dict[int, np.ndarray] = {}
        self.total_allocations = 0

    @property
    def live_count(self) -> int:
        return len(self._live)

    def alloc(self, shape: Sequence[int], dtype: Optional[np.dtype] = None) -> np.ndarray:
        """Hand out a zeroed array of the given shape."""
        shape = tuple(int(d) for d in shape)
        dtype = self.dtype if dtype is None else np.dtype(dtype)

        free = self._pool[(shape, dtype)]
        if free:
            array = free.pop()
            array.fill(0)
        else:
            array = np.zeros(shape, dtype=dtype)
            self.total_allocations += 1

        self._live[id(array)] = array
        return array

    def release(self, array: np.ndarray):
        """Return an array to the pool. Releasing an unknown array is a no-op."""
        if self._live.pop(id(array), None) is None:
            return
        self._pool[(array.shape, array.dtype)].append(array)

    @contextmanager
    def scoped(self, shape: Sequence[int], dtype: Optional[np.dtype] = None) -> Iterator[np.ndarray]:
        """Allocate for the duration of a `with` block; always released."""
        array = self.alloc(shape, dtype)
        try:
            yield array
        finally:
            self.release(array)

    def reset(self):
        """Drop pooled arrays. Live arrays stay owned by their holders."""
        self._pool.clear()
