"""
Inference Module
================

Decoding of forward-pass outputs into per-agent actions and memory.
    - tensor: TensorProxy, TensorNames, TensorAllocator
    - multinomial: Seeded categorical sampler and batch Eval
    - appliers: One applier per output tensor kind
    - tensor_applier: Name-based dispatch of outputs to appliers
    - runner: Forward pass + decoding for a batch of agents
    - config: Network and decoder configuration
    - metrics: Decode metrics logging

Example:
    >>> from inference import ModelRunner, get_debug_config
    >>> runner = ModelRunner.from_config(get_debug_config(), policy)
"""

from .errors import (
    DecodingError,
    UnsupportedTypeError,
    TypeMismatchError,
    NullBufferError,
    ShapeMismatchError,
    UnknownOutputError
)

from .tensor import TensorProxy, TensorType, TensorNames, TensorAllocator, cum_sum
from .multinomial import Multinomial, eval_multinomial

from .appliers import (
    OutputKind,
    ContinuousActionOutputApplier,
    DiscreteActionOutputApplier,
    DiscreteActionProbsOutputApplier,
    MemoryOutputApplier,
    MultiBlockMemoryOutputApplier
)

from .tensor_applier import TensorApplier

from .config import (
    InferenceConfig,
    NetworkConfig,
    DecoderConfig,
    get_debug_config,
    get_continuous_config,
    get_discrete_config
)

from .metrics import DecodeMetricsLogger, RollingStats
from .runner import ModelRunner

__all__ = [
    # Errors
    "DecodingError",
    "UnsupportedTypeError",
    "TypeMismatchError",
    "NullBufferError",
    "ShapeMismatchError",
    "UnknownOutputError",
    # Tensors
    "TensorProxy",
    "TensorType",
    "TensorNames",
    "TensorAllocator",
    "cum_sum",
    # Sampling
    "Multinomial",
    "eval_multinomial",
    # Appliers
    "OutputKind",
    "ContinuousActionOutputApplier",
    "DiscreteActionOutputApplier",
    "DiscreteActionProbsOutputApplier",
    "MemoryOutputApplier",
    "MultiBlockMemoryOutputApplier",
    "TensorApplier",
    # Config
    "InferenceConfig",
    "NetworkConfig",
    "DecoderConfig",
    "get_debug_config",
    "get_continuous_config",
    "get_discrete_config",
    # Metrics
    "DecodeMetricsLogger",
    "RollingStats",
    # Runner
    "ModelRunner"
]
