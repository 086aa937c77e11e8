"""
Decoding Errors
===============

Precondition violations raised while decoding network outputs.

None of these are recoverable: they mean the model output contract and the
caller disagree (wrong dtype, wrong batch, unknown output name).

Author: MARL Inference Team
"""


class DecodingError(Exception):
    """Base class for output decoding failures."""


class UnsupportedTypeError(DecodingError, NotImplementedError):
    """Sampling was asked to read a non floating point tensor."""


class TypeMismatchError(DecodingError, ValueError):
    """Source and destination tensors have different value types."""


class NullBufferError(DecodingError, ValueError):
    """A required tensor has no data allocated."""


class ShapeMismatchError(DecodingError, ValueError):
    """Paired tensors (or tensor and agent list) disagree on batch size."""


class UnknownOutputError(DecodingError, LookupError):
    """An output tensor name has no registered applier."""
