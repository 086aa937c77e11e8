"""
Agents Module
=============

Reference policy network emitting the decoder's named output tensors.
    - policy: Stacked-GRU actor with hybrid action heads
"""

from .policy import RecurrentPolicy

__all__ = [
    "RecurrentPolicy",
]
