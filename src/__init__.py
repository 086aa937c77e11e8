"""
MARL Inference Decoder
======================

Output-decoding layer for multi-agent policy inference: turns the named
tensors of a forward pass into per-agent action commands and carries
per-agent recurrent memory across decision steps.

Modules:
    - actuators: Action spec, action buffers, per-agent stores
    - inference: Tensor handles, categorical sampling, output appliers,
                 dispatch, model runner, config and metrics
    - agents: Reference recurrent policy network
"""

__version__ = "2.1.0"
__author__ = "MARL Inference Team"
