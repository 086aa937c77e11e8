"""
Actuators Module
================

Action-space description and per-agent state written by the decoders.
    - action_spec: ActionSpec and ActionBuffers
    - stores: ActionBufferStore and MemoryStore
"""

from .action_spec import ActionSpec, ActionBuffers
from .stores import ActionBufferStore, MemoryStore

__all__ = [
    "ActionSpec",
    "ActionBuffers",
    "ActionBufferStore",
    "MemoryStore",
]
