"""
Agent Stores Module
===================

Per-agent state that survives across inference steps:
    - ActionBufferStore: agent id -> ActionBuffers
    - MemoryStore: agent id -> flat float32 recurrent memory

Both stores are written only by the output appliers, from the single call
site that processes one inference result. Nothing here removes agents on
its own; the stepping loop calls evict() when an agent is done.

Author: MARL Inference Team
"""

import numpy as np
from typing import Dict, Hashable, Iterator, Optional, Tuple

from .action_spec import ActionBuffers, ActionSpec


class ActionBufferStore:
    """
    Mapping from agent id to its current ActionBuffers.

    Only registered agents receive actions. Registration inserts an empty
    buffer; the appliers allocate it on first write.

    Example:
        >>> store = ActionBufferStore(ActionSpec(2, (3,)))
        >>> store.register(7)
        >>> store[7].is_empty()
        True
    """

    def __init__(self, action_spec: ActionSpec):
        self.action_spec = action_spec
        self._buffers: Dict[Hashable, ActionBuffers] = {}

    def register(self, agent_id: Hashable):
        """Insert an empty buffer unless the agent is already known."""
        if agent_id not in self._buffers:
            self._buffers[agent_id] = ActionBuffers.empty()

    def evict(self, agent_id: Hashable) -> Optional[ActionBuffers]:
        return self._buffers.pop(agent_id, None)

    def ensure_allocated(
        self,
        agent_id: Hashable,
        action_spec: Optional[ActionSpec] = None
    ) -> ActionBuffers:
        """
        Return the agent's buffer, replacing an empty one with a sized buffer.

        Args:
            agent_id: A registered agent
            action_spec: Spec to size from (defaults to the store's spec)
        """
        buffers = self._buffers[agent_id]
        if buffers.is_empty():
            buffers = ActionBuffers.from_spec(action_spec or self.action_spec)
            self._buffers[agent_id] = buffers
        return buffers

    def get(self, agent_id: Hashable, default: Optional[ActionBuffers] = None) -> Optional[ActionBuffers]:
        return self._buffers.get(agent_id, default)

    def items(self):
        return self._buffers.items()

    def __contains__(self, agent_id: Hashable) -> bool:
        return agent_id in self._buffers

    def __getitem__(self, agent_id: Hashable) -> ActionBuffers:
        return self._buffers[agent_id]

    def __setitem__(self, agent_id: Hashable, buffers: ActionBuffers):
        self._buffers[agent_id] = buffers

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)


class MemoryStore:
    """
    Mapping from agent id to recurrent memory.

    Buffers grow on demand and never shrink. Growing replaces the whole
    buffer with zeros, so every block is reset, not only the new tail.

    Attributes:
        reset_count: Number of buffers created or reset by ensure_capacity
    """

    def __init__(self):
        self._memories: Dict[Hashable, np.ndarray] = {}
        self.reset_count = 0

    def ensure_capacity(self, agent_id: Hashable, size: int) -> Tuple[np.ndarray, bool]:
        """
        Make sure the agent's memory holds at least `size` floats.

        Args:
            agent_id: Agent identifier
            size: Required length

        Returns:
            Tuple of:
                - memory: The agent's buffer (stored)
                - reset: True if a new zeroed buffer replaced the old one
        """
        memory = self._memories.get(agent_id)
        reset = memory is None or len(memory) < size
        if reset:
            memory = np.zeros(size, dtype=np.float32)
            self.reset_count += 1
        self._memories[agent_id] = memory
        return memory, reset

    def get(self, agent_id: Hashable, default: Optional[np.ndarray] = None) -> Optional[np.ndarray]:
        return self._memories.get(agent_id, default)

    def evict(self, agent_id: Hashable) -> Optional[np.ndarray]:
        return self._memories.pop(agent_id, None)

    def items(self):
        return self._memories.items()

    def __contains__(self, agent_id: Hashable) -> bool:
        return agent_id in self._memories

    def __getitem__(self, agent_id: Hashable) -> np.ndarray:
        return self._memories[agent_id]

    def __setitem__(self, agent_id: Hashable, memory: np.ndarray):
        self._memories[agent_id] = np.asarray(memory, dtype=np.float32)

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._memories)

    def __len__(self) -> int:
        return len(self._memories)
