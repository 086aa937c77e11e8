"""
Model Runner Module
===================

Runs one decision for a batch of agents:

1. Build inputs: observations + recurrent memory from the MemoryStore
2. Forward pass (any nn.Module mapping input names to output tensors)
3. Wrap outputs as TensorProxy and dispatch them through TensorApplier
4. Return the updated ActionBuffers of registered agents

Author: MARL Inference Team
"""

import time
from typing import Dict, Hashable, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn

from actuators.action_spec import ActionBuffers, ActionSpec
from actuators.stores import ActionBufferStore, MemoryStore

from .config import InferenceConfig
from .errors import ShapeMismatchError
from .metrics import DecodeMetricsLogger
from .tensor import TensorAllocator, TensorNames, TensorProxy
from .tensor_applier import TensorApplier


class ModelRunner:
    """
    Glue between a policy network and the output decoder.

    The runner owns both stores and is their only writer. Agents must be
    registered to receive actions; memory is kept for every agent that
    appears in a batch.

    Attributes:
        model: Forward pass, called as model(dict of named inputs)
        action_store: ActionBufferStore read by the caller after each decision
        memories: MemoryStore carried across decisions
        tensor_applier: Output dispatcher

    Example:
        >>> runner = ModelRunner(policy, spec, memory_size=32, memories_count=2, seed=0)
        >>> runner.register_agent(3)
        >>> actions = runner.decide_batch([3], obs)  # {3: ActionBuffers(...)}
    """

    def __init__(
        self,
        model: nn.Module,
        action_spec: ActionSpec,
        memory_size: int,
        memories_count: int = 0,
        seed: int = 0,
        discrete_output: str = "probabilities",
        allocator: Optional[TensorAllocator] = None,
        device: str = "cpu",
        metrics: Optional[DecodeMetricsLogger] = None
    ):
        self.device = torch.device(device)
        self.model = model
        self.model.to(self.device)
        self.model.eval()

        self.action_spec = action_spec
        self.memory_size = memory_size
        self.memories_count = memories_count
        self.allocator = allocator or TensorAllocator()
        self.metrics = metrics

        self.action_store = ActionBufferStore(action_spec)
        self.memories = MemoryStore()
        self.tensor_applier = TensorApplier(
            action_spec,
            seed=seed,
            allocator=self.allocator,
            memories=self.memories,
            memories_count=memories_count,
            discrete_output=discrete_output
        )

    @classmethod
    def from_config(
        cls,
        config: InferenceConfig,
        model: nn.Module,
        metrics: Optional[DecodeMetricsLogger] = None
    ) -> "ModelRunner":
        """Build a runner for `model` from an InferenceConfig."""
        return cls(
            model,
            config.action_spec(),
            memory_size=config.network.memory_size,
            memories_count=config.network.memories_count,
            seed=config.decoder.seed,
            discrete_output=config.decoder.discrete_output,
            device=config.device,
            metrics=metrics
        )

    def register_agent(self, agent_id: Hashable):
        self.action_store.register(agent_id)

    def evict_agent(self, agent_id: Hashable):
        """Forget an agent's actions and memory."""
        self.action_store.evict(agent_id)
        self.memories.evict(agent_id)

    def build_memory_input(self, agent_ids: Sequence[Hashable], block: int) -> np.ndarray:
        """
        Stack one memory block for the batch.

        Agents without memory (or with a buffer too short for the block)
        get zeros.

        Returns:
            Array of shape (batch, memory_size)
        """
        start = block * self.memory_size
        batch = np.zeros((len(agent_ids), self.memory_size), dtype=np.float32)
        for row, agent_id in enumerate(agent_ids):
            memory = self.memories.get(agent_id)
            if memory is not None and len(memory) >= start + self.memory_size:
                batch[row] = memory[start:start + self.memory_size]
        return batch

    def build_inputs(
        self,
        agent_ids: Sequence[Hashable],
        observations: np.ndarray
    ) -> Dict[str, torch.Tensor]:
        """
        Named model inputs for one batch.

        Args:
            agent_ids: Batch order
            observations: Shape (batch, obs_dim)

        Raises:
            ShapeMismatchError: observations and agent_ids disagree on batch size
        """
        observations = np.asarray(observations, dtype=np.float32)
        if observations.ndim != 2 or observations.shape[0] != len(agent_ids):
            raise ShapeMismatchError(
                f"Expected observations of shape ({len(agent_ids)}, obs_dim), "
                f"got {observations.shape}"
            )

        inputs = {
            TensorNames.OBSERVATION: torch.from_numpy(observations).to(self.device)
        }

        if self.memories_count > 0:
            for block in range(self.memories_count):
                name = TensorNames.recurrent_input_block(block)
                inputs[name] = torch.from_numpy(self.build_memory_input(agent_ids, block)).to(self.device)
        else:
            inputs[TensorNames.RECURRENT_INPUT] = torch.from_numpy(
                self.build_memory_input(agent_ids, 0)
            ).to(self.device)

        return inputs

    def decide_batch(
        self,
        agent_ids: Sequence[Hashable],
        observations: np.ndarray
    ) -> Dict[Hashable, ActionBuffers]:
        """
        Run the forward pass and decode its outputs.

        Args:
            agent_ids: Batch order, row i of observations belongs to agent_ids[i]
            observations: Shape (batch, obs_dim)

        Returns:
            Dict of registered agent id -> its (updated) ActionBuffers
        """
        agent_ids = list(agent_ids)
        start = time.perf_counter()
        resets_before = self.memories.reset_count

        inputs = self.build_inputs(agent_ids, observations)
        with torch.no_grad():
            outputs = self.model(inputs)

        tensors = [TensorProxy.from_torch(name, value) for name, value in outputs.items()]
        self.tensor_applier.apply_tensors(tensors, agent_ids, self.action_store)

        decided = {
            agent_id: self.action_store[agent_id]
            for agent_id in agent_ids
            if agent_id in self.action_store
        }

        if self.metrics is not None:
            self.metrics.log_decision(
                batch_size=len(agent_ids),
                latency_ms=(time.perf_counter() - start) * 1000.0,
                memory_resets=self.memories.reset_count - resets_before,
                acted=len(decided)
            )

        return decided
