"""
Recurrent Policy Module
=======================

Reference forward pass producing the named output tensors the decoder
consumes. Used by the model runner, the deployment script and the tests;
weights are loaded, never trained here.

Architecture:
    Shared trunk: FC(obs→hidden) → LayerNorm → ReLU → FC(hidden→hidden) → LayerNorm → ReLU
    Recurrent stack: memories_count GRUCells of width memory_size
                     (one cell when memories_count == 0)
    Continuous head: clamp(FC(memory_size→num_continuous), -bound, bound)
    Discrete head:   FC(memory_size→sum(branch_sizes)), log_softmax per branch

Outputs:
    continuous_actions     (batch, num_continuous)
    discrete_action_probs  (batch, sum(branch_sizes))   discrete_output="probabilities"
    discrete_actions       (batch, num_branches)        discrete_output="sampled"
    recurrent_out_{i}      (batch, memory_size)         memories_count > 0
    recurrent_out          (batch, memory_size)         memories_count == 0

Author: MARL Inference Team
"""

import numpy as np
from typing import Dict, List

import torch
import torch.nn as nn
import torch.nn.functional as F

from actuators.action_spec import ActionSpec
from inference.tensor import TensorNames


class RecurrentPolicy(nn.Module):
    """
    Stacked-GRU actor with hybrid continuous + multi-branch discrete heads.

    Attributes:
        obs_dim: Observation dimensionality
        hidden_dim: Trunk hidden size
        action_spec: Action space the heads are sized for
        memory_size: Width of each recurrent block
        memories_count: Number of stacked blocks (0 = single-block layout)

    Example:
        >>> policy = RecurrentPolicy(obs_dim=8, action_spec=ActionSpec(2, (3, 2)))
        >>> outputs = policy({"obs": torch.randn(4, 8)})
        >>> outputs["discrete_action_probs"].shape
        torch.Size([4, 5])
    """

    def __init__(
        self,
        obs_dim: int = 8,
        hidden_dim: int = 128,
        action_spec: ActionSpec = None,
        memory_size: int = 32,
        memories_count: int = 2,
        discrete_output: str = "probabilities",
        action_bound: float = 1.0
    ):
        super().__init__()

        self.obs_dim = obs_dim
        self.hidden_dim = hidden_dim
        self.action_spec = action_spec or ActionSpec(2, (3, 2))
        self.memory_size = memory_size
        self.memories_count = memories_count
        self.discrete_output = discrete_output
        self.action_bound = action_bound

        self.trunk = nn.Sequential(
            nn.Linear(obs_dim, hidden_dim),
            nn.LayerNorm(hidden_dim),
            nn.ReLU(),
            nn.Linear(hidden_dim, hidden_dim),
            nn.LayerNorm(hidden_dim),
            nn.ReLU()
        )

        num_blocks = max(memories_count, 1)
        self.blocks = nn.ModuleList([
            nn.GRUCell(hidden_dim if i == 0 else memory_size, memory_size)
            for i in range(num_blocks)
        ])

        self.mu_head = None
        if self.action_spec.num_continuous_actions > 0:
            self.mu_head = nn.Linear(memory_size, self.action_spec.num_continuous_actions)

        self.logits_head = None
        if self.action_spec.num_discrete_actions > 0:
            self.logits_head = nn.Linear(memory_size, self.action_spec.sum_of_discrete_branch_sizes)

        self._init_weights()

    def _init_weights(self):
        """Orthogonal init, small gain on the output heads."""
        for module in self.trunk.modules():
            if isinstance(module, nn.Linear):
                nn.init.orthogonal_(module.weight, gain=np.sqrt(2))
                nn.init.constant_(module.bias, 0.0)

        for head in (self.mu_head, self.logits_head):
            if head is not None:
                nn.init.orthogonal_(head.weight, gain=0.01)
                nn.init.constant_(head.bias, 0.0)

    @property
    def memory_input_names(self) -> List[str]:
        if self.memories_count > 0:
            return [TensorNames.recurrent_input_block(i) for i in range(self.memories_count)]
        return [TensorNames.RECURRENT_INPUT]

    @property
    def memory_output_names(self) -> List[str]:
        if self.memories_count > 0:
            return [TensorNames.recurrent_output_block(i) for i in range(self.memories_count)]
        return [TensorNames.RECURRENT_OUTPUT]

    def forward(self, inputs: Dict[str, torch.Tensor]) -> Dict[str, torch.Tensor]:
        """
        Forward pass over named inputs.

        Args:
            inputs: "obs" of shape (batch, obs_dim), plus one memory input per
                block of shape (batch, memory_size). Missing memory inputs
                start from zeros.

        Returns:
            Named output tensors (see module docstring)
        """
        obs = inputs[TensorNames.OBSERVATION]
        batch_size = obs.shape[0]
        outputs: Dict[str, torch.Tensor] = {}

        x = self.trunk(obs)
        for cell, in_name, out_name in zip(self.blocks, self.memory_input_names,
                                           self.memory_output_names):
            h = inputs.get(in_name)
            if h is None:
                h = obs.new_zeros(batch_size, self.memory_size)
            x = cell(x, h)
            outputs[out_name] = x

        if self.mu_head is not None:
            mu = self.mu_head(x)
            outputs[TensorNames.CONTINUOUS_ACTION_OUTPUT] = torch.clamp(
                mu, -self.action_bound, self.action_bound
            )

        if self.logits_head is not None:
            logits = self.logits_head(x)
            branches = torch.split(logits, list(self.action_spec.branch_sizes), dim=-1)
            if self.discrete_output == "probabilities":
                outputs[TensorNames.DISCRETE_ACTION_PROBS_OUTPUT] = torch.cat(
                    [F.log_softmax(b, dim=-1) for b in branches], dim=-1
                )
            else:
                outputs[TensorNames.DISCRETE_ACTION_OUTPUT] = torch.stack(
                    [torch.argmax(b, dim=-1) for b in branches], dim=-1
                ).float()

        return outputs
