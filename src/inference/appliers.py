"""
Output Appliers Module
======================

Each applier consumes one named output tensor of a forward pass and writes
it into per-agent state. Row i of the tensor always belongs to agent_ids[i].

Variants:
    - ContinuousActionOutputApplier: copies continuous actions
    - DiscreteActionOutputApplier: copies already-chosen discrete actions
    - DiscreteActionProbsOutputApplier: samples one action per branch from
      concatenated branch logits
    - MemoryOutputApplier: sizes single-block recurrent memory
    - MultiBlockMemoryOutputApplier: writes one block of stacked memory

Only DiscreteActionProbsOutputApplier validates its input. The others trust
the caller's shape and ordering contract.

Author: MARL Inference Team
"""

from enum import Enum
from typing import Hashable, Iterable, Sequence

import numpy as np

from actuators.action_spec import ActionSpec
from actuators.stores import ActionBufferStore, MemoryStore

from .multinomial import Multinomial, eval_multinomial
from .tensor import TensorAllocator, TensorProxy, TensorType, cum_sum


class OutputKind(Enum):
    """Closed set of output tensor kinds the dispatcher knows about."""
    CONTINUOUS = "continuous"
    DISCRETE = "discrete"
    DISCRETE_PROBS = "discrete_probs"
    MEMORY = "memory"
    MEMORY_BLOCK = "memory_block"


class ContinuousActionOutputApplier:
    """Copies each row of a (batch, num_continuous) tensor to its agent."""

    kind = OutputKind.CONTINUOUS

    def __init__(self, action_spec: ActionSpec):
        self.action_spec = action_spec

    def apply(
        self,
        tensor: TensorProxy,
        agent_ids: Iterable[Hashable],
        last_actions: ActionBufferStore
    ):
        action_size = tensor.shape[-1]
        for agent_index, agent_id in enumerate(agent_ids):
            if agent_id not in last_actions:
                continue
            buffers = last_actions.ensure_allocated(agent_id, self.action_spec)
            buffers.continuous_actions[:action_size] = tensor.data[agent_index, :action_size]


class DiscreteActionOutputApplier:
    """
    Copies chosen discrete actions, one column per branch.

    Values are truncated toward zero, so 2.9 becomes 2 and -1.5 becomes -1.
    """

    kind = OutputKind.DISCRETE

    def __init__(self, action_spec: ActionSpec):
        self.action_spec = action_spec

    def apply(
        self,
        tensor: TensorProxy,
        agent_ids: Iterable[Hashable],
        last_actions: ActionBufferStore
    ):
        action_size = tensor.shape[-1]
        for agent_index, agent_id in enumerate(agent_ids):
            if agent_id not in last_actions:
                continue
            buffers = last_actions.ensure_allocated(agent_id, self.action_spec)
            row = np.trunc(tensor.data[agent_index, :action_size])
            buffers.discrete_actions[:action_size] = row.astype(np.int32)


class DiscreteActionProbsOutputApplier:
    """
    Samples discrete actions from concatenated per-branch logits.

    The tensor row layout is [branch_0 logits | branch_1 logits | ...] with
    widths taken from the ActionSpec. Every branch is split into its own
    scratch tensor, sampled with a shared seeded Multinomial, and the
    resulting (batch, num_branches) matrix is written to registered agents.

    Scratch tensors come from the allocator and are released before the next
    branch, also when sampling raises.

    Example:
        >>> spec = ActionSpec.make_discrete(2, 3)
        >>> applier = DiscreteActionProbsOutputApplier(spec, seed=0, allocator=TensorAllocator())
        >>> applier.apply(logits_tensor, agent_ids, store)
    """

    kind = OutputKind.DISCRETE_PROBS

    def __init__(self, action_spec: ActionSpec, seed: int, allocator: TensorAllocator):
        self.action_spec = action_spec
        self.branch_sizes: Sequence[int] = action_spec.branch_sizes
        self.start_action_indices = cum_sum(self.branch_sizes)
        self.multinomial = Multinomial(seed)
        self.allocator = allocator

    def split_branch(
        self,
        tensor: TensorProxy,
        branch: int,
        out: np.ndarray
    ) -> TensorProxy:
        """
        Copy one branch's logits out of the flat tensor.

        Args:
            tensor: Flat logits, shape (batch, sum(branch_sizes))
            branch: Branch index
            out: Scratch array of shape (batch, branch_sizes[branch])

        Returns:
            Proxy over `out`, or a proxy without data if `tensor` has none
        """
        size = self.branch_sizes[branch]
        if tensor.data is None:
            return TensorProxy(f"{tensor.name}_branch_{branch}", tensor.value_type,
                               (out.shape[0], size), None)

        start = int(self.start_action_indices[branch])
        out[:] = tensor.data[:, start:start + size]
        return TensorProxy(f"{tensor.name}_branch_{branch}", tensor.value_type, out.shape, out)

    def apply(
        self,
        tensor: TensorProxy,
        agent_ids: Iterable[Hashable],
        last_actions: ActionBufferStore
    ):
        agent_ids = list(agent_ids)
        batch_size = len(agent_ids)
        source_batch = tensor.data.shape[0] if tensor.data is not None else batch_size

        action_values = np.zeros((batch_size, len(self.branch_sizes)), dtype=np.int32)

        for branch, branch_size in enumerate(self.branch_sizes):
            with self.allocator.scoped((source_batch, branch_size)) as logits, \
                    self.allocator.scoped((batch_size, 1)) as sampled:
                action_probs = self.split_branch(tensor, branch, logits)
                output = TensorProxy(
                    f"{tensor.name}_sampled_{branch}",
                    TensorType.FLOATING_POINT,
                    (batch_size, 1),
                    sampled
                )

                eval_multinomial(action_probs, output, self.multinomial)

                action_values[:, branch] = sampled[:, 0].astype(np.int32)

        for agent_index, agent_id in enumerate(agent_ids):
            if agent_id not in last_actions:
                continue
            buffers = last_actions.ensure_allocated(agent_id, self.action_spec)
            buffers.discrete_actions[:len(self.branch_sizes)] = action_values[agent_index]


class MemoryOutputApplier:
    """
    Single-block memory: only guarantees every agent in the batch has a
    buffer of at least the tensor's trailing size. Values are not copied.
    """

    kind = OutputKind.MEMORY

    def __init__(self, memories: MemoryStore):
        self.memories = memories

    def apply(
        self,
        tensor: TensorProxy,
        agent_ids: Iterable[Hashable],
        last_actions: ActionBufferStore = None
    ):
        memory_size = tensor.shape[-1]
        for agent_id in agent_ids:
            self.memories.ensure_capacity(agent_id, memory_size)


class MultiBlockMemoryOutputApplier:
    """
    One block of stacked recurrent memory.

    Each agent owns a flat buffer of memory_size * memories_count floats.
    This applier writes block `memory_index` only:
        memory[memory_index * memory_size : (memory_index + 1) * memory_size]

    An undersized buffer is replaced by zeros first, which also clears the
    other blocks.
    """

    kind = OutputKind.MEMORY_BLOCK

    def __init__(self, memories_count: int, memory_index: int, memories: MemoryStore):
        self.memories_count = memories_count
        self.memory_index = memory_index
        self.memories = memories

    def apply(
        self,
        tensor: TensorProxy,
        agent_ids: Iterable[Hashable],
        last_actions: ActionBufferStore = None
    ):
        memory_size = tensor.shape[-1]
        start = memory_size * self.memory_index

        for agent_index, agent_id in enumerate(agent_ids):
            memory, _ = self.memories.ensure_capacity(agent_id, memory_size * self.memories_count)
            memory[start:start + memory_size] = tensor.data[agent_index, :memory_size]


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_appliers() -> dict:
    """Run verification tests."""
    results = {}

    # Test 1: Continuous copy, unregistered agents skipped
    spec = ActionSpec(num_continuous_actions=2, branch_sizes=(2, 3))
    store = ActionBufferStore(spec)
    store.register(10)
    store.register(30)
    tensor = TensorProxy("continuous_actions", data=np.array(
        [[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]], dtype=np.float32))
    ContinuousActionOutputApplier(spec).apply(tensor, [10, 20, 30], store)
    results["test_continuous"] = {
        "agent_10": store[10].continuous_actions.tolist(),
        "agent_30": store[30].continuous_actions.tolist(),
        "agent_20_registered": 20 in store,
        "pass": np.allclose(store[10].continuous_actions, [0.1, 0.2])
        and np.allclose(store[30].continuous_actions, [0.5, 0.6])
        and 20 not in store
    }

    # Test 2: Direct discrete truncation
    tensor = TensorProxy("discrete_actions", data=np.array(
        [[1.9, 2.2], [0.0, -1.5], [1.0, 0.7]], dtype=np.float32))
    DiscreteActionOutputApplier(spec).apply(tensor, [10, 20, 30], store)
    results["test_discrete"] = {
        "agent_10": store[10].discrete_actions.tolist(),
        "pass": store[10].discrete_actions.tolist() == [1, 2]
        and store[30].discrete_actions.tolist() == [1, 0]
    }

    # Test 3: Sampling with dominant logits
    allocator = TensorAllocator()
    logits = np.array([
        [100.0, -100.0, -100.0, 100.0, -100.0],
        [-100.0, 100.0, -100.0, -100.0, 100.0],
    ], dtype=np.float32)
    applier = DiscreteActionProbsOutputApplier(spec, seed=0, allocator=allocator)
    applier.apply(TensorProxy("discrete_action_probs", data=logits), [10, 30], store)
    results["test_probs"] = {
        "agent_10": store[10].discrete_actions.tolist(),
        "agent_30": store[30].discrete_actions.tolist(),
        "live_buffers": allocator.live_count,
        "pass": store[10].discrete_actions.tolist() == [0, 1]
        and store[30].discrete_actions.tolist() == [1, 2]
        and allocator.live_count == 0
    }

    # Test 4: Memory block write
    memories = MemoryStore()
    block = TensorProxy("recurrent_out_1", data=np.ones((1, 4), dtype=np.float32))
    MultiBlockMemoryOutputApplier(2, 1, memories).apply(block, [10], store)
    results["test_memory_block"] = {
        "memory": memories[10].tolist(),
        "pass": memories[10].tolist() == [0, 0, 0, 0, 1, 1, 1, 1]
    }

    return results


if __name__ == "__main__":
    print("=" * 60)
    print("Output Appliers Verification")
    print("=" * 60)

    results = verify_appliers()

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
