"""
Tensor Applier Module
=====================

Routes every named output of a forward pass to the applier registered for
that name. The applier set is built once from the action spec and the
memory layout:

    continuous_actions     -> ContinuousActionOutputApplier     (if continuous > 0)
    discrete_action_probs  -> DiscreteActionProbsOutputApplier  (branches, "probabilities")
    discrete_actions       -> DiscreteActionOutputApplier       (branches, "sampled")
    recurrent_out          -> MemoryOutputApplier               (memories_count == 0)
    recurrent_out_{i}      -> MultiBlockMemoryOutputApplier     (memories_count > 0)

Author: MARL Inference Team
"""

from typing import Dict, Hashable, Iterable, Mapping, Sequence

from actuators.action_spec import ActionSpec
from actuators.stores import ActionBufferStore, MemoryStore

from .appliers import (
    ContinuousActionOutputApplier,
    DiscreteActionOutputApplier,
    DiscreteActionProbsOutputApplier,
    MemoryOutputApplier,
    MultiBlockMemoryOutputApplier,
    OutputKind,
)
from .errors import UnknownOutputError
from .tensor import TensorAllocator, TensorNames, TensorProxy

DISCRETE_OUTPUT_MODES = ("probabilities", "sampled")


class TensorApplier:
    """
    Dispatches output tensors to their appliers.

    Attributes:
        action_spec: Action space the appliers write
        memories: Shared memory store
        discrete_output: "probabilities" (sample from logits) or "sampled"

    Example:
        >>> applier = TensorApplier(spec, seed=0, allocator=TensorAllocator(),
        ...                         memories=MemoryStore(), memories_count=2)
        >>> applier.apply_tensors(outputs, agent_ids, action_store)
    """

    def __init__(
        self,
        action_spec: ActionSpec,
        seed: int,
        allocator: TensorAllocator,
        memories: MemoryStore,
        memories_count: int = 0,
        discrete_output: str = "probabilities"
    ):
        if discrete_output not in DISCRETE_OUTPUT_MODES:
            raise ValueError(
                f"discrete_output must be one of {DISCRETE_OUTPUT_MODES}, got {discrete_output!r}"
            )

        self.action_spec = action_spec
        self.memories = memories
        self.memories_count = memories_count
        self.discrete_output = discrete_output
        self._dict: Dict[str, object] = {}

        if action_spec.num_continuous_actions > 0:
            self._dict[TensorNames.CONTINUOUS_ACTION_OUTPUT] = \
                ContinuousActionOutputApplier(action_spec)

        if action_spec.num_discrete_actions > 0:
            if discrete_output == "probabilities":
                self._dict[TensorNames.DISCRETE_ACTION_PROBS_OUTPUT] = \
                    DiscreteActionProbsOutputApplier(action_spec, seed, allocator)
            else:
                self._dict[TensorNames.DISCRETE_ACTION_OUTPUT] = \
                    DiscreteActionOutputApplier(action_spec)

        if memories_count > 0:
            for index in range(memories_count):
                self._dict[TensorNames.recurrent_output_block(index)] = \
                    MultiBlockMemoryOutputApplier(memories_count, index, memories)
        else:
            self._dict[TensorNames.RECURRENT_OUTPUT] = MemoryOutputApplier(memories)

    @property
    def output_names(self) -> Sequence[str]:
        return list(self._dict)

    def kinds(self) -> Dict[str, OutputKind]:
        """Registered output name -> kind."""
        return {name: applier.kind for name, applier in self._dict.items()}

    def apply_tensors(
        self,
        tensors: Iterable[TensorProxy],
        agent_ids: Sequence[Hashable],
        last_actions: ActionBufferStore
    ):
        """
        Apply every output tensor of one forward pass.

        Args:
            tensors: Output tensors (a mapping of name -> tensor also works)
            agent_ids: Batch order, row i belongs to agent_ids[i]
            last_actions: Action store to update

        Raises:
            UnknownOutputError: A tensor name has no applier
        """
        if isinstance(tensors, Mapping):
            tensors = tensors.values()
        agent_ids = list(agent_ids)

        for tensor in tensors:
            if tensor.name not in self._dict:
                raise UnknownOutputError(f"No applier registered for output tensor: {tensor.name}")
            self._dict[tensor.name].apply(tensor, agent_ids, last_actions)
