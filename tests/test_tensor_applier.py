"""
Test Suite for Tensor Applier Module
====================================

Tests for src/inference/tensor_applier.py

Author: MARL Inference Team
"""

import pytest
import numpy as np
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from actuators.action_spec import ActionSpec
from actuators.stores import ActionBufferStore, MemoryStore
from inference.appliers import OutputKind
from inference.errors import UnknownOutputError
from inference.tensor import TensorAllocator, TensorNames, TensorProxy
from inference.tensor_applier import TensorApplier


def make_applier(spec, memories_count=0, discrete_output="probabilities", memories=None):
    return TensorApplier(
        spec,
        seed=0,
        allocator=TensorAllocator(),
        memories=memories if memories is not None else MemoryStore(),
        memories_count=memories_count,
        discrete_output=discrete_output
    )


class TestRegistration:
    """Tests for the applier set built from the action spec."""

    def test_hybrid_probabilities_blocks(self):
        applier = make_applier(ActionSpec(2, (3, 2)), memories_count=2)

        assert applier.kinds() == {
            "continuous_actions": OutputKind.CONTINUOUS,
            "discrete_action_probs": OutputKind.DISCRETE_PROBS,
            "recurrent_out_0": OutputKind.MEMORY_BLOCK,
            "recurrent_out_1": OutputKind.MEMORY_BLOCK,
        }

    def test_sampled_single_block(self):
        applier = make_applier(ActionSpec(2, (3,)), discrete_output="sampled")

        assert applier.kinds() == {
            "continuous_actions": OutputKind.CONTINUOUS,
            "discrete_actions": OutputKind.DISCRETE,
            "recurrent_out": OutputKind.MEMORY,
        }

    def test_continuous_only(self):
        applier = make_applier(ActionSpec.make_continuous(3))

        assert TensorNames.DISCRETE_ACTION_PROBS_OUTPUT not in applier.output_names
        assert TensorNames.DISCRETE_ACTION_OUTPUT not in applier.output_names

    def test_discrete_only(self):
        applier = make_applier(ActionSpec.make_discrete(4))

        assert TensorNames.CONTINUOUS_ACTION_OUTPUT not in applier.output_names

    def test_invalid_discrete_output(self):
        with pytest.raises(ValueError):
            make_applier(ActionSpec(1, (2,)), discrete_output="argmax")


class TestApplyTensors:
    """Tests for dispatch."""

    def test_dispatch_all_outputs(self):
        """Test every named output reaches its store."""
        spec = ActionSpec(2, (2, 3))
        memories = MemoryStore()
        applier = make_applier(spec, memories_count=2, memories=memories)
        store = ActionBufferStore(spec)
        store.register(10)
        store.register(20)

        outputs = [
            TensorProxy("continuous_actions", data=np.array([[0.1, 0.2], [0.3, 0.4]], dtype=np.float32)),
            TensorProxy("discrete_action_probs", data=np.array([
                [100.0, -100.0, -100.0, 100.0, -100.0],
                [-100.0, 100.0, -100.0, -100.0, 100.0],
            ], dtype=np.float32)),
            TensorProxy("recurrent_out_0", data=np.array([[1.0], [2.0]], dtype=np.float32)),
            TensorProxy("recurrent_out_1", data=np.array([[3.0], [4.0]], dtype=np.float32)),
        ]

        applier.apply_tensors(outputs, [10, 20], store)

        assert np.allclose(store[10].continuous_actions, [0.1, 0.2])
        assert store[10].discrete_actions.tolist() == [0, 1]
        assert store[20].discrete_actions.tolist() == [1, 2]
        assert memories[10].tolist() == [1, 3]
        assert memories[20].tolist() == [2, 4]

    def test_mapping_accepted(self):
        spec = ActionSpec.make_continuous(1)
        applier = make_applier(spec)
        store = ActionBufferStore(spec)
        store.register(1)

        applier.apply_tensors(
            {"continuous_actions": TensorProxy("continuous_actions", data=np.array([[0.5]]))},
            [1],
            store
        )

        assert np.allclose(store[1].continuous_actions, [0.5])

    def test_unknown_output(self):
        """Test an unregistered name raises."""
        applier = make_applier(ActionSpec.make_continuous(1))

        with pytest.raises(UnknownOutputError) as excinfo:
            applier.apply_tensors(
                [TensorProxy("value_estimate", data=np.zeros((1, 1)))],
                [1],
                ActionBufferStore(ActionSpec.make_continuous(1))
            )

        assert "value_estimate" in str(excinfo.value)
        assert isinstance(excinfo.value, LookupError)
