"""
Runner Tests: Policy Network + Decision Loop
============================================

Tests for the reference policy, the model runner, configuration,
metrics logging and the deployment controller.

Test Categories:
    - RecurrentPolicy: Output names, shapes, per-branch normalization
    - ModelRunner: Decoding, memory carry-over, determinism
    - Configuration: Serialization, presets
    - Metrics Logger: Logging, CSV output
    - Deployment: PolicyController end to end

Author: MARL Inference Team
"""

import pytest
import numpy as np
import sys
import os
import json
import tempfile
from pathlib import Path

import torch

# Add src and repository root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from actuators.action_spec import ActionSpec
from agents.policy import RecurrentPolicy
from inference.config import InferenceConfig, get_debug_config, verify_config
from inference.errors import ShapeMismatchError
from inference.metrics import DecodeMetricsLogger, verify_metrics_logger
from inference.runner import ModelRunner


SPEC = ActionSpec(num_continuous_actions=2, branch_sizes=(3, 2))


def make_policy(memories_count=2, discrete_output="probabilities", seed=0, spec=SPEC):
    torch.manual_seed(seed)
    return RecurrentPolicy(
        obs_dim=6,
        hidden_dim=16,
        action_spec=spec,
        memory_size=4,
        memories_count=memories_count,
        discrete_output=discrete_output
    )


def make_runner(memories_count=2, discrete_output="probabilities", seed=0, metrics=None):
    return ModelRunner(
        make_policy(memories_count, discrete_output),
        SPEC,
        memory_size=4,
        memories_count=memories_count,
        seed=seed,
        discrete_output=discrete_output,
        metrics=metrics
    )


def observations(batch, seed=0):
    return np.random.RandomState(seed).randn(batch, 6).astype(np.float32)


# =============================================================================
# POLICY NETWORK TESTS
# =============================================================================

class TestRecurrentPolicy:
    """Test RecurrentPolicy outputs."""

    def test_probability_outputs(self):
        policy = make_policy()

        outputs = policy({"obs": torch.randn(3, 6)})

        assert set(outputs) == {
            "continuous_actions", "discrete_action_probs", "recurrent_out_0", "recurrent_out_1"
        }
        assert outputs["continuous_actions"].shape == (3, 2)
        assert outputs["discrete_action_probs"].shape == (3, 5)
        assert outputs["recurrent_out_1"].shape == (3, 4)

    def test_branch_log_probs_normalized(self):
        """Test each branch's log-probs exponentiate to 1."""
        policy = make_policy()

        logits = policy({"obs": torch.randn(5, 6)})["discrete_action_probs"]

        assert torch.allclose(logits[:, :3].exp().sum(dim=-1), torch.ones(5), atol=1e-5)
        assert torch.allclose(logits[:, 3:].exp().sum(dim=-1), torch.ones(5), atol=1e-5)

    def test_sampled_outputs(self):
        policy = make_policy(discrete_output="sampled")

        outputs = policy({"obs": torch.randn(3, 6)})

        assert "discrete_action_probs" not in outputs
        assert outputs["discrete_actions"].shape == (3, 2)
        assert torch.all(outputs["discrete_actions"][:, 0] < 3)

    def test_single_block_outputs(self):
        policy = make_policy(memories_count=0)

        outputs = policy({"obs": torch.randn(2, 6)})

        assert "recurrent_out" in outputs
        assert "recurrent_out_0" not in outputs

    def test_continuous_within_bound(self):
        policy = make_policy()

        outputs = policy({"obs": torch.randn(8, 6) * 100})

        assert torch.all(outputs["continuous_actions"].abs() <= 1.0)


# =============================================================================
# MODEL RUNNER TESTS
# =============================================================================

class TestModelRunner:
    """Test ModelRunner decision loop."""

    def test_only_registered_agents_returned(self):
        runner = make_runner()
        runner.register_agent(1)
        runner.register_agent(3)

        actions = runner.decide_batch([1, 2, 3], observations(3))

        assert set(actions) == {1, 3}
        assert 2 not in runner.action_store

    def test_actions_match_spec(self):
        runner = make_runner()
        ids = list(range(6))
        for agent_id in ids:
            runner.register_agent(agent_id)

        actions = runner.decide_batch(ids, observations(6))

        for buffers in actions.values():
            assert buffers.continuous_actions.shape == (2,)
            assert np.all(np.abs(buffers.continuous_actions) <= 1.0)
            assert 0 <= buffers.discrete_actions[0] < 3
            assert 0 <= buffers.discrete_actions[1] < 2

    def test_memory_kept_for_every_agent(self):
        """Test memory exists even for unregistered agents."""
        runner = make_runner()
        runner.register_agent(1)

        runner.decide_batch([1, 2], observations(2))

        assert len(runner.memories[1]) == 8
        assert len(runner.memories[2]) == 8

    def test_memory_matches_recurrent_outputs(self):
        """Test stored blocks equal the network's recurrent outputs."""
        runner = make_runner()
        ids = [4, 5]
        obs = observations(2)

        inputs = runner.build_inputs(ids, obs)
        with torch.no_grad():
            expected = runner.model(inputs)

        runner.decide_batch(ids, obs)

        for row, agent_id in enumerate(ids):
            assert np.allclose(runner.memories[agent_id][:4], expected["recurrent_out_0"][row].numpy())
            assert np.allclose(runner.memories[agent_id][4:], expected["recurrent_out_1"][row].numpy())

    def test_memory_fed_back(self):
        """Test the next decision reads the stored memory."""
        runner = make_runner()
        runner.decide_batch([1], observations(1))

        inputs = runner.build_inputs([1], observations(1))

        assert np.allclose(inputs["recurrent_in_1"][0].numpy(), runner.memories[1][4:])

    def test_single_block_memory_sized_not_copied(self):
        runner = make_runner(memories_count=0)

        runner.decide_batch([1], observations(1))

        assert runner.memories[1].tolist() == [0, 0, 0, 0]

    def test_sampled_discrete_mode(self):
        runner = make_runner(discrete_output="sampled")
        runner.register_agent(1)

        actions = runner.decide_batch([1], observations(1))

        assert 0 <= actions[1].discrete_actions[0] < 3

    def test_observation_batch_mismatch(self):
        runner = make_runner()

        with pytest.raises(ShapeMismatchError):
            runner.decide_batch([1, 2, 3], observations(2))

    def test_deterministic_rollout(self):
        """Test same weights and decoder seed reproduce the same actions."""
        runner_a, runner_b = make_runner(seed=21), make_runner(seed=21)
        ids = list(range(8))
        for agent_id in ids:
            runner_a.register_agent(agent_id)
            runner_b.register_agent(agent_id)

        for step in range(3):
            obs = observations(8, seed=step)
            actions_a = runner_a.decide_batch(ids, obs)
            actions_b = runner_b.decide_batch(ids, obs)
            for agent_id in ids:
                assert actions_a[agent_id] == actions_b[agent_id]

    def test_evict_agent(self):
        runner = make_runner()
        runner.register_agent(1)
        runner.decide_batch([1], observations(1))

        runner.evict_agent(1)

        assert 1 not in runner.action_store
        assert 1 not in runner.memories

    def test_scratch_released(self):
        runner = make_runner()

        runner.decide_batch([1, 2], observations(2))

        assert runner.allocator.live_count == 0

    def test_metrics_recorded(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            metrics = DecodeMetricsLogger(tmpdir, "runner")
            runner = make_runner(metrics=metrics)
            runner.register_agent(1)

            runner.decide_batch([1, 2], observations(2))
            runner.decide_batch([1, 2], observations(2, seed=1))

            assert metrics.total_decisions == 2
            assert metrics.history["memory_resets"] == [2, 0]
            assert metrics.history["acted"] == [1, 1]
            assert metrics.history["batch_size"] == [2, 2]

            metrics.close()

    def test_from_config(self):
        config = get_debug_config()
        config.network.obs_dim = 6
        model = RecurrentPolicy(
            obs_dim=6,
            hidden_dim=config.network.hidden_dim,
            action_spec=config.action_spec(),
            memory_size=config.network.memory_size,
            memories_count=config.network.memories_count
        )

        runner = ModelRunner.from_config(config, model)
        runner.register_agent(0)
        actions = runner.decide_batch([0], observations(1))

        assert runner.memories_count == config.network.memories_count
        assert actions[0].continuous_actions.shape == (2,)


# =============================================================================
# CONFIGURATION TESTS
# =============================================================================

class TestInferenceConfig:
    """Test InferenceConfig class."""

    def test_default_creation(self):
        config = InferenceConfig()

        assert config.decoder.branch_sizes == [3, 2]
        assert config.decoder.discrete_output == "probabilities"
        assert config.network.memories_count == 2

    def test_save_load(self):
        config = InferenceConfig()
        config.decoder.seed = 7
        config.network.memory_size = 16

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "nested" / "config.json"
            config.save(path)
            loaded = InferenceConfig.load(path)

        assert loaded.decoder.seed == 7
        assert loaded.network.memory_size == 16
        assert loaded.action_spec() == config.action_spec()

    def test_load_ignores_unknown_keys(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            with open(path, "w") as f:
                json.dump({"decoder": {"seed": 3, "bogus": 1}, "unused": True}, f)

            loaded = InferenceConfig.load(path)

        assert loaded.decoder.seed == 3
        assert not hasattr(loaded.decoder, "bogus")

    def test_config_verification(self):
        results = verify_config()

        for test_name, result in results.items():
            assert result.get("pass", False), f"{test_name} failed"


# =============================================================================
# METRICS TESTS
# =============================================================================

class TestDecodeMetricsLogger:
    """Test DecodeMetricsLogger class."""

    def test_csv_logging(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DecodeMetricsLogger(tmpdir, "test_exp")
            logger.log_decision(batch_size=4, latency_ms=1.0)
            logger.log_decision(batch_size=2, latency_ms=3.0)
            logger.close()

            csv_path = logger.output_dir / "decode_log.csv"
            with open(csv_path) as f:
                lines = f.read().strip().splitlines()

        assert len(lines) == 3
        assert lines[0].startswith("decision,batch_size")

    def test_stats(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DecodeMetricsLogger(tmpdir, "test_exp")
            logger.log_decision(batch_size=4, latency_ms=1.0)
            logger.log_decision(batch_size=2, latency_ms=3.0)

            stats = logger.get_stats()
            logger.close()

        assert stats["total_agent_steps"] == 6
        assert stats["latency_ms_mean"] == 2.0
        assert stats["acted_mean"] == 3.0

    def test_metrics_verification(self):
        results = verify_metrics_logger()

        for test_name, result in results.items():
            assert result.get("pass", False), f"{test_name} failed"


# =============================================================================
# DEPLOYMENT TESTS
# =============================================================================

class TestPolicyController:
    """Test deployment controller."""

    def test_init_and_load(self):
        from deploy import PolicyController, init_deployment

        with tempfile.TemporaryDirectory() as tmpdir:
            artifacts = init_deployment(tmpdir, seed=1)
            controller = PolicyController.load(artifacts["config"], artifacts["weights"])

        obs_dim = controller.config.network.obs_dim
        controller.register_agents([0, 1])
        actions = controller.get_actions([0, 1], np.zeros((2, obs_dim), dtype=np.float32))

        assert set(actions) == {0, 1}
        assert actions[0].discrete_actions.shape == (2,)

    def test_load_defaults(self):
        from deploy import PolicyController

        controller = PolicyController.load()

        assert controller.runner.memories_count == get_debug_config().network.memories_count


# =============================================================================
# GRAPH TESTS
# =============================================================================

class TestDecodeGraphs:
    """Test decode metrics graphs."""

    def test_generate_all(self):
        import matplotlib
        matplotlib.use("Agg")
        from generate_graphs import generate_graphs, rolling_moving_average

        with tempfile.TemporaryDirectory() as tmpdir:
            metrics = DecodeMetricsLogger(tmpdir, "graphs")
            runner = make_runner(metrics=metrics)
            runner.register_agent(0)
            for step in range(5):
                runner.decide_batch([0, 1], observations(2, seed=step))
            metrics.save()
            metrics.close()

            written = generate_graphs(metrics.output_dir, 'all', show=False)

            assert len(written) == 4
            assert all(path.exists() for path in written)

        assert np.allclose(rolling_moving_average([1.0, 3.0, 5.0], window=2), [1.0, 2.0, 4.0])

    def test_missing_history(self):
        import matplotlib
        matplotlib.use("Agg")
        from generate_graphs import generate_graphs

        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(FileNotFoundError):
                generate_graphs(Path(tmpdir))
