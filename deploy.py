#!/usr/bin/env python
"""
MARL Inference Deployment Module
================================

Minimal entry point for running the decision loop with a policy network.
Contains only inference code: load config + weights, decode actions.

Usage:
    # Write a default config and freshly initialized weights
    python deploy.py init --output outputs/deployment

    # Decode a few steps for synthetic observations
    python deploy.py run --config outputs/deployment/inference_config.json \
        --weights outputs/deployment/policy_state_dict.pt --agents 4 --steps 5

Author: MARL Inference Team
"""

import sys
from pathlib import Path
from typing import Dict, Hashable, Optional

import numpy as np
import torch

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from actuators.action_spec import ActionBuffers
from agents.policy import RecurrentPolicy
from inference.config import InferenceConfig, get_debug_config
from inference.metrics import DecodeMetricsLogger
from inference.runner import ModelRunner


def build_policy(config: InferenceConfig) -> RecurrentPolicy:
    """Policy network matching the config."""
    return RecurrentPolicy(
        obs_dim=config.network.obs_dim,
        hidden_dim=config.network.hidden_dim,
        action_spec=config.action_spec(),
        memory_size=config.network.memory_size,
        memories_count=config.network.memories_count,
        discrete_output=config.decoder.discrete_output,
        action_bound=config.network.action_bound
    )


class PolicyController:
    """
    High-level controller wrapping a ModelRunner for deployment.

    Example:
        >>> controller = PolicyController.load("inference_config.json", "policy_state_dict.pt")
        >>> controller.register_agents([0, 1, 2, 3])
        >>> actions = controller.get_actions([0, 1, 2, 3], observations)
        >>> for agent_id, buffers in actions.items():
        ...     drone[agent_id].apply(buffers.continuous_actions, buffers.discrete_actions)
    """

    def __init__(self, runner: ModelRunner, config: InferenceConfig):
        self.runner = runner
        self.config = config

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        weights_path: Optional[str] = None,
        metrics: Optional[DecodeMetricsLogger] = None
    ) -> "PolicyController":
        """
        Load controller from a config JSON and optional weights.

        Args:
            config_path: Path to inference_config.json (debug preset if None)
            weights_path: Path to policy_state_dict.pt (random init if None)
            metrics: Optional metrics logger attached to the runner

        Returns:
            Loaded PolicyController ready for inference
        """
        config = InferenceConfig.load(config_path) if config_path else get_debug_config()

        model = build_policy(config)
        if weights_path:
            state_dict = torch.load(weights_path, map_location=config.device, weights_only=True)
            model.load_state_dict(state_dict)

        return cls(ModelRunner.from_config(config, model, metrics=metrics), config)

    def register_agents(self, agent_ids):
        for agent_id in agent_ids:
            self.runner.register_agent(agent_id)

    def get_actions(self, agent_ids, observations: np.ndarray) -> Dict[Hashable, ActionBuffers]:
        """Decode one step for the batch."""
        return self.runner.decide_batch(agent_ids, observations)


def init_deployment(output_dir: str = "outputs/deployment", seed: int = 42) -> Dict[str, str]:
    """
    Write a default config and an untrained policy's weights.

    Returns:
        Dict mapping artifact names to their paths
    """
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    torch.manual_seed(seed)
    config = get_debug_config()
    config.decoder.seed = seed

    config_path = out_dir / "inference_config.json"
    config.save(config_path)
    print(f"[+] Wrote config: {config_path}")

    weights_path = out_dir / "policy_state_dict.pt"
    torch.save(build_policy(config).state_dict(), weights_path)
    print(f"[+] Wrote weights: {weights_path}")

    return {"config": str(config_path), "weights": str(weights_path)}


# =============================================================================
# COMMAND LINE INTERFACE
# =============================================================================

def main():
    """CLI for deployment utilities."""
    import argparse

    parser = argparse.ArgumentParser(
        description="MARL Inference Deployment Utilities"
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    init_parser = subparsers.add_parser('init', help='Write default config and weights')
    init_parser.add_argument('--output', '-o', default='outputs/deployment',
                             help='Output directory for artifacts')
    init_parser.add_argument('--seed', type=int, default=42, help='Random seed')

    run_parser = subparsers.add_parser('run', help='Decode actions for synthetic observations')
    run_parser.add_argument('--config', '-c', default=None, help='Path to inference config')
    run_parser.add_argument('--weights', '-w', default=None, help='Path to policy weights')
    run_parser.add_argument('--agents', '-n', type=int, default=4, help='Agents per batch')
    run_parser.add_argument('--steps', '-s', type=int, default=5, help='Decision steps')
    run_parser.add_argument('--seed', type=int, default=0, help='Observation seed')
    run_parser.add_argument('--output-dir', default=None,
                            help='Write decode metrics under this directory')

    args = parser.parse_args()

    if args.command == 'init':
        init_deployment(args.output, args.seed)

    elif args.command == 'run':
        metrics = None
        if args.output_dir:
            metrics = DecodeMetricsLogger(args.output_dir, "deploy_run")

        controller = PolicyController.load(args.config, args.weights, metrics=metrics)
        agent_ids = list(range(args.agents))
        controller.register_agents(agent_ids)

        rng = np.random.RandomState(args.seed)
        obs_dim = controller.config.network.obs_dim
        for step in range(args.steps):
            obs = rng.randn(args.agents, obs_dim).astype(np.float32)
            actions = controller.get_actions(agent_ids, obs)
            print(f"\nStep {step}:")
            for agent_id, buffers in actions.items():
                print(f"  agent {agent_id}: {buffers}")

            log_interval = controller.config.log_interval
            if metrics is not None and log_interval > 0 and (step + 1) % log_interval == 0:
                metrics.print_stats(prefix=f"[Step {step + 1}] ")

        if metrics is not None:
            metrics.print_stats(prefix="[INFO] ")
            metrics.save()
            metrics.close()

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
