"""
Inference Configuration Module
==============================

Centralized configuration for the policy network and the output decoder.

Author: MARL Inference Team
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any
import json
from pathlib import Path

from actuators.action_spec import ActionSpec


@dataclass
class NetworkConfig:
    """Reference policy network configuration."""

    obs_dim: int = 8                # Observation dimensionality
    hidden_dim: int = 128           # Trunk hidden size
    memory_size: int = 32           # Floats per recurrent block
    memories_count: int = 2         # Stacked recurrent blocks (0 = single-block layout)
    action_bound: float = 1.0       # Continuous actions clamped to [-bound, bound]


@dataclass
class DecoderConfig:
    """Output decoder configuration."""

    # Action space
    num_continuous_actions: int = 2
    branch_sizes: List[int] = field(default_factory=lambda: [3, 2])

    # "probabilities": network emits concatenated branch logits, decoder samples
    # "sampled": network emits chosen actions directly
    discrete_output: str = "probabilities"

    # Reproducibility
    seed: int = 42


@dataclass
class InferenceConfig:
    """Complete inference configuration."""

    network: NetworkConfig = field(default_factory=NetworkConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)

    # Logging
    log_interval: int = 10          # Print stats every N decisions (0 = never)
    experiment_name: str = "marl_inference"
    output_dir: str = "outputs"

    # Device
    device: str = "cpu"

    def action_spec(self) -> ActionSpec:
        """Build the ActionSpec described by the decoder section."""
        return ActionSpec(
            num_continuous_actions=self.decoder.num_continuous_actions,
            branch_sizes=tuple(self.decoder.branch_sizes)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "network": {
                "obs_dim": self.network.obs_dim,
                "hidden_dim": self.network.hidden_dim,
                "memory_size": self.network.memory_size,
                "memories_count": self.network.memories_count,
                "action_bound": self.network.action_bound
            },
            "decoder": {
                "num_continuous_actions": self.decoder.num_continuous_actions,
                "branch_sizes": list(self.decoder.branch_sizes),
                "discrete_output": self.decoder.discrete_output,
                "seed": self.decoder.seed
            },
            "log_interval": self.log_interval,
            "experiment_name": self.experiment_name,
            "output_dir": self.output_dir,
            "device": self.device
        }

    def save(self, path: str):
        """Save configuration to JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "InferenceConfig":
        """Load configuration from JSON. Unknown keys are ignored."""
        with open(path, "r") as f:
            data = json.load(f)

        config = cls()

        if "network" in data:
            for k, v in data["network"].items():
                if hasattr(config.network, k):
                    setattr(config.network, k, v)

        if "decoder" in data:
            for k, v in data["decoder"].items():
                if hasattr(config.decoder, k):
                    setattr(config.decoder, k, v)

        for k in ["log_interval", "experiment_name", "output_dir", "device"]:
            if k in data:
                setattr(config, k, data[k])

        return config


# =============================================================================
# PRESETS
# =============================================================================

def get_debug_config() -> InferenceConfig:
    """Tiny network, verbose logging."""
    config = InferenceConfig()
    config.network.obs_dim = 4
    config.network.hidden_dim = 16
    config.network.memory_size = 4
    config.network.memories_count = 2
    config.log_interval = 1
    config.experiment_name = "debug"
    return config


def get_continuous_config() -> InferenceConfig:
    """Continuous-only control, single-block memory."""
    config = InferenceConfig()
    config.decoder.num_continuous_actions = 2
    config.decoder.branch_sizes = []
    config.network.memories_count = 0
    return config


def get_discrete_config() -> InferenceConfig:
    """Discrete-only control with sampled branches."""
    config = InferenceConfig()
    config.decoder.num_continuous_actions = 0
    config.decoder.branch_sizes = [4, 3, 2]
    config.decoder.discrete_output = "probabilities"
    return config


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_config() -> dict:
    """Verify configuration module."""
    results = {}

    # Test 1: Default creation
    config = InferenceConfig()
    spec = config.action_spec()
    results["test_default_creation"] = {
        "continuous": spec.num_continuous_actions,
        "branches": spec.branch_sizes,
        "pass": spec.num_continuous_actions == 2 and spec.branch_sizes == (3, 2)
    }

    # Test 2: To dict
    d = config.to_dict()
    results["test_to_dict"] = {
        "has_network": "network" in d,
        "has_decoder": "decoder" in d,
        "pass": "network" in d and "decoder" in d
    }

    # Test 3: Save and load
    import tempfile
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.json"
        config.decoder.seed = 123
        config.save(path)
        loaded = InferenceConfig.load(path)
        results["test_save_load"] = {
            "seed_match": loaded.decoder.seed == 123,
            "branches_match": loaded.decoder.branch_sizes == config.decoder.branch_sizes,
            "pass": loaded.decoder.seed == 123
            and loaded.decoder.branch_sizes == config.decoder.branch_sizes
        }

    # Test 4: Presets
    results["test_presets"] = {
        "continuous_branches": get_continuous_config().action_spec().num_discrete_actions,
        "discrete_continuous": get_discrete_config().action_spec().num_continuous_actions,
        "pass": get_continuous_config().action_spec().num_discrete_actions == 0
        and get_discrete_config().action_spec().num_continuous_actions == 0
    }

    return results


if __name__ == "__main__":
    print("=" * 60)
    print("Inference Config Verification")
    print("=" * 60)

    results = verify_config()

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
