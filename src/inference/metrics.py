"""
Decode Metrics Module
=====================

Logging and metrics tracking for inference steps.

Features:
    - Rolling statistics
    - CSV logging (one row per decision)
    - JSON history and final stats

Author: MARL Inference Team
"""

import csv
import json
import time
from pathlib import Path
from typing import Dict, List, Optional
from collections import deque
from dataclasses import dataclass, field
import numpy as np


@dataclass
class RollingStats:
    """Rolling statistics tracker."""

    window_size: int = 100
    _values: deque = field(default_factory=lambda: deque(maxlen=100))

    def __post_init__(self):
        self._values = deque(maxlen=self.window_size)

    def add(self, value: float):
        """Add a value."""
        self._values.append(value)

    @property
    def mean(self) -> float:
        if len(self._values) == 0:
            return 0.0
        return float(np.mean(self._values))

    @property
    def std(self) -> float:
        if len(self._values) < 2:
            return 0.0
        return float(np.std(self._values))

    @property
    def min(self) -> float:
        if len(self._values) == 0:
            return 0.0
        return float(np.min(self._values))

    @property
    def max(self) -> float:
        if len(self._values) == 0:
            return 0.0
        return float(np.max(self._values))

    def __len__(self) -> int:
        return len(self._values)


class DecodeMetricsLogger:
    """
    Metrics logging for the decision loop.

    Tracks:
        - Batch sizes
        - Decode latency (forward pass + output application)
        - Memory resets (buffers created or grown)
        - Registered agents receiving actions

    Example:
        >>> logger = DecodeMetricsLogger("outputs", "run1")
        >>> logger.log_decision(batch_size=8, latency_ms=1.2, memory_resets=8, acted=8)
        >>> logger.save()
        >>> logger.close()
    """

    def __init__(
        self,
        output_dir: str,
        experiment_name: str = "experiment",
        window_size: int = 100
    ):
        """
        Initialize logger.

        Args:
            output_dir: Directory for log files
            experiment_name: Name of experiment
            window_size: Size of rolling statistics window
        """
        self.output_dir = Path(output_dir) / experiment_name
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.experiment_name = experiment_name
        self.window_size = window_size

        self.batch_sizes = RollingStats(window_size)
        self.latencies_ms = RollingStats(window_size)
        self.memory_resets = RollingStats(window_size)
        self.acted = RollingStats(window_size)

        self.history: Dict[str, List[float]] = {
            "decision": [],
            "batch_size": [],
            "latency_ms": [],
            "memory_resets": [],
            "acted": [],
            "time_elapsed": []
        }

        self.total_decisions = 0
        self.total_agent_steps = 0
        self.start_time = time.time()

        self._csv_file = None
        self._csv_writer = None
        self._init_csv()

    def _init_csv(self):
        """Initialize CSV logging."""
        csv_path = self.output_dir / "decode_log.csv"
        self._csv_file = open(csv_path, "w", newline="")
        self._csv_writer = csv.DictWriter(
            self._csv_file,
            fieldnames=list(self.history.keys())
        )
        self._csv_writer.writeheader()

    def log_decision(
        self,
        batch_size: int,
        latency_ms: float,
        memory_resets: int = 0,
        acted: Optional[int] = None
    ):
        """
        Log one decode step.

        Args:
            batch_size: Rows in the forward pass
            latency_ms: Wall time for forward pass + output application
            memory_resets: Memory buffers created or reset this step
            acted: Registered agents that received actions (defaults to batch_size)
        """
        acted = batch_size if acted is None else acted

        self.batch_sizes.add(batch_size)
        self.latencies_ms.add(latency_ms)
        self.memory_resets.add(memory_resets)
        self.acted.add(acted)

        self.total_decisions += 1
        self.total_agent_steps += batch_size

        record = {
            "decision": self.total_decisions,
            "batch_size": batch_size,
            "latency_ms": latency_ms,
            "memory_resets": memory_resets,
            "acted": acted,
            "time_elapsed": time.time() - self.start_time
        }

        for key, value in record.items():
            self.history[key].append(value)

        if self._csv_writer:
            self._csv_writer.writerow(record)
            self._csv_file.flush()

    def get_stats(self) -> Dict[str, float]:
        """Get current rolling statistics."""
        return {
            "batch_size_mean": self.batch_sizes.mean,
            "latency_ms_mean": self.latencies_ms.mean,
            "latency_ms_std": self.latencies_ms.std,
            "latency_ms_max": self.latencies_ms.max,
            "memory_resets_mean": self.memory_resets.mean,
            "acted_mean": self.acted.mean,
            "total_decisions": self.total_decisions,
            "total_agent_steps": self.total_agent_steps,
            "time_elapsed": time.time() - self.start_time
        }

    def print_stats(self, prefix: str = ""):
        """Print current statistics."""
        stats = self.get_stats()
        sps = self.total_agent_steps / max(stats["time_elapsed"], 1e-6)

        print(f"{prefix}Decisions: {self.total_decisions:,} | "
              f"Batch: {stats['batch_size_mean']:.1f} | "
              f"Latency: {stats['latency_ms_mean']:.2f}+/-{stats['latency_ms_std']:.2f} ms | "
              f"Resets: {stats['memory_resets_mean']:.1f} | "
              f"Agent-steps/s: {sps:.0f}")

    def save(self):
        """Save history and final stats."""
        with open(self.output_dir / "history.json", "w") as f:
            json.dump(self.history, f, indent=2)

        with open(self.output_dir / "final_stats.json", "w") as f:
            json.dump(self.get_stats(), f, indent=2)

    def close(self):
        """Close file handles."""
        if self._csv_file:
            self._csv_file.close()
            self._csv_file = None

    def __del__(self):
        self.close()


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_metrics_logger() -> dict:
    """Verify metrics logger."""
    import tempfile
    results = {}

    with tempfile.TemporaryDirectory() as tmpdir:
        # Test 1: Creation
        logger = DecodeMetricsLogger(tmpdir, "test_exp")
        results["test_creation"] = {
            "output_dir_exists": logger.output_dir.exists(),
            "pass": logger.output_dir.exists()
        }

        # Test 2: Log decisions
        for i in range(10):
            logger.log_decision(batch_size=4, latency_ms=float(i), memory_resets=4 if i == 0 else 0)

        results["test_log_decisions"] = {
            "total_decisions": logger.total_decisions,
            "total_agent_steps": logger.total_agent_steps,
            "latency_mean": logger.latencies_ms.mean,
            "pass": logger.total_decisions == 10 and logger.total_agent_steps == 40
        }

        # Test 3: Save
        logger.save()
        history_path = logger.output_dir / "history.json"
        results["test_save"] = {
            "history_exists": history_path.exists(),
            "pass": history_path.exists()
        }

        logger.close()

    # Test 4: Rolling stats
    stats = RollingStats(window_size=5)
    for i in range(10):
        stats.add(float(i))

    results["test_rolling_stats"] = {
        "length": len(stats),
        "mean": stats.mean,  # Should be mean of [5,6,7,8,9] = 7.0
        "pass": len(stats) == 5 and abs(stats.mean - 7.0) < 0.01
    }

    return results


if __name__ == "__main__":
    print("=" * 60)
    print("Decode Metrics Logger Verification")
    print("=" * 60)

    results = verify_metrics_logger()

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
