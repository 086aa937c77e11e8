#!/usr/bin/env python
"""
MARL Inference - Decode Metrics Graph Generator
===============================================

Plots the per-decision history written by DecodeMetricsLogger.

Graphs Generated:
1. Decode Latency vs Decisions - raw latency with rolling average
2. Batch Size vs Acting Agents - forward-pass rows against registered agents
3. Memory Resets vs Decisions - buffers created or grown per step
4. Dashboard - all three panels plus a latency histogram

Usage:
    python generate_graphs.py                              # Use latest experiment
    python generate_graphs.py --experiment deploy_run
    python generate_graphs.py --graph latency --no-show

Author: MARL Inference Team
"""

import argparse
import json
import sys
from pathlib import Path
import numpy as np

import matplotlib.pyplot as plt

plt.rcParams['figure.facecolor'] = 'white'
plt.rcParams['axes.facecolor'] = 'white'
plt.rcParams['savefig.facecolor'] = 'white'
plt.rcParams['font.size'] = 12


# ==============================================================================
# UTILITY FUNCTIONS
# ==============================================================================

def rolling_moving_average(data, window=20):
    """
    Rolling moving average with the same length as the input.

    The first window-1 points average over what is available so far.
    """
    data = np.asarray(data, dtype=np.float64)
    if len(data) == 0:
        return data

    cumsum = np.cumsum(data)
    averaged = np.empty_like(data)
    for i in range(len(data)):
        lo = max(0, i - window + 1)
        total = cumsum[i] - (cumsum[lo - 1] if lo > 0 else 0.0)
        averaged[i] = total / (i - lo + 1)
    return averaged


def load_experiment(experiment_dir: Path) -> dict:
    """Load decode history and final stats from directory."""
    data = {}

    history_path = experiment_dir / "history.json"
    if history_path.exists():
        with open(history_path) as f:
            data['history'] = json.load(f)

    stats_path = experiment_dir / "final_stats.json"
    if stats_path.exists():
        with open(stats_path) as f:
            data['final_stats'] = json.load(f)

    return data


def find_latest_experiment(output_dir: Path) -> Path:
    """Find most recent experiment with history.json."""
    experiments = [d for d in output_dir.iterdir()
                   if d.is_dir() and (d / "history.json").exists()]
    if not experiments:
        raise FileNotFoundError("No experiments found!")
    experiments.sort(key=lambda x: x.stat().st_mtime, reverse=True)
    return experiments[0]


def _finish(save_path: Path, show: bool):
    if save_path:
        plt.savefig(save_path, dpi=200, bbox_inches='tight')
        print(f"[SAVED] {save_path}")

    if show:
        plt.show()
    else:
        plt.close()


# ==============================================================================
# GRAPH 1: DECODE LATENCY
# ==============================================================================

def plot_latency(data: dict, save_path: Path = None, show: bool = True):
    """Decode latency per decision with rolling average."""
    history = data.get('history', {})
    decisions = np.array(history.get('decision', []))
    latency = np.array(history.get('latency_ms', []))

    if len(decisions) == 0:
        print("ERROR: No history data!")
        return

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(decisions, latency, 'b-', alpha=0.25, label='Per decision')
    ax.plot(decisions, rolling_moving_average(latency), 'royalblue', linewidth=2.5,
            label='Rolling average')
    ax.set_xlabel('Decision')
    ax.set_ylabel('Latency (ms)')
    ax.set_title('Decode Latency', fontweight='bold')
    ax.legend(loc='upper right')
    ax.grid(True, alpha=0.4)

    plt.tight_layout()
    _finish(save_path, show)


# ==============================================================================
# GRAPH 2: BATCH SIZE vs ACTING AGENTS
# ==============================================================================

def plot_batch_vs_acted(data: dict, save_path: Path = None, show: bool = True):
    """Forward-pass batch size against agents that received actions."""
    history = data.get('history', {})
    decisions = np.array(history.get('decision', []))

    if len(decisions) == 0:
        print("ERROR: No history data!")
        return

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.step(decisions, history.get('batch_size', []), 'g-', where='mid',
            linewidth=2, label='Batch size')
    ax.step(decisions, history.get('acted', []), 'darkorange', where='mid',
            linewidth=2, linestyle='--', label='Registered agents acted')
    ax.set_xlabel('Decision')
    ax.set_ylabel('Agents')
    ax.set_title('Batch Size vs Acting Agents', fontweight='bold')
    ax.legend(loc='lower right')
    ax.grid(True, alpha=0.4)

    plt.tight_layout()
    _finish(save_path, show)


# ==============================================================================
# GRAPH 3: MEMORY RESETS
# ==============================================================================

def plot_memory_resets(data: dict, save_path: Path = None, show: bool = True):
    """Memory buffers created or grown per decision."""
    history = data.get('history', {})
    decisions = np.array(history.get('decision', []))
    resets = np.array(history.get('memory_resets', []))

    if len(decisions) == 0:
        print("ERROR: No history data!")
        return

    fig, ax = plt.subplots(figsize=(10, 6))
    ax.bar(decisions, resets, color='purple', alpha=0.7)
    ax.set_xlabel('Decision')
    ax.set_ylabel('Resets')
    ax.set_title(f'Memory Resets (total {int(resets.sum())})', fontweight='bold')
    ax.grid(True, alpha=0.4, axis='y')

    plt.tight_layout()
    _finish(save_path, show)


# ==============================================================================
# GRAPH 4: DASHBOARD
# ==============================================================================

def plot_dashboard(data: dict, save_path: Path = None, show: bool = True):
    """4-panel summary: Latency, Latency Histogram, Batch vs Acted, Resets"""
    history = data.get('history', {})
    decisions = np.array(history.get('decision', []))
    latency = np.array(history.get('latency_ms', []))

    if len(decisions) == 0:
        print("ERROR: No history data!")
        return

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))

    ax1 = axes[0, 0]
    ax1.plot(decisions, latency, 'b-', alpha=0.25)
    ax1.plot(decisions, rolling_moving_average(latency), 'royalblue', linewidth=2.5)
    ax1.set_xlabel('Decision')
    ax1.set_ylabel('Latency (ms)')
    ax1.set_title('(a) Decode Latency', fontweight='bold')
    ax1.grid(True, alpha=0.4)

    ax2 = axes[0, 1]
    ax2.hist(latency, bins=min(30, max(len(latency), 1)), color='steelblue', alpha=0.8)
    ax2.axvline(x=float(np.median(latency)), color='orange', linestyle='--', linewidth=2,
                label=f'Median {np.median(latency):.2f} ms')
    ax2.set_xlabel('Latency (ms)')
    ax2.set_ylabel('Decisions')
    ax2.set_title('(b) Latency Distribution', fontweight='bold')
    ax2.legend(loc='upper right')
    ax2.grid(True, alpha=0.4)

    ax3 = axes[1, 0]
    ax3.step(decisions, history.get('batch_size', []), 'g-', where='mid', linewidth=2,
             label='Batch size')
    ax3.step(decisions, history.get('acted', []), 'darkorange', where='mid', linewidth=2,
             linestyle='--', label='Acted')
    ax3.set_xlabel('Decision')
    ax3.set_ylabel('Agents')
    ax3.set_title('(c) Batch Size vs Acting Agents', fontweight='bold')
    ax3.legend(loc='lower right')
    ax3.grid(True, alpha=0.4)

    ax4 = axes[1, 1]
    ax4.bar(decisions, history.get('memory_resets', []), color='purple', alpha=0.7)
    ax4.set_xlabel('Decision')
    ax4.set_ylabel('Resets')
    ax4.set_title('(d) Memory Resets', fontweight='bold')
    ax4.grid(True, alpha=0.4, axis='y')

    fig.suptitle('MARL Inference Decode Metrics', fontsize=16, fontweight='bold')
    plt.tight_layout()
    _finish(save_path, show)


GRAPHS = {
    'latency': plot_latency,
    'batch': plot_batch_vs_acted,
    'resets': plot_memory_resets,
    'dashboard': plot_dashboard,
}


def generate_graphs(exp_dir: Path, graph: str = 'all', show: bool = False) -> list:
    """
    Render graphs for one experiment directory into exp_dir/graphs.

    Returns:
        List of written file paths
    """
    data = load_experiment(exp_dir)
    if not data.get('history'):
        raise FileNotFoundError(f"No history.json found in {exp_dir}")

    graphs_dir = exp_dir / "graphs"
    graphs_dir.mkdir(exist_ok=True)

    names = list(GRAPHS) if graph == 'all' else [graph]
    written = []
    for name in names:
        save_path = graphs_dir / f"{name}.png"
        GRAPHS[name](data, save_path=save_path, show=show)
        written.append(save_path)
    return written


def main():
    parser = argparse.ArgumentParser(
        description="Generate decode metrics graphs for MARL Inference",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python generate_graphs.py                          # Latest experiment
    python generate_graphs.py --experiment deploy_run
    python generate_graphs.py --graph dashboard --no-show
        """
    )

    parser.add_argument("--experiment", type=str, default=None,
                        help="Experiment name in outputs/")
    parser.add_argument("--output-dir", type=str, default="outputs",
                        help="Base output directory")
    parser.add_argument("--graph", type=str, choices=list(GRAPHS) + ['all'], default='all',
                        help="Which graph to generate")
    parser.add_argument("--no-show", action="store_true",
                        help="Don't display graphs (just save)")

    args = parser.parse_args()

    output_dir = Path(args.output_dir)

    if args.experiment:
        exp_dir = output_dir / args.experiment
        if not exp_dir.exists():
            print(f"ERROR: Experiment not found: {exp_dir}")
            sys.exit(1)
    else:
        try:
            exp_dir = find_latest_experiment(output_dir)
            print(f"Using latest experiment: {exp_dir.name}")
        except FileNotFoundError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

    try:
        written = generate_graphs(exp_dir, args.graph, show=not args.no_show)
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(f"\n{'='*60}")
    print(f"Generated {len(written)} graph(s) in {exp_dir / 'graphs'}")
    print(f"{'='*60}")


if __name__ == "__main__":
    main()
