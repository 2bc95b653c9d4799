"""
Quick validation script for a process topology file.
Usage:
    python -m welfare_sim.check_topology [--config parameters.yaml] [--graph data/process_graph.txt]

Prints parse warnings and the stage assigned to each node; exits non-zero
when the file cannot be turned into a usable graph.
"""
from __future__ import annotations

import argparse
import warnings
from pathlib import Path

from .run_experiment import _load_parameters
from .graph import MalformedTopology, ParseWarning, StageGraph, StageKind, parse_topology


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--config", type=str, default=None, help="Path to parameters.yaml")
    parser.add_argument("--graph", type=str, default=None, help="Topology file (overrides parameters.yaml)")
    args = parser.parse_args()

    params = _load_parameters(args.config)
    data_cfg = params.get("data", {}) or {}
    path = Path(args.graph or data_cfg.get("graph_path") or "data/process_graph.txt")
    if not path.exists():
        raise SystemExit(f"topology file not found: {path}")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", ParseWarning)
        try:
            spec = parse_topology(path.read_text(encoding="utf-8"), source=str(path))
        except MalformedTopology as exc:
            raise SystemExit(f"Malformed topology: {exc}")
    for w in spec.warnings:
        print(f"warning: {w}")

    try:
        graph = StageGraph.from_spec(spec)
    except MalformedTopology as exc:
        raise SystemExit(f"Malformed topology: {exc}")

    print(f"Loaded {graph.n_nodes} nodes and {len(spec.edges)} edges from {path}")
    for node_id, node in graph.nodes.items():
        targets = ", ".join(f"{dst} ({w:g})" for dst, w in node.next.items()) or "-"
        print(f"  {node_id:>3} {node.kind.value:<18} -> {targets}")
    missing = [k.value for k in StageKind if k != StageKind.COMPLAINT and not graph.has_kind(k)]
    if missing:
        print(f"Stages without a node: {missing}")
    if not graph.has_kind(StageKind.IDLE):
        raise SystemExit("Topology has no Idle stage; agents would have nowhere to start.")
    print("Topology validation OK")


if __name__ == "__main__":
    main()
