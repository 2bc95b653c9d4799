"""
Metrics tracking.
Run-level counters plus the population summary reported after each run:
- how many agents were ever investigated, and how often
- how many investigations came from the model versus random selection
- how recourse recommendations were issued and completed
- where the population ended up, and how many agents are truly eligible
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Dict, Any
import statistics
import csv
from pathlib import Path


@dataclass
class MetricTracker:
    # Cumulative counters
    random_nominations: int = 0
    model_nominations: int = 0
    oracle_failures: int = 0
    recommendations_issued: int = 0
    recommendations_completed: int = 0
    moves: int = 0

    # Distributions
    recommendation_sizes: list[int] = field(default_factory=list)
    failures_by_oracle: dict = field(default_factory=dict)   # "nomination"/"recourse" -> count

    def on_nomination(self, method: str) -> None:
        if method == "model":
            self.model_nominations += 1
        else:
            self.random_nominations += 1

    def on_recommendation(self, n_features: int) -> None:
        self.recommendations_issued += 1
        self.recommendation_sizes.append(int(n_features))

    def on_recommendation_completed(self) -> None:
        self.recommendations_completed += 1

    def on_oracle_failure(self, oracle: str) -> None:
        self.oracle_failures += 1
        self.failures_by_oracle[oracle] = self.failures_by_oracle.get(oracle, 0) + 1

    def summary(self, agents, distribution: List[int], eligible: int) -> Dict[str, Any]:
        """
        Compute summary stats for the run.
        Means are taken over agents with at least one investigation of that type.
        """
        all_inv = [a.properties.total_investigations for a in agents if a.properties.total_investigations]
        model_inv = [a.properties.model_investigations for a in agents if a.properties.model_investigations]
        return {
            "agents_all_investigations": len(all_inv),
            "agents_model_investigations": len(model_inv),
            "total_investigations": sum(all_inv),
            "model_investigations": sum(model_inv),
            "mean_all_investigations": statistics.mean(all_inv) if all_inv else 0.0,
            "mean_model_investigations": statistics.mean(model_inv) if model_inv else 0.0,
            "random_nominations": self.random_nominations,
            "model_nominations": self.model_nominations,
            "oracle_failures": self.oracle_failures,
            "recommendations_issued": self.recommendations_issued,
            "recommendations_completed": self.recommendations_completed,
            "mean_recommendation_size": (statistics.mean(self.recommendation_sizes)
                                         if self.recommendation_sizes else 0.0),
            "moves": self.moves,
            "agent_distribution": list(distribution),
            "ground_truth_eligible": int(eligible),
        }


EVENT_COLUMNS = ["tick", "agent_id", "from_stage", "to_stage", "status", "outcome"]


class EventLogger:
    """Stage moves of one run, written as CSV when the run ends."""
    def __init__(self, path: str):
        self.path = Path(path)
        self.rows: List[Dict[str, Any]] = []

    def log_move(self, tick: int, agent_id: int, from_stage: str, to_stage: str,
                 status: str, outcome: int) -> None:
        self.rows.append({
            "tick": tick,
            "agent_id": agent_id,
            "from_stage": from_stage,
            "to_stage": to_stage,
            "status": status,
            "outcome": outcome,
        })

    def flush(self) -> None:
        if not self.rows:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", newline="", encoding="utf-8") as f:
            w = csv.DictWriter(f, fieldnames=EVENT_COLUMNS)
            w.writeheader()
            w.writerows(self.rows)
